"""Checkout expiry sweeper.

Runs the sweep that abandons idle checkouts, expires empty ones and deletes
what has outlived its retention, either once or on a fixed interval.

Usage:
    python src/sweeper.py --once
    python src/sweeper.py --interval 5
    python src/sweeper.py --once --force   # delete every non-active checkout now
"""

import argparse
import signal
import threading


def sweep_once(force: bool = False) -> dict:
    from storefront.checkout.expiry import sweep_checkouts
    from storefront.domain import storefront

    with storefront.domain_context():
        return sweep_checkouts(force=force).to_dict()


def run(interval_minutes: float, force: bool = False, once: bool = False) -> None:
    from storefront.domain import storefront
    from storefront.utils.logging import get_logger

    logger = get_logger("sweeper")
    storefront.init()

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    while True:
        try:
            logger.info("Checkout sweep finished", force=force, **sweep_once(force=force))
        except Exception:
            if once:
                raise
            # A failed pass is retried on the next tick.
            logger.exception("Checkout sweep failed")

        if once or stop.wait(interval_minutes * 60):
            break


def main():
    from storefront.config import setting_float

    parser = argparse.ArgumentParser(description="Storefront checkout expiry sweeper")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Minutes between sweeps (default: SWEEP_INTERVAL_MINUTES)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Skip the age checks and delete every abandoned or expired checkout immediately",
    )
    args = parser.parse_args()

    interval = args.interval if args.interval is not None else setting_float("SWEEP_INTERVAL_MINUTES", 5.0)
    run(interval, force=args.force, once=args.once)


if __name__ == "__main__":
    main()
