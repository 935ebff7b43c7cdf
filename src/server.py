"""Protean Engine runner for the Storefront domain.

Starts the Engine workers that process events asynchronously in production:
- OutboxProcessor: polls the outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes event handlers
  (order notifications)

Usage:
    python src/server.py
    python src/server.py --test-mode   # process what is queued, then exit
"""

import argparse
import asyncio

from protean.server.engine import Engine


async def run(test_mode: bool = False):
    from storefront.domain import storefront

    storefront.init()
    engine = Engine(storefront, test_mode=test_mode)
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Storefront Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Drain pending messages once and stop",
    )
    args = parser.parse_args()

    asyncio.run(run(test_mode=args.test_mode))


if __name__ == "__main__":
    main()
