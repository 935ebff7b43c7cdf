"""Storefront management CLI.

Usage:
    python src/manage.py setup-db           # Create all tables
    python src/manage.py drop-db            # Drop all tables
    python src/manage.py seed-currencies    # Register the default currency
"""

import argparse
import sys


def setup_databases():
    """Create database schemas for the storefront domain."""
    from storefront.domain import storefront
    from storefront.utils.db import setup_db

    print("Initializing storefront domain...")
    storefront.init()
    print("Creating storefront database schema...")
    touched = setup_db(storefront)
    print(f"  schema ready for providers: {', '.join(touched) or 'none'}.")
    print("Done.")


def drop_databases():
    """Drop database schemas for the storefront domain."""
    from storefront.domain import storefront
    from storefront.utils.db import drop_db

    print("Initializing storefront domain...")
    storefront.init()
    print("Dropping storefront database schema...")
    touched = drop_db(storefront)
    print(f"  schema dropped for providers: {', '.join(touched) or 'none'}.")
    print("Done.")


def seed_currencies(code=None, name=None, symbol=None):
    """Register the shop's base currency if it is missing."""
    from protean.utils.globals import current_domain

    from storefront.config import default_currency_code
    from storefront.domain import storefront
    from storefront.money.management import CreateCurrency

    storefront.init()
    code = (code or default_currency_code()).upper()
    with storefront.domain_context():
        command = CreateCurrency(
            code=code,
            name=name or code,
            symbol=symbol or code,
            exchange_rate=1.0,
            is_default=True,
        )
        current_domain.process(command, asynchronous=False)
    print(f"Currency {code} registered as default.")


def main():
    parser = argparse.ArgumentParser(description="Storefront management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    seed_parser = subparsers.add_parser("seed-currencies", help="Register the default currency")
    seed_parser.add_argument("--code", help="ISO 4217 code (default: DEFAULT_CURRENCY)")
    seed_parser.add_argument("--name")
    seed_parser.add_argument("--symbol")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "seed-currencies":
        seed_currencies(args.code, args.name, args.symbol)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
