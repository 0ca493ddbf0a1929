"""MarketPay database management CLI.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys

from marketpay.domain import marketpay
from marketpay.utils.db import drop_db, setup_db
from marketpay.utils.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description="MarketPay database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    args = parser.parse_args()

    configure_logging()
    marketpay.init()

    if args.command == "setup-db":
        print("Creating marketpay database schema...")
        setup_db(marketpay)
    elif args.command == "drop-db":
        print("Dropping marketpay database schema...")
        drop_db(marketpay)
    else:
        parser.print_help()
        sys.exit(1)
    print("Done.")


if __name__ == "__main__":
    main()
