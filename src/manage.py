"""Orderstream database management CLI.

Usage:
    PROTEAN_ENV=production python src/manage.py setup-db   # Create tables
    PROTEAN_ENV=production python src/manage.py drop-db    # Drop tables
"""

import argparse
import sys


def _initialized_domain():
    from ordering.domain import ordering

    ordering.init()
    return ordering


def setup_databases():
    from ordering.utils.db import setup_db

    touched = setup_db(_initialized_domain())
    if not touched:
        print("No relational database configured; nothing to create.")
    for name in touched:
        print(f"  {name}: schema ready.")


def drop_databases():
    from ordering.utils.db import drop_db

    touched = drop_db(_initialized_domain())
    if not touched:
        print("No relational database configured; nothing to drop.")
    for name in touched:
        print(f"  {name}: schema dropped.")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Orderstream database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
