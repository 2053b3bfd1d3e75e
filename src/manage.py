"""Messaging management CLI.

Provides commands to create and drop the database schema and to seed the
default channel policies.

Usage:
    python src/manage.py setup-db        # Create all tables
    python src/manage.py drop-db         # Drop all tables
    python src/manage.py seed-policies   # Store default channel policies
"""

import argparse
import sys


def _domain():
    from messaging.domain import messaging

    messaging.init()
    return messaging


def setup_database():
    from messaging.utils.db import setup_db

    domain = _domain()
    print("Creating messaging database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from messaging.utils.db import drop_db

    domain = _domain()
    print("Dropping messaging database schema...")
    drop_db(domain)
    print("Done.")


def seed_policies(event_keys=None):
    import json

    from messaging.policy.management import InitializeDefaultPolicies

    domain = _domain()
    with domain.domain_context():
        command = InitializeDefaultPolicies(event_keys=json.dumps(event_keys) if event_keys else None)
        created = domain.process(command, asynchronous=False)
    print(f"Seeded {created} channel policies.")


def main():
    parser = argparse.ArgumentParser(description="Messaging management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    seed_parser = subparsers.add_parser("seed-policies", help="Store default channel policies")
    seed_parser.add_argument(
        "--event-key",
        dest="event_keys",
        nargs="*",
        help="Specific event key(s) to seed (default: all known events)",
    )

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "seed-policies":
        seed_policies(args.event_keys)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
