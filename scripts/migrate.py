"""Script to run database migrations."""

import argparse
import sys

from alembic import command
from alembic.config import Config


def main() -> None:
    """Upgrade, downgrade or inspect the schema revision."""
    parser = argparse.ArgumentParser(description="Manage database migrations")
    subparsers = parser.add_subparsers(dest="action")

    upgrade_parser = subparsers.add_parser("upgrade", help="Upgrade to a revision (default: head)")
    upgrade_parser.add_argument("revision", nargs="?", default="head")

    downgrade_parser = subparsers.add_parser("downgrade", help="Downgrade to a revision")
    downgrade_parser.add_argument("revision")

    subparsers.add_parser("current", help="Show the current revision")

    args = parser.parse_args()
    alembic_cfg = Config("alembic.ini")

    try:
        if args.action == "downgrade":
            print(f"Downgrading database to {args.revision}...")
            command.downgrade(alembic_cfg, args.revision)
        elif args.action == "current":
            command.current(alembic_cfg, verbose=True)
            return
        else:
            revision = getattr(args, "revision", "head")
            print(f"Upgrading database to {revision}...")
            command.upgrade(alembic_cfg, revision)
        print("✓ Migrations completed successfully!")
    except Exception as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
