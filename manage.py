"""Maintenance commands run outside the API (make-admin, delete-orders)."""

import argparse
import sys
from typing import List, Optional

from bson import ObjectId
from pymongo.database import Database

from config import Settings, configure_logging
from database import connect


def get_db(settings: Settings) -> Database:
    db = connect(settings)
    if db is None:
        raise SystemExit("Error: DATABASE_URL is not set")
    return db


def cmd_make_admin(db: Database, args: argparse.Namespace) -> int:
    """Grant the admin flag to a user by email."""
    email = args.email.strip().lower()
    user = db["user"].find_one({"email": email})
    if not user:
        print(f"Error: no user with email {email}", file=sys.stderr)
        return 1
    if user.get("isAdmin"):
        print(f"{email} is already an admin.")
        return 0
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"isAdmin": True}})
    print(f"{email} is now an admin.")
    return 0


def cmd_delete_orders(db: Database, args: argparse.Namespace) -> int:
    """Delete orders by id. Stock is not restored."""
    invalid = [i for i in args.ids if not ObjectId.is_valid(i)]
    if invalid:
        print(f"Error: invalid order id(s): {', '.join(invalid)}", file=sys.stderr)
        return 1
    if not args.yes:
        print(f"Would delete {len(args.ids)} order(s). Re-run with --yes to confirm.")
        return 0
    result = db["order"].delete_many({"_id": {"$in": [ObjectId(i) for i in args.ids]}})
    print(f"Deleted orders: {result.deleted_count}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(prog="store-manage", description="Store maintenance commands.")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    admin_parser = subparsers.add_parser("make-admin", help="Give a user the admin flag")
    admin_parser.add_argument("email", help="Email of the user")

    delete_parser = subparsers.add_parser("delete-orders", help="Delete orders by id")
    delete_parser.add_argument("ids", nargs="+", help="Order ids")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Actually delete")

    return parser


def main(argv: Optional[List[str]] = None, db: Optional[Database] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    if db is None:
        settings = Settings.from_env()
        configure_logging(settings)
        db = get_db(settings)

    commands = {
        "make-admin": cmd_make_admin,
        "delete-orders": cmd_delete_orders,
    }
    return commands[args.command](db, args)


if __name__ == "__main__":
    sys.exit(main())
