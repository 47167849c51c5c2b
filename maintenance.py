"""
One-off maintenance commands.

    python maintenance.py backfill-customer-email
    python maintenance.py create-admin --email admin@kiransales.in --password ...

Both read DATABASE_URL / DATABASE_NAME like the API does.
"""
import argparse
import logging
import sys
from datetime import datetime, timezone

import config
from auth import hash_password
from database import Database

logger = logging.getLogger(__name__)

LEGACY_EMAIL_FIELDS = ("customerEmail", "email", "userEmail")


def backfill_customer_email(db: Database) -> dict:
    """Copy legacy flat email fields into ``customer.email``."""
    orders = db["orders"]
    missing = {"$or": [{"customer.email": {"$exists": False}}, {"customer.email": None}, {"customer.email": ""}]}
    updated = skipped = 0
    for order in orders.find(missing):
        email = next((order.get(f) for f in LEGACY_EMAIL_FIELDS if order.get(f)), None)
        if not email:
            logger.warning("Order %s has no email anywhere, skipped", order["_id"])
            skipped += 1
            continue
        update = {"customer.email": email}
        if not isinstance(order.get("customer"), dict):
            update = {"customer": {"email": email, "name": order.get("customerName")}}
        orders.update_one({"_id": order["_id"]}, {"$set": update})
        updated += 1
    logger.info("Backfilled %d orders, skipped %d", updated, skipped)
    return {"updated": updated, "skipped": skipped}


def create_admin(db: Database, email: str, password: str, first_name: str = "Admin", last_name: str = "User") -> str:
    users = db["users"]
    existing = users.find_one({"email": email})
    if existing:
        users.update_one(
            {"_id": existing["_id"]},
            {"$set": {"role": "admin", "status": "active", "password": hash_password(password)}},
        )
        logger.info("Promoted %s to admin", email)
        return str(existing["_id"])
    doc = {
        "email": email,
        "password": hash_password(password),
        "firstName": first_name,
        "lastName": last_name,
        "role": "admin",
        "status": "active",
        "createdAt": datetime.now(timezone.utc),
    }
    inserted_id = users.insert_one(doc).inserted_id
    logger.info("Created admin %s", email)
    return str(inserted_id)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Storefront maintenance commands")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("backfill-customer-email", help="fill customer.email on legacy orders")
    admin = sub.add_parser("create-admin", help="create or promote an admin user")
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", required=True)
    admin.add_argument("--first-name", default="Admin")
    admin.add_argument("--last-name", default="User")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    db = Database.from_env()
    if db is None:
        logger.error("DATABASE_URL is not set")
        return 1
    try:
        if args.command == "backfill-customer-email":
            backfill_customer_email(db)
        else:
            create_admin(db, args.email, args.password, args.first_name, args.last_name)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
