import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from analytics import order_amount
from auth import get_current_user, is_admin, public_user, require_admin
from database import Database, get_db, to_object_id
from orders import present_order
from schemas import USER_ROLES, USER_STATUSES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

PROFILE_FIELDS = ("firstName", "lastName", "phone", "address")


def users_with_stats(db: Database) -> list:
    by_email: Dict[str, list] = defaultdict(list)
    for order in db["orders"].find({}):
        customer = order.get("customer") if isinstance(order.get("customer"), dict) else {}
        email = customer.get("email") or order.get("customerEmail")
        if email:
            by_email[email].append(order)

    result = []
    for user in db.get_documents("users"):
        doc = public_user(user)
        if user.get("role") == "customer":
            orders = by_email.get(user.get("email"), [])
            doc["totalOrders"] = len(orders)
            doc["totalSpent"] = sum(order_amount(o) for o in orders)
            doc["orders"] = [present_order(o) for o in orders]
        else:
            doc["totalOrders"] = 0
            doc["totalSpent"] = 0
        result.append(doc)
    return result


def update_user(db: Database, user_id: Any, fields: Dict[str, Any], admin: bool) -> int:
    if admin:
        update = {k: v for k, v in fields.items() if k not in ("_id", "id", "password", "createdAt")}
    else:
        update = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
    if "status" in update and update["status"] not in USER_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of {', '.join(USER_STATUSES)}")
    if "role" in update and update["role"] not in USER_ROLES:
        raise HTTPException(status_code=400, detail=f"role must be one of {', '.join(USER_ROLES)}")
    if not update:
        raise HTTPException(status_code=400, detail="Nothing to update")
    update["updatedAt"] = datetime.now(timezone.utc)
    return db["users"].update_one({"_id": to_object_id(user_id)}, {"$set": update}).modified_count


@router.get("")
def list_users(db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    return users_with_stats(db)


@router.put("")
def put_user(body: Dict[str, Any] = Body(...), db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    if not body.get("_id"):
        raise HTTPException(status_code=400, detail="Missing _id")
    admin = is_admin(user)
    if not admin and str(user["_id"]) != str(body["_id"]):
        raise HTTPException(status_code=403, detail="Admin only")
    modified = update_user(db, body["_id"], body, admin)
    if admin and "status" in body:
        logger.info("User %s status set to %s by %s", body["_id"], body["status"], user.get("email"))
    return {"modifiedCount": modified}


@router.delete("")
def delete_user(body: Dict[str, Any] = Body(...), db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    if not body.get("_id"):
        raise HTTPException(status_code=400, detail="Missing _id")
    deleted = db["users"].delete_one({"_id": to_object_id(body["_id"])}).deleted_count
    logger.info("User %s deleted by %s", body["_id"], admin.get("email"))
    return {"deletedCount": deleted}
