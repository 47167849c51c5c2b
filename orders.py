"""
Order lifecycle: creation, lookup, admin status updates and deletion.

Orders accreted two document layouts over time. Newer documents nest the
customer snapshot (``customer.email``, ``customer.id``); older ones are flat
(``customerEmail``, ``customerName``). ``status`` and ``deliveryStatus`` also
drifted apart. New orders are always written in the nested layout with both
status fields set together. Queries and responses go through the helpers in
this module, which are the only code aware of the legacy layout.
"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field, ValidationError

import config
from auth import get_optional_claims, is_admin, require_admin
from database import Database, get_db, serialize_doc, to_object_id
from schemas import Customer, Order, OrderItem

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

ORDER_SORT = [("orderDate", -1), ("createdAt", -1)]
WRITE_MARKERS = ("items", "customer", "customerName", "customerEmail", "totalAmount")


# ----- Shape adapters -----

def owner_filter(email: Optional[str] = None, user_id: Optional[str] = None) -> Optional[dict]:
    if email:
        return {"$or": [{"customer.email": email}, {"customerEmail": email}]}
    if user_id:
        return {"$or": [{"userId": user_id}, {"customer.id": user_id}]}
    return None


def status_filter(status: Optional[str]) -> Optional[dict]:
    if not status:
        return None
    return {"$or": [{"status": status}, {"deliveryStatus": status}]}


def build_query(email: Optional[str] = None, user_id: Optional[str] = None, status: Optional[str] = None) -> dict:
    parts = [f for f in (owner_filter(email, user_id), status_filter(status)) if f]
    if not parts:
        return {}
    if len(parts) == 1:
        return parts[0]
    return {"$and": parts}


def present_order(doc: dict) -> dict:
    """Read adapter: one response shape for both stored layouts."""
    order = serialize_doc(doc)
    customer = order.get("customer") if isinstance(order.get("customer"), dict) else {}
    order["customerName"] = customer.get("name") or order.get("customerName") or "N/A"
    order["customerEmail"] = customer.get("email") or order.get("customerEmail")
    order["orderDate"] = order.get("orderDate") or order.get("createdAt")
    status = order.get("status") or order.get("deliveryStatus") or "Pending"
    order["status"] = status
    order["deliveryStatus"] = order.get("deliveryStatus") or status
    return order


# ----- Creation -----

def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def normalize_customer(body: dict) -> dict:
    nested = body.get("customer") if isinstance(body.get("customer"), dict) else {}
    first_name = _clean(nested.get("firstName") or body.get("firstName"))
    last_name = _clean(nested.get("lastName") or body.get("lastName"))
    name = _clean(nested.get("name") or body.get("customerName"))
    if not name:
        if first_name and last_name:
            name = f"{first_name} {last_name}"
            logger.debug("Constructed customer name %r from first/last name", name)
        else:
            raise HTTPException(status_code=400, detail="Invalid order data: Missing customer name")
    email = _clean(nested.get("email") or body.get("customerEmail") or body.get("email"))
    if not email:
        raise HTTPException(status_code=400, detail="Invalid order data: Missing customer email")
    return {
        "id": _clean(nested.get("id") or body.get("userId")),
        "name": name,
        "email": email,
        "phone": _clean(nested.get("phone") or body.get("customerPhone") or body.get("phone")),
        "firstName": first_name,
        "lastName": last_name,
    }


def items_subtotal(items: List[dict]) -> float:
    subtotal = 0.0
    for item in items:
        try:
            subtotal += float(item.get("price") or 0) * float(item.get("quantity") or 0)
        except (TypeError, ValueError):
            continue
    return subtotal


def expected_total(items: List[dict]) -> int:
    return round(items_subtotal(items) * (1 + config.TAX_RATE))


def new_order_id() -> str:
    return f"ORD-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6].upper()}"


def normalize_order_input(body: dict, claims: Optional[dict] = None) -> dict:
    """Turn a client-assembled order into the stored layout.

    Raises a 400 for a missing customer name/email, an empty item list or a
    missing ``totalAmount``. Prices are not checked against the catalog.
    ``orderId`` and the initial status are always set here, whatever the
    body carries.
    """
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid order data")
    items = body.get("items")
    if not isinstance(items, list) or not items:
        raise HTTPException(status_code=400, detail="Invalid order data: Missing required fields (items)")
    if body.get("totalAmount") in (None, "", 0):
        raise HTTPException(status_code=400, detail="Invalid order data: Missing required fields (totalAmount)")

    customer = normalize_customer(body)
    user_id = _clean(body.get("userId")) or customer["id"]
    if not user_id and claims:
        user_id = claims["sub"]
    customer["id"] = user_id

    extra = {
        k: v for k, v in body.items()
        if k not in ("_id", "customerName", "customerEmail", "customerPhone", "firstName", "lastName", "email", "phone")
    }
    try:
        order = Order(
            **{
                **extra,
                "orderId": new_order_id(),
                "userId": user_id,
                "customer": Customer(**customer),
                "items": [OrderItem(**item) for item in items],
                "totalAmount": body["totalAmount"],
                "paymentStatus": _clean(body.get("paymentStatus")) or "Pending",
                "status": "Pending",
                "deliveryStatus": "Pending",
                "orderDate": _clean(body.get("orderDate")) or datetime.now(timezone.utc).isoformat(),
                "createdAt": datetime.now(timezone.utc),
            }
        )
    except (ValidationError, TypeError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid order data: {exc}")
    return order.model_dump()


def create_order(db: Database, body: dict, claims: Optional[dict] = None) -> dict:
    order = normalize_order_input(body, claims)
    expected = expected_total(order["items"])
    if round(order["totalAmount"]) != expected:
        if config.STRICT_ORDER_TOTALS:
            raise HTTPException(
                status_code=400,
                detail=f"Order total {order['totalAmount']} does not match items total {expected}",
            )
        logger.warning(
            "Order %s total %s differs from items total %s; storing submitted amount",
            order["orderId"], order["totalAmount"], expected,
        )
    inserted_id = db["orders"].insert_one(order).inserted_id
    logger.info("Order %s placed by %s for %s", order["orderId"], order["customer"]["email"], order["totalAmount"])
    return {"message": "Order placed successfully", "id": str(inserted_id), "orderId": order["orderId"]}


# ----- Reads -----

def find_orders(
    db: Database,
    email: Optional[str] = None,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 0,
    page: int = 1,
) -> dict:
    limit = max(limit or 0, 0)
    page = max(page or 1, 1)
    query = build_query(email, user_id, status)
    cursor = db["orders"].find(query).sort(ORDER_SORT)
    if limit > 0:
        cursor = cursor.skip((page - 1) * limit).limit(limit)
    orders = [present_order(o) for o in cursor]
    has_more = False
    if limit > 0:
        total = db["orders"].count_documents(query)
        has_more = page * limit < total
    return {"orders": orders, "hasMore": has_more}


def find_order(db: Database, order_id: str) -> Optional[dict]:
    doc = db["orders"].find_one({"orderId": order_id})
    if doc is None and ObjectId.is_valid(order_id):
        doc = db["orders"].find_one({"_id": ObjectId(order_id)})
    return doc


def is_owner(doc: dict, claims: dict) -> bool:
    customer = doc.get("customer") if isinstance(doc.get("customer"), dict) else {}
    user_ids = {str(v) for v in (doc.get("userId"), customer.get("id")) if v}
    emails = {v for v in (customer.get("email"), doc.get("customerEmail")) if v}
    return claims.get("sub") in user_ids or claims.get("email") in emails


def get_order(db: Database, order_id: str, claims: dict) -> dict:
    """One order, by ``orderId`` or ``_id``, for its owner or an admin.

    Orders of other customers answer 404 like unknown ids.
    """
    doc = find_order(db, order_id)
    if doc is None or not (is_admin(claims) or is_owner(doc, claims)):
        raise HTTPException(status_code=404, detail="Order not found")
    return present_order(doc)


# ----- Admin mutations -----

def update_order(db: Database, order_id: Any, fields: Dict[str, Any]) -> int:
    update = {k: v for k, v in fields.items() if k not in ("_id", "id")}
    status = update.get("status") or update.get("deliveryStatus")
    if status:
        update["status"] = status
        update["deliveryStatus"] = status
    if not update:
        raise HTTPException(status_code=400, detail="Nothing to update")
    update["updatedAt"] = datetime.now(timezone.utc)
    result = db["orders"].update_one({"_id": to_object_id(order_id)}, {"$set": update})
    return result.modified_count


def delete_order(db: Database, order_id: Any) -> int:
    return db["orders"].delete_one({"_id": to_object_id(order_id)}).deleted_count


# ----- Routes -----

def _lookup(db: Database, claims: Optional[dict], email, user_id, status, limit, page) -> dict:
    if not email and not user_id and not is_admin(claims):
        raise HTTPException(status_code=401, detail="Unauthorized or missing email/userId")
    return find_orders(db, email=email, user_id=user_id, status=status, limit=limit, page=page)


def looks_like_lookup(body: Any) -> bool:
    return (
        isinstance(body, dict)
        and bool(body.get("email") or body.get("userId"))
        and not any(body.get(k) for k in WRITE_MARKERS)
    )


@router.post("", status_code=201)
def post_order(
    response: Response,
    body: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    claims: Optional[dict] = Depends(get_optional_claims),
):
    if looks_like_lookup(body):
        if not config.LEGACY_ORDER_LOOKUP:
            raise HTTPException(status_code=410, detail="Order lookup via POST was removed, use GET /api/orders")
        logger.warning("Deprecated POST order lookup for email=%s userId=%s", body.get("email"), body.get("userId"))
        response.status_code = 200
        response.headers["Deprecation"] = "true"
        response.headers["Link"] = '</api/orders/lookup>; rel="successor-version"'
        return _lookup(db, claims, body.get("email"), body.get("userId"), body.get("status"), 0, 1)
    return create_order(db, body, claims)


class OrderLookup(BaseModel):
    email: Optional[str] = None
    userId: Optional[str] = None
    status: Optional[str] = None
    limit: int = Field(0, ge=0)
    page: int = Field(1, ge=1)


@router.post("/lookup")
def lookup_orders(
    payload: OrderLookup,
    db: Database = Depends(get_db),
    claims: Optional[dict] = Depends(get_optional_claims),
):
    return _lookup(db, claims, payload.email, payload.userId, payload.status, payload.limit, payload.page)


@router.get("")
def list_orders(
    email: Optional[str] = None,
    userId: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(0, ge=0),
    page: int = Query(1, ge=1),
    db: Database = Depends(get_db),
    claims: Optional[dict] = Depends(get_optional_claims),
):
    return _lookup(db, claims, email, userId, status, limit, page)


@router.get("/{order_id}")
def read_order(
    order_id: str,
    db: Database = Depends(get_db),
    claims: Optional[dict] = Depends(get_optional_claims),
):
    if claims is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return get_order(db, order_id, claims)


@router.put("")
def put_order(body: Dict[str, Any] = Body(...), db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    if not body.get("_id"):
        raise HTTPException(status_code=400, detail="Missing _id")
    modified = update_order(db, body["_id"], body)
    logger.info("Order %s updated by %s", body["_id"], admin.get("email"))
    return {"modifiedCount": modified}


@router.delete("")
def remove_order(body: Dict[str, Any] = Body(...), db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    if not body.get("_id"):
        raise HTTPException(status_code=400, detail="Missing _id")
    deleted = delete_order(db, body["_id"])
    logger.info("Order %s deleted by %s", body["_id"], admin.get("email"))
    return {"deletedCount": deleted}
