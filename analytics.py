"""
Admin dashboard and analytics.

Every figure is recomputed from the collections on each request; there are no
stored rollups. Historical orders disagree on types (amounts stored as strings,
dates as strings or datetimes), so amounts go through ``to_double`` and dates
through ``order_datetime``.
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from auth import require_admin
from database import Database, get_db
from orders import ORDER_SORT

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

GROUP_FORMATS = {"day": "%Y-%m-%d", "week": "%Y-%U", "month": "%Y-%m"}


def to_double(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0  # NaN


def parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def order_datetime(order: dict) -> Optional[datetime]:
    return parse_datetime(order.get("createdAt")) or parse_datetime(order.get("orderDate"))


def order_amount(order: dict) -> float:
    for key in ("totalAmount", "total", "amount"):
        if order.get(key) is not None:
            return to_double(order[key])
    return 0.0


def dashboard(db: Database) -> dict:
    orders = db["orders"]
    agg = list(orders.aggregate([{"$group": {"_id": None, "totalRevenue": {"$sum": "$totalAmount"}}}]))
    revenue = agg[0]["totalRevenue"] if agg else 0
    recent = orders.find(
        {},
        {"_id": 1, "customer.name": 1, "customerName": 1, "totalAmount": 1, "orderDate": 1, "createdAt": 1, "status": 1, "deliveryStatus": 1},
    ).sort(ORDER_SORT).limit(5)
    recent_orders = []
    for order in recent:
        customer = order.get("customer") if isinstance(order.get("customer"), dict) else {}
        date = order.get("orderDate") or order.get("createdAt") or ""
        recent_orders.append({
            "id": str(order["_id"]),
            "customer": customer.get("name") or order.get("customerName") or "Guest",
            "amount": order.get("totalAmount") or 0,
            "date": date.isoformat() if isinstance(date, datetime) else date,
            "status": order.get("status") or order.get("deliveryStatus") or "pending",
        })
    return {
        "usersCount": db["users"].count_documents({}),
        "ordersCount": orders.count_documents({}),
        "productsCount": db["products"].count_documents({}),
        "revenue": revenue,
        "recentOrders": recent_orders,
    }


def revenue_over_time(
    db: Database,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    group: str = "day",
) -> List[dict]:
    fmt = GROUP_FORMATS.get(group)
    if fmt is None:
        raise HTTPException(status_code=400, detail="group must be one of day, week, month")
    start = parse_datetime(date_from) if date_from else None
    end = parse_datetime(date_to) if date_to else None
    if (date_from and start is None) or (date_to and end is None):
        raise HTTPException(status_code=400, detail="from/to must be ISO dates (YYYY-MM-DD)")

    buckets: Dict[str, Dict[str, Any]] = {}
    for order in db["orders"].find({}, {"createdAt": 1, "orderDate": 1, "totalAmount": 1}):
        when = order_datetime(order)
        if when is None:
            continue
        if (start and when < start) or (end and when > end):
            continue
        key = when.strftime(fmt)
        bucket = buckets.setdefault(key, {"_id": key, "totalRevenue": 0.0, "orderCount": 0})
        bucket["totalRevenue"] += to_double(order.get("totalAmount"))
        bucket["orderCount"] += 1
    return [buckets[k] for k in sorted(buckets)]


def breakdown(db: Database) -> dict:
    total_revenue = 0.0
    order_count = 0
    products: Dict[str, Dict[str, Any]] = {}
    payments: Dict[str, int] = defaultdict(int)
    for order in db["orders"].find({}, {"items": 1, "totalAmount": 1, "paymentMethod": 1}):
        order_count += 1
        total_revenue += to_double(order.get("totalAmount"))
        for item in order.get("items") or []:
            key = str(item.get("productId") or item.get("id") or item.get("name"))
            entry = products.setdefault(key, {"productId": key, "name": item.get("name"), "count": 0})
            entry["count"] += int(to_double(item.get("quantity")) or 1)
        payments[order.get("paymentMethod") or "Other"] += 1
    top = sorted(products.values(), key=lambda p: p["count"], reverse=True)[:5]
    return {
        "totalRevenue": total_revenue,
        "avgOrderValue": total_revenue / order_count if order_count else 0,
        "topProducts": top,
        "paymentCounts": dict(payments),
    }


def metrics(db: Database) -> dict:
    total_revenue = 0.0
    total_orders = 0
    status_counts: Dict[str, int] = defaultdict(int)
    for order in db["orders"].find({}, {"totalAmount": 1, "status": 1, "deliveryStatus": 1}):
        total_orders += 1
        total_revenue += to_double(order.get("totalAmount"))
        status_counts[order.get("status") or order.get("deliveryStatus") or "Pending"] += 1
    return {
        "totalOrders": total_orders,
        "totalRevenue": total_revenue,
        "totalCustomers": db["users"].count_documents({"role": "customer"}),
        "statusCounts": dict(status_counts),
    }


def filters(db: Database) -> dict:
    return {
        "paymentMethods": [m for m in db.collection("orders").distinct("paymentMethod") if m],
        "categories": [c for c in db.collection("products").distinct("category") if c],
    }


def user_stats(db: Database) -> List[dict]:
    stats: Dict[tuple, Dict[str, Any]] = {}
    for order in db["orders"].find({}):
        customer = order.get("customer") if isinstance(order.get("customer"), dict) else {}
        user_id = order.get("userId") or customer.get("id")
        email = customer.get("email") or order.get("customerEmail")
        key = (str(user_id) if user_id else None, email or None)
        entry = stats.setdefault(key, {"userId": key[0], "email": key[1], "ordersCount": 0, "totalSpent": 0.0})
        entry["ordersCount"] += 1
        entry["totalSpent"] += order_amount(order)
    return list(stats.values())


@router.get("/dashboard")
def get_dashboard(db: Database = Depends(get_db)):
    return dashboard(db)


@router.get("/analytics/revenue")
def get_revenue(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    group: str = "day",
    db: Database = Depends(get_db),
):
    return revenue_over_time(db, date_from, date_to, group)


@router.get("/analytics/breakdown")
def get_breakdown(db: Database = Depends(get_db)):
    return breakdown(db)


@router.get("/analytics/metrics")
def get_metrics(db: Database = Depends(get_db)):
    return metrics(db)


@router.get("/analytics/filters")
def get_filters(db: Database = Depends(get_db)):
    return filters(db)


@router.get("/users/stats")
def get_user_stats(db: Database = Depends(get_db)):
    return {"stats": user_stats(db)}
