"""
Cart state and checkout.

Cart contents live on the client (local storage keyed by ``cart_key``); the
reducer below is the same state machine the storefront runs, exposed so a
cart can be validated and replayed server-side. Checkout turns a cart into an
order and hands it to the order service. Clearing the cart afterwards is the
client's job; the order stands either way.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends, HTTPException

import config
import orders
from auth import get_optional_claims
from database import Database, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cart"])

ACTIONS = ("ADD_ITEM", "REMOVE_ITEM", "UPDATE_QUANTITY", "CLEAR_CART", "SET_ITEMS")


def cart_key(user_id: Optional[str] = None) -> str:
    return f"cart_{user_id or 'guest'}"


def empty_cart() -> dict:
    return {"items": [], "itemCount": 0, "total": 0}


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0


def _with_totals(items: List[dict]) -> dict:
    item_count = sum(int(_number(item.get("quantity"))) for item in items)
    total = sum(_number(item.get("price")) * _number(item.get("quantity")) for item in items)
    return {"items": items, "itemCount": item_count, "total": total}


def _product_id(product: dict) -> Optional[str]:
    pid = product.get("_id") or product.get("id")
    return str(pid) if pid is not None else None


def add_item(state: dict, product: dict, size: Optional[str] = None, color: Optional[str] = None) -> dict:
    pid = _product_id(product)
    items = [dict(item) for item in state.get("items", [])]
    for item in items:
        if item.get("id") == pid and item.get("size") == size and item.get("color") == color:
            item["quantity"] = int(_number(item.get("quantity"))) + 1
            break
    else:
        items.append({
            "id": pid,
            "name": product.get("name"),
            "price": _number(product.get("price")),
            "quantity": 1,
            "size": size,
            "color": color,
            "image": product.get("image"),
            "category": product.get("category"),
            "product": product,
        })
    return _with_totals(items)


def remove_item(state: dict, product_id: str) -> dict:
    return _with_totals([dict(i) for i in state.get("items", []) if i.get("id") != str(product_id)])


def update_quantity(state: dict, product_id: str, quantity: Any) -> dict:
    items = []
    for item in state.get("items", []):
        item = dict(item)
        if item.get("id") == str(product_id):
            item["quantity"] = max(0, int(_number(quantity)))
        if _number(item.get("quantity")) > 0:
            items.append(item)
    return _with_totals(items)


def _find_items(payload: Any) -> Optional[list]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return None
    if isinstance(payload.get("items"), list):
        return payload["items"]
    # Older clients wrapped the array under another key, at most one level deep.
    for key, value in payload.items():
        if isinstance(value, list):
            logger.warning("SET_ITEMS payload without 'items'; using array at '%s'", key)
            return value
        if isinstance(value, dict):
            for inner_key, inner in value.items():
                if isinstance(inner, list):
                    logger.warning("SET_ITEMS payload without 'items'; using array at '%s.%s'", key, inner_key)
                    return inner
    return None


def set_items(state: dict, payload: Any) -> dict:
    items = _find_items(payload)
    if items is None:
        logger.error("Invalid payload for SET_ITEMS, keeping current cart")
        return state
    normalized = [{**item, "quantity": int(_number(item.get("quantity")))} for item in items if isinstance(item, dict)]
    return _with_totals(normalized)


def reduce_cart(state: Optional[dict], action: Dict[str, Any]) -> dict:
    state = state or empty_cart()
    kind = action.get("type")
    payload = action.get("payload") or {}
    if kind == "ADD_ITEM":
        product = payload.get("product")
        if not isinstance(product, dict) or _product_id(product) is None:
            raise HTTPException(status_code=400, detail="ADD_ITEM needs a product with an id")
        return add_item(state, product, payload.get("size"), payload.get("color"))
    if kind == "REMOVE_ITEM":
        return remove_item(state, payload.get("productId"))
    if kind == "UPDATE_QUANTITY":
        return update_quantity(state, payload.get("id"), payload.get("quantity"))
    if kind == "CLEAR_CART":
        return empty_cart()
    if kind == "SET_ITEMS":
        return set_items(state, action.get("payload"))
    raise HTTPException(status_code=400, detail=f"Unknown cart action {kind!r}, expected one of {', '.join(ACTIONS)}")


# ----- Checkout -----

def shipping_line(shipping: Dict[str, Any]) -> str:
    return f"{shipping.get('address', '')}, {shipping.get('city', '')}, {shipping.get('state', '')} - {shipping.get('pincode', '')}"


def order_from_cart(
    cart: dict,
    customer: Dict[str, Any],
    shipping: Dict[str, Any],
    payment_method: str,
    transaction_id: Optional[str] = None,
    user_id: Optional[str] = None,
    shipping_address_id: Optional[str] = None,
) -> dict:
    """Order payload for a cart, priced the way the storefront shows it."""
    cart = _with_totals([i for i in set_items(empty_cart(), cart)["items"] if i["quantity"] > 0])
    if not cart["items"]:
        raise HTTPException(status_code=400, detail="Cart is empty")
    cod = (payment_method or "").lower() == "cod"
    if not cod and not transaction_id:
        # no gateway; payments are simulated
        transaction_id = f"TXN-{uuid.uuid4().hex[:12].upper()}"
    return {
        "userId": user_id,
        "customer": {
            "id": user_id,
            "email": customer.get("email"),
            "firstName": customer.get("firstName"),
            "lastName": customer.get("lastName"),
            "name": customer.get("name"),
            "phone": customer.get("phone"),
        },
        "items": [
            {
                "id": item.get("id"),
                "productId": item.get("id"),
                "name": item.get("name"),
                "price": _number(item.get("price")),
                "quantity": item["quantity"],
                "size": item.get("size"),
                "color": item.get("color"),
            }
            for item in cart["items"]
        ],
        "totalAmount": round(cart["total"] * (1 + config.TAX_RATE)),
        "paymentMethod": "cod" if cod else payment_method,
        "paymentStatus": "Pending" if cod else "Paid",
        "transactionId": None if cod else transaction_id,
        "shippingAddress": shipping_line(shipping),
        "shippingAddressId": shipping_address_id,
        "deliveryStatus": "Pending",
    }


def _stored_shipping(db: Database, address_id: str, user_id: Optional[str]) -> Dict[str, Any]:
    if not ObjectId.is_valid(address_id) or not user_id:
        raise HTTPException(status_code=404, detail="Address not found or unauthorized")
    doc = db["addresses"].find_one({"_id": ObjectId(address_id), "userId": user_id})
    if doc is None:
        raise HTTPException(status_code=404, detail="Address not found or unauthorized")
    return doc


@router.get("/api/cart")
def get_cart(claims: Optional[dict] = Depends(get_optional_claims)):
    # Carts are not persisted server-side; the items are a fixed sample.
    return {
        "key": cart_key((claims or {}).get("sub")),
        "items": [
            {
                "id": "1",
                "name": "Sample Product",
                "quantity": 2,
                "price": 100,
                "size": "M",
                "color": "Red",
                "image": "sample-image-url",
                "category": "Clothing",
            }
        ]
    }


@router.post("/api/cart")
def post_cart(body: Dict[str, Any] = Body(...)):
    action = body.get("action")
    if not isinstance(action, dict):
        raise HTTPException(status_code=400, detail="Missing cart action")
    return reduce_cart(body.get("state"), action)


@router.post("/api/checkout", status_code=201)
def checkout(
    body: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    claims: Optional[dict] = Depends(get_optional_claims),
):
    # a verified token decides whose order this is
    user_id = claims["sub"] if claims else body.get("userId")
    customer = dict(body.get("customer") or {})
    if claims and not customer.get("email"):
        customer["email"] = claims.get("email")
    shipping = dict(body.get("shipping") or {})
    address_id = body.get("shippingAddressId")
    if address_id:
        stored = _stored_shipping(db, address_id, user_id)
        shipping = {**shipping, "address": stored.get("address"), "city": stored.get("city"), "pincode": stored.get("pincode")}
    payment_method = body.get("paymentMethod")
    if not payment_method:
        raise HTTPException(status_code=400, detail="Missing paymentMethod")
    order = order_from_cart(
        body.get("cart") or {},
        customer,
        shipping,
        payment_method,
        transaction_id=body.get("transactionId"),
        user_id=user_id,
        shipping_address_id=address_id,
    )
    result = orders.create_order(db, order, claims)
    return {**result, "totalAmount": order["totalAmount"], "paymentStatus": order["paymentStatus"]}
