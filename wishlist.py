import logging
import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from database import Database, get_db, serialize_doc
from schemas import Wishlist

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


class WishlistToggle(BaseModel):
    email: Optional[str] = None
    product: Optional[Dict[str, Any]] = None
    action: str = "add"


def email_filter(email: str) -> dict:
    # Emails were never normalised on write, so match case-insensitively.
    return {"email": {"$regex": f"^{re.escape(email)}$", "$options": "i"}}


def _matches(item: dict, product_id: str) -> bool:
    return str(item.get("id")) == product_id or str(item.get("_id")) == product_id


def find_wishlist(db: Database, email: str) -> Optional[dict]:
    return db["wishlists"].find_one(email_filter(email))


def toggle_wishlist(db: Database, email: str, product: dict, action: str = "add") -> list:
    product_id = str(product["id"])
    wishlist = find_wishlist(db, email)
    items = list((wishlist or {}).get("items") or [])
    if action == "remove":
        items = [item for item in items if not _matches(item, product_id)]
    elif not any(_matches(item, product_id) for item in items):
        items.append(product)

    if wishlist is None:
        db["wishlists"].insert_one(Wishlist(email=email, items=items).model_dump())
        logger.info("Created wishlist for %s", email)
    else:
        db["wishlists"].update_one({"_id": wishlist["_id"]}, {"$set": {"items": items}})
    return items


@router.get("")
def get_wishlist(
    email: Optional[str] = None,
    limit: int = Query(0, ge=0),
    page: int = Query(1, ge=1),
    db: Database = Depends(get_db),
):
    if not email:
        raise HTTPException(status_code=400, detail="Missing email")
    wishlist = find_wishlist(db, email)
    items = (wishlist or {}).get("items") or []
    has_more = False
    if limit > 0:
        skip = (page - 1) * limit
        has_more = page * limit < len(items)
        items = items[skip:skip + limit]
    return {"items": serialize_doc(items), "hasMore": has_more}


@router.post("")
def post_wishlist(payload: WishlistToggle, db: Database = Depends(get_db)):
    if not payload.email or not payload.product or not payload.product.get("id"):
        raise HTTPException(status_code=400, detail="Missing email or product info")
    items = toggle_wishlist(db, payload.email, payload.product, payload.action)
    return {"success": True, "items": serialize_doc(items)}
