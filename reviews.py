from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, ValidationError

from database import Database, get_db, serialize_doc
from schemas import Review

router = APIRouter(tags=["reviews"])


class ReviewIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    productId: Optional[str] = None
    userId: Optional[str] = None
    orderId: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    imageUrl: Optional[str] = None
    userName: Optional[str] = None


def upsert_review(db: Database, payload: ReviewIn):
    """At most one review per (product, user, order); resubmitting edits it."""
    try:
        review = Review(
            productId=payload.productId,
            userId=payload.userId,
            orderId=payload.orderId,
            rating=payload.rating,
            review=payload.review or "",
            imageUrl=payload.imageUrl or "",
            userName=payload.userName or "",
        ).model_dump()
    except ValidationError:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")
    now = datetime.now(timezone.utc)
    key = {"productId": review["productId"], "userId": review["userId"], "orderId": review["orderId"]}
    return db["reviews"].update_one(
        key,
        {"$set": {**review, "updatedAt": now}, "$setOnInsert": {"createdAt": now}},
        upsert=True,
    )


def find_reviews(db: Database, query: dict) -> list:
    cursor = db["reviews"].find(query).sort("createdAt", -1)
    return [serialize_doc(r) for r in cursor]


@router.post("/api/reviews")
def post_review(payload: ReviewIn, db: Database = Depends(get_db)):
    if not payload.productId or not payload.userId or not payload.orderId or not payload.rating:
        raise HTTPException(status_code=400, detail="Missing required fields")
    upsert_review(db, payload)
    return {"success": True}


@router.get("/api/reviews")
def get_reviews(
    productId: Optional[str] = None,
    userId: Optional[str] = None,
    orderId: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query = {k: v for k, v in (("productId", productId), ("userId", userId), ("orderId", orderId)) if v}
    if not query:
        raise HTTPException(status_code=400, detail="Missing productId, userId, or orderId")
    return find_reviews(db, query)


@router.get("/api/product-reviews")
def get_product_reviews(productId: Optional[str] = None, db: Database = Depends(get_db)):
    if not productId:
        raise HTTPException(status_code=400, detail="Missing productId")
    return find_reviews(db, {"productId": productId})
