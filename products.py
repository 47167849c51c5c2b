"""
Product catalog.

When MongoDB is unreachable the catalog degrades to a JSON file
(``config.PRODUCTS_FALLBACK_FILE``): new products are appended to it and
listings are served from it. Nothing reconciles the file back into the
database later.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError
from pymongo.errors import PyMongoError

import config
from auth import require_admin
from database import Database, get_db, get_optional_db, serialize_doc, to_object_id
from schemas import Product

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


def derive_status(stock: int) -> str:
    return "active" if stock > 0 else "out_of_stock"


def prepare_product(body: Dict[str, Any]) -> dict:
    data = {k: v for k, v in body.items() if k not in ("_id", "id")}
    try:
        product = Product(**data)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid product data: {exc}")
    doc = product.model_dump()
    # Set once at creation; later stock edits leave it alone.
    doc["status"] = data.get("status") or derive_status(product.stock)
    return doc


# ----- File fallback -----

def read_fallback_products() -> List[dict]:
    path = config.PRODUCTS_FALLBACK_FILE
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    return data if isinstance(data, list) else []


def save_fallback_product(doc: dict) -> str:
    path = config.PRODUCTS_FALLBACK_FILE
    products = read_fallback_products()
    record = serialize_doc({**doc, "_id": ObjectId()})
    products.append(record)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(products, fh, indent=2)
    return record["_id"]


# ----- Routes -----

@router.get("")
def list_products(category: Optional[str] = None, db: Optional[Database] = Depends(get_optional_db)):
    query = {"category": category} if category else {}
    if db is not None:
        try:
            return [serialize_doc(p) for p in db["products"].find(query)]
        except PyMongoError:
            logger.exception("Product listing failed, serving %s", config.PRODUCTS_FALLBACK_FILE)
    products = read_fallback_products()
    if category:
        products = [p for p in products if p.get("category") == category]
    return products


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    product = db["products"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(product)


@router.post("", status_code=201)
def create_product(
    body: Dict[str, Any] = Body(...),
    db: Optional[Database] = Depends(get_optional_db),
    admin: dict = Depends(require_admin),
):
    doc = prepare_product(body)
    doc["createdAt"] = datetime.now(timezone.utc)
    if db is not None:
        try:
            inserted_id = db["products"].insert_one(dict(doc)).inserted_id
            logger.info("Product %s created by %s", inserted_id, admin.get("email"))
            return {"insertedId": str(inserted_id), "storage": "database"}
        except PyMongoError:
            logger.exception("Product insert failed, writing to %s", config.PRODUCTS_FALLBACK_FILE)
    else:
        logger.warning("No database configured, writing product to %s", config.PRODUCTS_FALLBACK_FILE)
    inserted_id = save_fallback_product(doc)
    return {"insertedId": inserted_id, "storage": "file"}


@router.put("")
def update_product(body: Dict[str, Any] = Body(...), db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    if not body.get("_id"):
        raise HTTPException(status_code=400, detail="Missing _id")
    update = {k: v for k, v in body.items() if k not in ("_id", "id")}
    update["updatedAt"] = datetime.now(timezone.utc)
    result = db["products"].update_one({"_id": to_object_id(body["_id"])}, {"$set": update})
    return {"modifiedCount": result.modified_count}


@router.delete("")
def delete_product(body: Dict[str, Any] = Body(...), db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    if not body.get("_id"):
        raise HTTPException(status_code=400, detail="Missing _id")
    result = db["products"].delete_one({"_id": to_object_id(body["_id"])})
    return {"deletedCount": result.deleted_count}
