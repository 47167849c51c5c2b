"""
Address book with a single primary address per user.

The invariant is kept by this module on every write, not by the database.
Editing never clears the primary flag: a primary is only moved, by marking
another address primary, or handed over when the primary is deleted.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict

from database import Database, get_db, serialize_doc
from schemas import Address

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/addresses", tags=["addresses"])

NOT_FOUND = "Address not found or unauthorized"


class AddressIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    userId: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    pincode: Optional[str] = None
    primary: Optional[bool] = False


class AddressUpdate(AddressIn):
    id: Optional[str] = None


class PrimaryRequest(BaseModel):
    id: Optional[str] = None
    userId: Optional[str] = None


def _require(payload: BaseModel, *fields: str):
    missing = [f for f in fields if not getattr(payload, f)]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(fields)}")


def _owned(db: Database, address_id: str, user_id: str) -> dict:
    # Unknown ids and other users' ids look the same to the caller.
    if not ObjectId.is_valid(address_id):
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    doc = db["addresses"].find_one({"_id": ObjectId(address_id), "userId": user_id})
    if doc is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return doc


def list_addresses(db: Database, user_id: str) -> list:
    cursor = db["addresses"].find({"userId": user_id}).sort([("primary", -1), ("createdAt", -1)])
    return [serialize_doc(a) for a in cursor]


def add_address(db: Database, payload: AddressIn) -> str:
    collection = db["addresses"]
    first = collection.count_documents({"userId": payload.userId}) == 0
    primary = payload.primary or first
    if primary:
        collection.update_many({"userId": payload.userId}, {"$set": {"primary": False}})
    doc = Address(
        userId=payload.userId,
        address=payload.address,
        city=payload.city,
        pincode=payload.pincode,
        primary=primary,
    ).model_dump()
    inserted_id = collection.insert_one(doc).inserted_id
    logger.info("Address %s added for user %s (primary=%s)", inserted_id, payload.userId, primary)
    return str(inserted_id)


def edit_address(db: Database, payload: AddressUpdate):
    existing = _owned(db, payload.id, payload.userId)
    primary = payload.primary or bool(existing.get("primary"))
    if payload.primary:
        db["addresses"].update_many(
            {"userId": payload.userId, "_id": {"$ne": existing["_id"]}},
            {"$set": {"primary": False}},
        )
    db["addresses"].update_one(
        {"_id": existing["_id"]},
        {
            "$set": {
                "address": payload.address,
                "city": payload.city,
                "pincode": payload.pincode,
                "primary": primary,
                "updatedAt": datetime.now(timezone.utc),
            }
        },
    )


def set_primary(db: Database, address_id: str, user_id: str):
    target = _owned(db, address_id, user_id)
    collection = db["addresses"]
    collection.update_one(
        {"_id": target["_id"]},
        {"$set": {"primary": True, "updatedAt": datetime.now(timezone.utc)}},
    )
    collection.update_many({"userId": user_id, "_id": {"$ne": target["_id"]}}, {"$set": {"primary": False}})


def delete_address(db: Database, address_id: str, user_id: str):
    target = _owned(db, address_id, user_id)
    collection = db["addresses"]
    result = collection.delete_one({"_id": target["_id"], "userId": user_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=500, detail="Failed to delete address")
    if target.get("primary"):
        successor = collection.find_one({"userId": user_id})
        if successor is not None:
            collection.update_one({"_id": successor["_id"]}, {"$set": {"primary": True}})
            logger.info("Address %s promoted to primary for user %s", successor["_id"], user_id)


@router.get("")
def get_addresses(userId: Optional[str] = None, db: Database = Depends(get_db)):
    if not userId:
        return {"addresses": []}
    return {"addresses": list_addresses(db, userId)}


@router.post("", status_code=201)
def post_address(payload: AddressIn, db: Database = Depends(get_db)):
    _require(payload, "userId", "address", "city", "pincode")
    return {"success": True, "id": add_address(db, payload)}


@router.put("")
def put_address(payload: AddressUpdate, db: Database = Depends(get_db)):
    _require(payload, "id", "userId", "address", "city", "pincode")
    edit_address(db, payload)
    return {"success": True}


@router.patch("")
def patch_address(payload: PrimaryRequest, db: Database = Depends(get_db)):
    _require(payload, "id", "userId")
    set_primary(db, payload.id, payload.userId)
    return {"success": True}


@router.delete("")
def remove_address(id: Optional[str] = None, userId: Optional[str] = None, db: Database = Depends(get_db)):
    if not id or not userId:
        raise HTTPException(status_code=400, detail="Missing required parameters: id, userId")
    delete_address(db, id, userId)
    return {"success": True}
