from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from auth import require_admin
from database import Database, get_db, serialize_doc
from schemas import Feedback

router = APIRouter(tags=["support"])

SETTINGS_ID = "admin"


class FeedbackIn(BaseModel):
    email: Optional[str] = None
    message: Optional[str] = None
    type: Optional[str] = None


@router.post("/api/support")
def post_feedback(payload: FeedbackIn, db: Database = Depends(get_db)):
    if not payload.email or not payload.message:
        raise HTTPException(status_code=400, detail="Missing email or message")
    feedback = Feedback(email=payload.email, message=payload.message, type=payload.type or "general")
    db.create_document("feedback", feedback)
    return {"success": True}


@router.get("/api/support")
def list_feedback(db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    feedbacks = db["feedback"].find({}).sort("createdAt", -1)
    return {"feedbacks": [serialize_doc(f) for f in feedbacks]}


@router.get("/api/admin/settings")
def get_settings(db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    return serialize_doc(db["settings"].find_one({"_id": SETTINGS_ID}) or {})


@router.post("/api/admin/settings")
def save_settings(body: Dict[str, Any] = Body(...), db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    update = {k: v for k, v in body.items() if k not in ("_id", "id")}
    if not update:
        raise HTTPException(status_code=400, detail="Nothing to update")
    db["settings"].update_one({"_id": SETTINGS_ID}, {"$set": update}, upsert=True)
    return {"success": True}
