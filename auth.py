import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

import jwt
from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError

import config
from database import Database, get_db, serialize_doc
from schemas import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

security = HTTPBearer(auto_error=False)
password_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return password_ctx.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return password_ctx.verify(password, hashed)
    except ValueError:
        # not a hash passlib recognises
        return False


def create_token(user: dict) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user["_id"]),
        "email": user.get("email"),
        "role": user.get("role", "customer"),
        "iat": now,
        "exp": now + timedelta(minutes=config.JWT_EXPIRES_MIN),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def public_user(user: dict) -> dict:
    """Stored user without the password hash."""
    doc = serialize_doc(user)
    doc.pop("password", None)
    return doc


def _claims(token: str) -> dict:
    payload = decode_token(token)
    if not ObjectId.is_valid(payload.get("sub") or ""):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


def get_optional_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[dict]:
    """Verified token payload (sub, email, role) or None without a bearer token."""
    if credentials is None:
        return None
    return _claims(credentials.credentials)


def get_current_user(
    claims: Optional[dict] = Depends(get_optional_claims),
    db: Database = Depends(get_db),
) -> dict:
    if claims is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = db["users"].find_one({"_id": ObjectId(claims["sub"])})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if user.get("status", "active") != "active":
        raise HTTPException(status_code=403, detail="Account is not active")
    return user


def is_admin(claims: Optional[dict]) -> bool:
    return bool(claims) and claims.get("role") == "admin"


def require_admin(claims: Optional[dict] = Depends(get_optional_claims)) -> dict:
    # Signed role claim only; no database lookup.
    if claims is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not is_admin(claims):
        raise HTTPException(status_code=403, detail="Admin only")
    return claims


# Request schemas
class SignupRequest(BaseModel):
    email: str
    password: str
    firstName: str
    lastName: str
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/signup", status_code=201)
def signup(payload: SignupRequest, db: Database = Depends(get_db)):
    if not payload.email or not payload.password or not payload.firstName or not payload.lastName:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if db["users"].find_one({"email": payload.email}):
        raise HTTPException(status_code=409, detail="User already exists")
    try:
        user = User(
            email=payload.email,
            password=hash_password(payload.password),
            firstName=payload.firstName,
            lastName=payload.lastName,
            phone=payload.phone,
        ).model_dump()
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid email address")
    # stored exactly as typed; EmailStr lowercases the domain
    user["email"] = payload.email
    user["_id"] = db["users"].insert_one(user).inserted_id
    logger.info("New customer account %s", payload.email)
    return {"user": public_user(user), "token": create_token(user)}


@router.post("/login")
def login(payload: LoginRequest, response: Response, db: Database = Depends(get_db)):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Missing email or password")
    user = db["users"].find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.get("status", "active") != "active":
        raise HTTPException(status_code=403, detail="Account is not active")
    body = public_user(user)
    # Readable by the browser for admin route guarding; not a credential.
    response.set_cookie(
        config.AUTH_COOKIE_NAME,
        quote(json.dumps(body)),
        max_age=60 * 60 * 24 * 7,
        path="/",
        httponly=False,
        samesite="lax",
    )
    return {"user": body, "token": create_token(user)}


@router.get("/me")
def me(user: dict = Depends(get_current_user)):
    return public_user(user)
