import hashlib
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
from bson.errors import InvalidId

from claimflow.core.config import settings
from claimflow.db.mongo import get_mongo_db


ALGORITHM = "HS256"
REFRESH_COOKIE = "refresh_token"


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def verify_password(password: str, hashed: str) -> bool:
    return secrets.compare_digest(hash_password(password), hashed)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_jwt(payload: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = payload.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_MINUTES)
    exp = datetime.utcnow() + expires_delta
    to_encode.update({"exp": exp})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    return create_jwt({"sub": str(user_id), "type": "access"}, expires_delta)


def decode_jwt(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


async def issue_refresh_token(db: AsyncIOMotorDatabase, user_id: ObjectId, family: str | None = None) -> str:
    """Store a new refresh token and return its raw form ``<jti>.<secret>``.

    Only a hash of the raw token is persisted. Tokens issued by rotation keep the
    family of the token they replace so a whole login session can be revoked.
    """
    jti = uuid.uuid4().hex
    raw = f"{jti}.{secrets.token_urlsafe(32)}"
    now = datetime.utcnow()
    await db["refresh_tokens"].insert_one({
        "user_id": user_id,
        "token_hash": hash_token(raw),
        "jti": jti,
        "family": family or uuid.uuid4().hex,
        "expires_at": now + timedelta(days=settings.REFRESH_TOKEN_DAYS),
        "is_revoked": False,
        "created_at": now,
    })
    return raw


async def find_refresh_token(db: AsyncIOMotorDatabase, raw: str) -> dict | None:
    jti = raw.split(".", 1)[0]
    doc = await db["refresh_tokens"].find_one({
        "jti": jti,
        "is_revoked": False,
        "expires_at": {"$gt": datetime.utcnow()},
    })
    if not doc or not secrets.compare_digest(doc.get("token_hash", ""), hash_token(raw)):
        return None
    return doc


def public_user(user: dict) -> dict:
    """Strip secrets and stringify ids for API responses."""
    def _sid(v):
        return str(v) if v else None

    return {
        "id": str(user["_id"]),
        "name": user.get("name", ""),
        "email": user.get("email", ""),
        "role": user.get("role", "employee"),
        "supervisor_level": user.get("supervisor_level"),
        "department": user.get("department"),
        "is_active": user.get("is_active", True),
        "assigned_supervisor1": _sid(user.get("assigned_supervisor1")),
        "assigned_supervisor2": _sid(user.get("assigned_supervisor2")),
        "last_login_at": user.get("last_login_at"),
        "created_at": user.get("created_at"),
        "updated_at": user.get("updated_at"),
    }


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    token = authorization.split(" ", 1)[1]
    payload = decode_jwt(token)
    if payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    try:
        uid = ObjectId(str(payload.get("sub")))
    except InvalidId as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload") from exc
    user = await db["users"].find_one({"_id": uid})
    if not user or not user.get("is_active", True):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return public_user(user)
