from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from claimflow.db.mongo import get_mongo_db, to_object_id
from claimflow.core.config import settings
from claimflow.core.rbac import require_roles
from claimflow.core.security import (
    REFRESH_COOKIE,
    create_access_token,
    find_refresh_token,
    get_current_user,
    issue_refresh_token,
    public_user,
    verify_password,
)
from claimflow.schemas.auth_schema import LoginIn, MessageOut, RefreshIn, TokenResponse, UserOut
from claimflow.services.audit import create_audit_log

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_refresh_cookie(response: Response, raw: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        raw,
        max_age=settings.REFRESH_TOKEN_DAYS * 24 * 3600,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/api/v1/auth",
    )


@router.post("/token", response_model=TokenResponse)
async def login(payload: LoginIn, response: Response, db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    user = await db["users"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.get("is_active", True):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated")
    now = datetime.utcnow()
    await db["users"].update_one({"_id": user["_id"]}, {"$set": {"last_login_at": now}})
    user["last_login_at"] = now
    refresh = await issue_refresh_token(db, user["_id"])
    _set_refresh_cookie(response, refresh)
    return {
        "user": public_user(user),
        "access_token": create_access_token(user["_id"]),
        "refresh_token": refresh,
        "message": "Login successful",
    }


@router.post("/refresh", response_model=TokenResponse)
async def refresh_tokens(
    response: Response,
    payload: Optional[RefreshIn] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    raw = (payload.refresh_token if payload else None) or refresh_cookie
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token required")
    doc = await find_refresh_token(db, raw)
    if not doc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired refresh token")
    user = await db["users"].find_one({"_id": doc["user_id"]})
    if not user or not user.get("is_active", True):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    # Rotate: the presented token is spent, its replacement stays in the same family
    spent = await db["refresh_tokens"].find_one_and_update(
        {"_id": doc["_id"], "is_revoked": False},
        {"$set": {"is_revoked": True, "revoked_at": datetime.utcnow()}},
    )
    if spent is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired refresh token")
    new_refresh = await issue_refresh_token(db, user["_id"], family=doc.get("family"))
    _set_refresh_cookie(response, new_refresh)
    return {
        "user": public_user(user),
        "access_token": create_access_token(user["_id"]),
        "refresh_token": new_refresh,
        "message": "Token refreshed",
    }


@router.post("/logout", response_model=MessageOut)
async def logout(
    response: Response,
    payload: Optional[RefreshIn] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    raw = (payload.refresh_token if payload else None) or refresh_cookie
    if raw:
        doc = await find_refresh_token(db, raw)
        if doc:
            await db["refresh_tokens"].update_many(
                {"family": doc.get("family")},
                {"$set": {"is_revoked": True, "revoked_at": datetime.utcnow()}},
            )
    response.delete_cookie(REFRESH_COOKIE, path="/api/v1/auth")
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserOut)
async def get_me(current_user=Depends(get_current_user)):
    return current_user


@router.post("/revoke/{user_id}", response_model=MessageOut)
async def revoke_user_tokens(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    require_roles(current_user, {"admin"})
    oid = to_object_id(user_id, "User not found")
    result = await db["refresh_tokens"].update_many(
        {"user_id": oid, "is_revoked": False},
        {"$set": {"is_revoked": True, "revoked_at": datetime.utcnow()}},
    )
    await create_audit_log(db, current_user["id"], "revoke_tokens", "user", user_id, {"revoked": result.modified_count})
    return {"message": f"Revoked {result.modified_count} session(s)"}
