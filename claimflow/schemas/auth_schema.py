from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr

from claimflow.schemas.common import Role


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class RefreshIn(BaseModel):
    refresh_token: Optional[str] = None


class UserOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: Role
    supervisor_level: Optional[int] = None
    department: Optional[str] = None
    is_active: bool = True
    assigned_supervisor1: Optional[str] = None
    assigned_supervisor2: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    user: UserOut
    access_token: str
    refresh_token: str
    message: Optional[str] = None


class MessageOut(BaseModel):
    message: str
