from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from claimflow.schemas.common import Role


class UserIn(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = Role.employee
    supervisor_level: Optional[int] = Field(default=None, ge=1, le=2)
    department: Optional[str] = None
    assigned_supervisor1: Optional[str] = None
    assigned_supervisor2: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    supervisor_level: Optional[int] = Field(default=None, ge=1, le=2)
    department: Optional[str] = None
    assigned_supervisor1: Optional[str] = None
    assigned_supervisor2: Optional[str] = None


class ResetPasswordIn(BaseModel):
    password: str = Field(min_length=6)


class SupervisorOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    supervisor_level: Optional[int] = None
    department: Optional[str] = None


class EmployeeNameOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    department: Optional[str] = None
    role: Role
