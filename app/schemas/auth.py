from pydantic import EmailStr, Field
from datetime import datetime
from typing import List, Optional
from app.models.user import UserRole
from app.schemas.common import CamelModel


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class Token(CamelModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(CamelModel):
    id: str
    email: EmailStr
    name: str
    is_admin: bool
    role: UserRole
    region: Optional[str] = None
    practices: List[str] = []
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None


class UserCreate(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str
    role: UserRole = UserRole.PRACTICE_MEMBER
    is_admin: bool = False
    region: Optional[str] = None
    practices: List[str] = []


class UserUpdate(CamelModel):
    name: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[UserRole] = None
    is_admin: Optional[bool] = None
    region: Optional[str] = None
    practices: Optional[List[str]] = None
    is_active: Optional[bool] = None
