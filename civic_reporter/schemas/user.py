from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
import re

from civic_reporter.models.user import UserRole


def check_password_complexity(v: str) -> str:
    if not re.search(r'[A-Z]', v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r'[0-9]', v):
        raise ValueError("Password must contain at least one digit")
    return v


# Properties to receive on registration
class UserCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("password")
    @classmethod
    def password_complexity(cls, v: str) -> str:
        return check_password_complexity(v)


# Properties for user login
class UserLogin(BaseModel):
    email: EmailStr
    password: str


# Properties to return to client
class User(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: UserRole
    is_active: bool
    is_verified: bool
    created_at: datetime

    class Config:
        from_attributes = True


# Admin updates
class UserStatusUpdate(BaseModel):
    is_active: bool


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserStats(BaseModel):
    total: int = 0
    pending: int = 0
    resolved: int = 0
    rejected: int = 0
    upvotes_received: int = 0


# Token response
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[User] = None


# Token payload
class TokenPayload(BaseModel):
    sub: Optional[int] = None
    role: Optional[UserRole] = None


# Email verification
class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=4, max_length=10)


class ResendOtpRequest(BaseModel):
    email: EmailStr
