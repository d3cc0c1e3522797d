import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from db.models.user import Role

_LETTER_RE = re.compile(r"[a-zA-Z]")
_DIGIT_RE = re.compile(r"\d")


def check_password_strength(password: str) -> str:
    if not _LETTER_RE.search(password):
        raise ValueError("Password must contain at least one letter")
    if not _DIGIT_RE.search(password):
        raise ValueError("Password must contain at least one number")
    return password


class UserBase(BaseModel):
    username: str = Field(min_length=3, max_length=255)
    email: EmailStr


class UserCreate(UserBase):
    password: str = Field(min_length=8)

    @field_validator("password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        return check_password_strength(value)


class AdminUserCreate(UserBase):
    password: str = Field(min_length=8)
    role: Role = Role.user


class UserUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged"""
    username: Optional[str] = Field(default=None, min_length=3, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8)
    role: Optional[Role] = None


class UserLogin(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=8)


class User(BaseModel):
    id: str
    username: str
    email: str
    role: Role
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        extra = "ignore"


class UserList(BaseModel):
    items: List[User]
    total: int
    limit: int
    offset: int


class Principal(BaseModel):
    """Authenticated caller as seen by authorization checks"""
    id: str
    role: Role
