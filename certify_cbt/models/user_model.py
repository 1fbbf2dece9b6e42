"""
models/user_model.py

Signed-in user and the token bundle returned by the login endpoint.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class UserRole(str, Enum):
    CANDIDATE = "candidate"
    EXAMINER = "examiner"
    ADMIN = "admin"


class User(BaseModel):
    id: int
    email: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole = UserRole.CANDIDATE
    is_staff: bool = False


class AuthTokens(BaseModel):
    access: str = Field(..., min_length=1)
    refresh: Optional[str] = None
    user: User


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Enter a valid email address.")
        return v


class GradeEntry(BaseModel):
    """One examiner mark for a free-text answer."""

    question_id: int
    marks: float = Field(..., ge=0)
    comment: str = ""
