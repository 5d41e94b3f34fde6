"""
NodeBase Backend: User Schemas
===============================

What:  Pydantic models for user data crossing the API boundary.
How:   `UserRead` is built from ORM rows (`from_attributes`) and is the
       element type of the `getUsers` procedure. The form models validate
       the sign-in and sign-up pages.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

PASSWORD_MIN_LENGTH = 8


class UserRead(BaseModel):
    """
    Public representation of a user.

    `password_hash` never leaves the service layer.
    """

    id: int = Field(description="Generated user identifier")
    email: str = Field(description="Unique sign-in email")
    name: Optional[str] = Field(default=None, description="Display name")
    created_at: datetime = Field(description="Creation timestamp (UTC)")
    updated_at: datetime = Field(description="Last update timestamp (UTC)")

    model_config = {"from_attributes": True}


def _normalize_email(value: str) -> str:
    cleaned = value.strip().lower()
    if "@" not in cleaned or cleaned.startswith("@") or cleaned.endswith("@"):
        raise ValueError("Enter a valid email address")
    return cleaned


class LoginForm(BaseModel):
    """Fields posted by the sign-in page."""

    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)


class SignupForm(BaseModel):
    """
    Fields posted by the sign-up page.

    Validation rules:
        - email: normalized to lower case, must contain '@'
        - name: optional, blank becomes None
        - password: at least PASSWORD_MIN_LENGTH characters
        - confirm_password: must equal password
    """

    name: Optional[str] = Field(default=None, max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH)
    confirm_password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("name")
    @classmethod
    def blank_name_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        cleaned = v.strip()
        return cleaned or None

    @model_validator(mode="after")
    def passwords_match(self) -> "SignupForm":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self
