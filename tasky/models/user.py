import re
from datetime import datetime
from typing import Any, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from .base import ApiModel
from .enums import Gender

# Same language as the classic `\w+([.-]?\w+)*@...` pattern, without the
# nested optional quantifier that backtracks exponentially on bad input.
EMAIL_PATTERN = re.compile(r"^\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*(?:\.\w{2,3})+$")

# Fields a client may never write through the profile endpoint.
PROTECTED_USER_FIELDS = {
    "password": "password",
    "passwordHash": "password",
    "password_hash": "password",
    "id": "id",
    "_id": "id",
    "createdAt": "createdAt",
    "created_at": "createdAt",
    "updatedAt": "updatedAt",
    "updated_at": "updatedAt",
}


def normalize_email(value: str) -> str:
    return value.strip().lower()


def _validated_email(value: str) -> str:
    value = normalize_email(value)
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Please enter a valid email address")
    return value


def _coerce_gender(value: Any) -> Any:
    # Accept "male", "FEMALE", ... for the closed Gender enum
    if isinstance(value, str):
        return value.strip().capitalize()
    return value


class RegisterPayload(ApiModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=6)
    gender: Optional[Gender] = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _validated_email(value)

    @field_validator("gender", mode="before")
    @classmethod
    def _check_gender(cls, value: Any) -> Any:
        return _coerce_gender(value)


class LoginPayload(ApiModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_email(value)


class ProfileUpdateRequest(ApiModel):
    """Partial profile update. Unknown and system fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[str] = Field(default=None, max_length=254)
    gender: Optional[Gender] = None
    profile_picture_url: Optional[str] = Field(default=None, max_length=2048)

    @model_validator(mode="before")
    @classmethod
    def _reject_protected(cls, data: Any) -> Any:
        if isinstance(data, dict):
            for key in data:
                if key in PROTECTED_USER_FIELDS:
                    raise ValueError(f"Field '{PROTECTED_USER_FIELDS[key]}' cannot be updated through this endpoint")
        return data

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: Optional[str]) -> Optional[str]:
        return _validated_email(value) if value is not None else value

    @field_validator("gender", mode="before")
    @classmethod
    def _check_gender(cls, value: Any) -> Any:
        return _coerce_gender(value)

    @model_validator(mode="after")
    def _required_not_null(self) -> "ProfileUpdateRequest":
        for field in ("name", "email"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"Field '{field}' cannot be null")
        return self


class PasswordChangeRequest(ApiModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class DeleteAccountRequest(ApiModel):
    password: str = Field(..., min_length=1)


class UserResponse(ApiModel):
    """Public projection of a user. Never carries the password hash."""

    id: str
    name: str
    email: str
    gender: Optional[Gender] = None
    profile_picture_url: Optional[str] = None
    is_verified: bool = False
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: Any) -> "UserResponse":
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            gender=getattr(user, "gender", None),
            profile_picture_url=getattr(user, "profile_picture_url", None),
            is_verified=getattr(user, "is_verified", False),
            last_login_at=getattr(user, "last_login_at", None),
            created_at=getattr(user, "created_at", None),
            updated_at=getattr(user, "updated_at", None),
        )


class UserEnvelope(ApiModel):
    message: str
    user: UserResponse


class AuthResponse(ApiModel):
    message: str
    user: UserResponse
    token: str


class TokenResponse(ApiModel):
    message: str
    token: str
