from typing import Optional

from pydantic import Field, field_validator

from .base import ApiModel
from .user import _validated_email, normalize_email


class SendVerificationRequest(ApiModel):
    email: str = Field(..., min_length=1, max_length=254)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _validated_email(value)


class VerifyEmailRequest(ApiModel):
    email: str = Field(..., min_length=1, max_length=254)
    code: str = Field(..., pattern=r"^\d{5}$")

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_email(value)


class PasswordResetRequest(ApiModel):
    email: str = Field(..., min_length=1, max_length=254)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _validated_email(value)


class ResetPasswordRequest(ApiModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class SendEmailRequest(ApiModel):
    """Arbitrary message sent on behalf of an authenticated user."""

    to: str = Field(..., max_length=254)
    subject: str = Field(..., min_length=1, max_length=200)
    text: str = Field(..., min_length=1)
    html: Optional[str] = None

    @field_validator("to")
    @classmethod
    def _check_to(cls, value: str) -> str:
        return _validated_email(value)


class VerificationSentResponse(ApiModel):
    message: str
    # Only populated outside production, to ease local testing
    code: Optional[str] = None
