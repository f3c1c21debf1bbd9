"""Beanie Document models for the Tasky MongoDB collections."""

from datetime import datetime, timezone
from typing import Optional

import pymongo
from beanie import Document, Indexed, Insert, PydanticObjectId, Replace, Save, before_event
from pydantic import Field
from pymongo import IndexModel

from .enums import Gender, TaskCategory, TaskPriority, TaskStatus, TokenPurpose


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampedDocument(Document):
    """Document base maintaining ``created_at``/``updated_at``."""

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @before_event(Insert, Replace, Save)
    def _touch(self) -> None:
        self.updated_at = utc_now()

    class Settings:
        use_cache = False


class UserDocument(TimestampedDocument):
    """Registered user. ``password_hash`` never leaves the repository layer."""

    name: str
    email: Indexed(str, unique=True)
    password_hash: str
    gender: Optional[Gender] = None
    profile_picture_url: Optional[str] = None
    is_verified: bool = False
    last_login_at: Optional[datetime] = None

    class Settings:
        name = "users"
        use_cache = False


class TaskDocument(TimestampedDocument):
    """A task owned by exactly one user."""

    owner_id: PydanticObjectId
    title: str
    description: str
    category: TaskCategory = TaskCategory.OTHER
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[datetime] = None
    reminder: Optional[datetime] = None

    class Settings:
        name = "tasks"
        use_cache = False
        indexes = [
            [("owner_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)],
            [("owner_id", pymongo.ASCENDING), ("status", pymongo.ASCENDING)],
            [("owner_id", pymongo.ASCENDING), ("due_date", pymongo.ASCENDING)],
        ]


class VerificationTokenDocument(Document):
    """One-time e-mail verification code or password reset token.

    Only the SHA-256 digest of the token is stored. MongoDB removes expired
    documents through the TTL index on ``expires_at``.
    """

    email: Indexed(str)
    purpose: TokenPurpose
    token_hash: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "verification_tokens"
        use_cache = False
        indexes = [
            [("email", pymongo.ASCENDING), ("purpose", pymongo.ASCENDING)],
            IndexModel([("expires_at", pymongo.ASCENDING)], expireAfterSeconds=0),
        ]


__all__ = [
    "TaskDocument",
    "UserDocument",
    "VerificationTokenDocument",
    "utc_now",
]
