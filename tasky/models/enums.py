"""Enums for the Tasky application."""

from enum import Enum


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class TaskCategory(str, Enum):
    """Closed set of task categories."""

    STUDY = "Study"
    WORK = "Work"
    PERSONAL = "Personal"
    SHOPPING = "Shopping"
    OTHER = "Other"


class TaskPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TaskStatus(str, Enum):
    """Task workflow status."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class TokenPurpose(str, Enum):
    """What a one-time e-mail token may be redeemed for."""

    VERIFY_EMAIL = "verify_email"
    PASSWORD_RESET = "password_reset"
