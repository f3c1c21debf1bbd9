from .base import ApiModel, MessageResponse
from .enums import Gender, TaskCategory, TaskPriority, TaskStatus, TokenPurpose
from .mail import (
    PasswordResetRequest,
    ResetPasswordRequest,
    SendEmailRequest,
    SendVerificationRequest,
    VerificationSentResponse,
    VerifyEmailRequest,
)
from .task import (
    TaskCreateRequest,
    TaskEnvelope,
    TaskListResponse,
    TaskResponse,
    TaskStatusUpdateRequest,
    TaskUpdateRequest,
    is_overdue,
)
from .user import (
    AuthResponse,
    DeleteAccountRequest,
    LoginPayload,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    RegisterPayload,
    TokenResponse,
    UserEnvelope,
    UserResponse,
    normalize_email,
)

__all__ = [
    # Base
    "ApiModel",
    "MessageResponse",
    # Enums
    "Gender",
    "TaskCategory",
    "TaskPriority",
    "TaskStatus",
    "TokenPurpose",
    # Users / auth
    "AuthResponse",
    "DeleteAccountRequest",
    "LoginPayload",
    "PasswordChangeRequest",
    "ProfileUpdateRequest",
    "RegisterPayload",
    "TokenResponse",
    "UserEnvelope",
    "UserResponse",
    "normalize_email",
    # Tasks
    "TaskCreateRequest",
    "TaskEnvelope",
    "TaskListResponse",
    "TaskResponse",
    "TaskStatusUpdateRequest",
    "TaskUpdateRequest",
    "is_overdue",
    # Mail
    "PasswordResetRequest",
    "ResetPasswordRequest",
    "SendEmailRequest",
    "SendVerificationRequest",
    "VerificationSentResponse",
    "VerifyEmailRequest",
]
