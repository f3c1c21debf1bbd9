from .auth_service import AuthService
from .notification_service import (
    LogTransport,
    MailTransport,
    NotificationService,
    SmtpTransport,
    generate_reset_token,
    generate_verification_code,
)
from .task_service import TaskService
from .user_service import UserService

__all__ = [
    "AuthService",
    "LogTransport",
    "MailTransport",
    "NotificationService",
    "SmtpTransport",
    "TaskService",
    "UserService",
    "generate_reset_token",
    "generate_verification_code",
]
