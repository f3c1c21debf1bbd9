import asyncio
from typing import Any, Optional

from tasky.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from tasky.core.logging import get_logger
from tasky.core.security import AuthenticatedUser, create_access_token, hash_password, verify_password
from tasky.core.settings import TaskySettings, get_tasky_config
from tasky.core.validation import validate_payload
from tasky.models import (
    AuthResponse,
    LoginPayload,
    MessageResponse,
    PasswordChangeRequest,
    PasswordResetRequest,
    RegisterPayload,
    ResetPasswordRequest,
    SendVerificationRequest,
    TokenPurpose,
    TokenResponse,
    UserEnvelope,
    UserResponse,
    VerificationSentResponse,
    VerifyEmailRequest,
)
from tasky.models.documents import utc_now
from tasky.repositories.token_repository import TokenRepository
from tasky.repositories.user_repository import UserRepository
from tasky.services.notification_service import (
    NotificationService,
    generate_reset_token,
    generate_verification_code,
)

logger = get_logger("services.auth")


class AuthService:
    """Registration, login, tokens and credential recovery."""

    def __init__(
        self,
        user_repo: UserRepository,
        token_repo: Optional[TokenRepository] = None,
        notifications: Optional[NotificationService] = None,
        settings: Optional[TaskySettings] = None,
    ):
        self.user_repo = user_repo
        self.token_repo = token_repo
        self.notifications = notifications
        self.settings = settings or get_tasky_config()

    async def _hash(self, password: str) -> str:
        # bcrypt is deliberately slow; keep it off the event loop
        return await asyncio.to_thread(hash_password, password, self.settings)

    async def _verify(self, password: str, stored_hash: str) -> bool:
        return await asyncio.to_thread(verify_password, password, stored_hash)

    def _issue_token(self, user_id: str) -> str:
        return create_access_token(user_id, self.settings)

    async def register(self, fields: Any) -> AuthResponse:
        payload = validate_payload(RegisterPayload, fields)

        password_hash = await self._hash(payload.password)
        # The unique index on email turns a duplicate into ConflictError
        user = await self.user_repo.create_user(
            name=payload.name,
            email=payload.email,
            password_hash=password_hash,
            gender=payload.gender,
        )
        logger.info("user_registered", user_id=str(user.id))
        return AuthResponse(
            message="User registered successfully",
            user=UserResponse.from_user(user),
            token=self._issue_token(str(user.id)),
        )

    async def login(self, fields: Any) -> AuthResponse:
        payload = validate_payload(LoginPayload, fields)

        user = await self.user_repo.get_by_email(payload.email)
        if user is None:
            logger.info("login_failed", reason="unknown_email")
            raise NotFoundError("User not found")
        if not await self._verify(payload.password, user.password_hash):
            logger.info("login_failed", reason="bad_password", user_id=str(user.id))
            raise AuthenticationError("Invalid password")

        user = await self.user_repo.touch_login(str(user.id), utc_now()) or user
        logger.info("login_succeeded", user_id=str(user.id))
        return AuthResponse(
            message="Login successful",
            user=UserResponse.from_user(user),
            token=self._issue_token(str(user.id)),
        )

    async def authenticate(self, user_id: str) -> Optional[AuthenticatedUser]:
        """Resolve a token subject to a live user, or None if the user is gone."""
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            return None
        return AuthenticatedUser(user_id=str(user.id), email=user.email, name=user.name)

    async def refresh(self, user_id: str) -> TokenResponse:
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return TokenResponse(message="Token refreshed successfully", token=self._issue_token(str(user.id)))

    async def change_password(self, user_id: str, current_password: Any, new_password: Any) -> None:
        payload = validate_payload(
            PasswordChangeRequest,
            {"current_password": current_password, "new_password": new_password},
        )

        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not await self._verify(payload.current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        await self.user_repo.update_user(user_id, {"password_hash": await self._hash(payload.new_password)})
        logger.info("password_changed", user_id=user_id)

    # -------------------------------------------------------------------------
    # E-mail verification and password reset
    # -------------------------------------------------------------------------

    async def request_email_verification(self, fields: Any) -> VerificationSentResponse:
        payload = validate_payload(SendVerificationRequest, fields)
        user = await self.user_repo.get_by_email(payload.email)
        if user is None:
            raise NotFoundError("User not found")

        code = generate_verification_code()
        await self.token_repo.issue(
            payload.email, TokenPurpose.VERIFY_EMAIL, code, self.settings.VERIFICATION_CODE_TTL
        )
        await self.notifications.send_verification_email(payload.email, code)
        return VerificationSentResponse(
            message="Verification email sent successfully",
            code=None if self.settings.is_production else code,
        )

    async def verify_email(self, fields: Any) -> UserEnvelope:
        payload = validate_payload(VerifyEmailRequest, fields)
        record = await self.token_repo.consume(TokenPurpose.VERIFY_EMAIL, payload.code, email=payload.email)
        if record is None:
            raise ValidationError("Invalid or expired verification code")

        user = await self.user_repo.get_by_email(payload.email)
        if user is None:
            raise NotFoundError("User not found")
        user = await self.user_repo.update_user(str(user.id), {"is_verified": True})
        logger.info("email_verified", user_id=str(user.id))
        return UserEnvelope(message="Email verified successfully", user=UserResponse.from_user(user))

    async def request_password_reset(self, fields: Any) -> MessageResponse:
        payload = validate_payload(PasswordResetRequest, fields)
        user = await self.user_repo.get_by_email(payload.email)
        if user is None:
            raise NotFoundError("User not found")

        token = generate_reset_token()
        await self.token_repo.issue(payload.email, TokenPurpose.PASSWORD_RESET, token, self.settings.RESET_TOKEN_TTL)
        await self.notifications.send_password_reset_email(payload.email, token)
        logger.info("password_reset_requested", user_id=str(user.id))
        return MessageResponse(message="Password reset email sent successfully")

    async def reset_password(self, fields: Any) -> MessageResponse:
        payload = validate_payload(ResetPasswordRequest, fields)
        record = await self.token_repo.consume(TokenPurpose.PASSWORD_RESET, payload.token)
        if record is None:
            raise ValidationError("Invalid or expired reset token")

        user = await self.user_repo.get_by_email(record.email)
        if user is None:
            raise NotFoundError("User not found")
        await self.user_repo.update_user(str(user.id), {"password_hash": await self._hash(payload.new_password)})
        logger.info("password_reset", user_id=str(user.id))
        return MessageResponse(message="Password reset successfully")
