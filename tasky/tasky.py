"""Tasky Service - HTTP gateway for users, tasks and e-mail notifications."""

import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pydantic
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tasky.core import (
    AuthenticatedUser,
    InternalError,
    TaskyError,
    TaskySettings,
    UnauthenticatedError,
    ValidationError,
    get_jwt_secret,
    get_logger,
    get_tasky_config,
    setup_logging,
)
from tasky.core.auth_middleware import AuthMiddleware
from tasky.core.error_middleware import UnhandledErrorMiddleware
from tasky.core.rate_limiter import RateLimiter, RateLimitMiddleware
from tasky.core.request_logging import RequestLoggingMiddleware
from tasky.core.security_headers import SecurityHeadersMiddleware
from tasky.core.validation import format_validation_errors, summarize
from tasky.db import close_db, initialize_db
from tasky.models import (
    AuthResponse,
    DeleteAccountRequest,
    LoginPayload,
    MessageResponse,
    PasswordChangeRequest,
    PasswordResetRequest,
    ProfileUpdateRequest,
    RegisterPayload,
    ResetPasswordRequest,
    SendEmailRequest,
    SendVerificationRequest,
    TaskCreateRequest,
    TaskEnvelope,
    TaskListResponse,
    TaskStatusUpdateRequest,
    TaskUpdateRequest,
    TokenResponse,
    UserEnvelope,
    VerificationSentResponse,
    VerifyEmailRequest,
)
from tasky.repositories.task_repository import TaskRepository
from tasky.repositories.token_repository import TokenRepository
from tasky.repositories.user_repository import UserRepository
from tasky.services import AuthService, MailTransport, NotificationService, TaskService, UserService

PRODUCTION_ERROR_MESSAGE = "Something went wrong!"


class TaskyService:
    """Tasky backend: wires repositories, services and middleware into a FastAPI app."""

    def __init__(
        self,
        *,
        settings: Optional[TaskySettings] = None,
        enable_db: bool = True,
        mail_transport: Optional[MailTransport] = None,
        configure_logging: bool = True,
    ):
        self.settings = settings or get_tasky_config()
        cfg = self.settings

        if configure_logging:
            setup_logging(cfg.LOG_LEVEL, json_logs=cfg.log_json, log_dir=cfg.LOG_DIR)
        self.logger = get_logger("service")

        # Fails fast in production when no signing key is configured
        get_jwt_secret(cfg)

        self.db_enabled = enable_db
        self.started_at = time.monotonic()

        # Repositories
        self._user_repo: Optional[UserRepository] = None
        self._task_repo: Optional[TaskRepository] = None
        self._token_repo: Optional[TokenRepository] = None

        # Services
        self._mail_transport = mail_transport
        self._notification_service: Optional[NotificationService] = None
        self._auth_service: Optional[AuthService] = None
        self._user_service: Optional[UserService] = None
        self._task_service: Optional[TaskService] = None

        self.rate_limiter = RateLimiter(cfg.RATE_LIMIT_MAX_REQUESTS, cfg.RATE_LIMIT_WINDOW_SECONDS)
        self.auth_rate_limiter = RateLimiter(cfg.AUTH_RATE_LIMIT_MAX_ATTEMPTS, cfg.RATE_LIMIT_WINDOW_SECONDS)

        self.app = FastAPI(
            title="Tasky API",
            summary="Tasky Backend Service",
            description="Task management API with user accounts and e-mail notifications",
            version=cfg.VERSION,
            lifespan=self._lifespan,
        )

        self._register_middleware()
        self._register_exception_handlers()

        # Register endpoints
        self._register_system_endpoints()
        self._register_auth_endpoints()
        self._register_user_endpoints()
        self._register_task_endpoints()
        self._register_mail_endpoints()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        if self.db_enabled:
            await initialize_db()
        self.logger.info(
            "service_started",
            environment=self.settings.ENVIRONMENT,
            version=self.settings.VERSION,
            db_enabled=self.db_enabled,
        )
        try:
            yield
        finally:
            if self.db_enabled:
                await close_db()
            self.logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Lazy accessors (created during request handling, inside live loop)
    # -------------------------------------------------------------------------

    @property
    def user_repo(self) -> UserRepository:
        if self._user_repo is None:
            self._user_repo = UserRepository()
        return self._user_repo

    @property
    def task_repo(self) -> TaskRepository:
        if self._task_repo is None:
            self._task_repo = TaskRepository()
        return self._task_repo

    @property
    def token_repo(self) -> TokenRepository:
        if self._token_repo is None:
            self._token_repo = TokenRepository()
        return self._token_repo

    @property
    def notification_service(self) -> NotificationService:
        if self._notification_service is None:
            self._notification_service = NotificationService(self._mail_transport, self.settings)
        return self._notification_service

    @property
    def auth_service(self) -> AuthService:
        if self._auth_service is None:
            self._auth_service = AuthService(
                self.user_repo,
                self.token_repo,
                self.notification_service,
                self.settings,
            )
        return self._auth_service

    @property
    def user_service(self) -> UserService:
        if self._user_service is None:
            self._user_service = UserService(self.user_repo)
        return self._user_service

    @property
    def task_service(self) -> TaskService:
        if self._task_service is None:
            self._task_service = TaskService(self.task_repo)
        return self._task_service

    # -------------------------------------------------------------------------
    # Middleware and error handling
    # -------------------------------------------------------------------------

    async def _resolve_user(self, user_id: str) -> Optional[AuthenticatedUser]:
        return await self.auth_service.authenticate(user_id)

    def _register_middleware(self) -> None:
        """Install the middleware pipeline.

        Starlette runs the last added middleware first, so the effective order is
        request logging, CORS, security headers, unhandled errors, rate limiting,
        authentication.
        """
        cfg = self.settings
        self.app.add_middleware(
            AuthMiddleware,
            resolve_user=self._resolve_user,
            settings=cfg,
        )
        self.app.add_middleware(
            RateLimitMiddleware,
            limiter=self.rate_limiter,
            auth_limiter=self.auth_rate_limiter,
            trust_proxy=cfg.TRUST_PROXY,
            enabled=cfg.RATE_LIMIT_ENABLED,
        )
        self.app.add_middleware(UnhandledErrorMiddleware, render_error=self._unhandled_error)
        self.app.add_middleware(SecurityHeadersMiddleware)
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=[cfg.FRONTEND_URL],
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )
        self.app.add_middleware(
            RequestLoggingMiddleware,
            trust_proxy=cfg.TRUST_PROXY,
            logger=get_logger("http"),
        )

    def _error_response(self, error: TaskyError, cause: Optional[BaseException] = None) -> JSONResponse:
        body: Dict[str, Any] = error.to_dict()
        if error.status_code >= 500:
            if self.settings.is_production:
                body["error"] = PRODUCTION_ERROR_MESSAGE
            else:
                fault = cause or error
                body["detail"] = str(fault)
                body["stack"] = "".join(traceback.format_exception(type(fault), fault, fault.__traceback__))
        return JSONResponse(status_code=error.status_code, content=body)

    async def _unhandled_error(self, request: Request, exc: Exception) -> JSONResponse:
        self.logger.exception("unhandled_error", path=request.url.path, method=request.method)
        return self._error_response(InternalError(), exc)

    def _register_exception_handlers(self) -> None:
        app = self.app

        @app.exception_handler(TaskyError)
        async def _tasky_error(request: Request, exc: TaskyError) -> JSONResponse:
            if exc.status_code >= 500:
                self.logger.error("request_error", path=request.url.path, code=exc.code, error=exc.message)
            return self._error_response(exc, exc.__cause__)

        @app.exception_handler(RequestValidationError)
        async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
            details = format_validation_errors(exc.errors())
            return self._error_response(ValidationError(summarize(details), details=details))

        @app.exception_handler(pydantic.ValidationError)
        async def _pydantic_validation_error(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
            details = format_validation_errors(exc.errors())
            return self._error_response(ValidationError(summarize(details), details=details))

        @app.exception_handler(StarletteHTTPException)
        async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
            if exc.status_code == 404:
                return JSONResponse(
                    status_code=404,
                    content={
                        "error": "Route not found",
                        "status": 404,
                        "code": "not_found",
                        "path": request.url.path,
                        "method": request.method,
                    },
                )
            code = "method_not_allowed" if exc.status_code == 405 else "http_error"
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": str(exc.detail), "status": exc.status_code, "code": code},
                headers=getattr(exc, "headers", None),
            )

        # Last resort for failures raised by the outer middleware themselves
        app.add_exception_handler(Exception, self._unhandled_error)

    @staticmethod
    def _current_user(request: Request) -> AuthenticatedUser:
        user = getattr(request.state, "user", None)
        if user is None:
            raise UnauthenticatedError()
        return user

    # -------------------------------------------------------------------------
    # Endpoint registration
    # -------------------------------------------------------------------------

    def _register_system_endpoints(self) -> None:
        self.app.add_api_route("/health", self.health, methods=["GET"], tags=["system"])
        self.app.add_api_route("/api", self.api_info, methods=["GET"], tags=["system"])

    def _register_auth_endpoints(self) -> None:
        """Register auth-related endpoints."""
        add = self.app.add_api_route
        add("/auth/register", self.register, methods=["POST"], status_code=201,
            response_model=AuthResponse, tags=["auth"])
        add("/auth/login", self.login, methods=["POST"], response_model=AuthResponse, tags=["auth"])
        add("/auth/me", self.me, methods=["GET"], response_model=UserEnvelope, tags=["auth"])
        add("/auth/refresh", self.refresh, methods=["POST"], response_model=TokenResponse, tags=["auth"])
        add("/auth/logout", self.logout, methods=["POST"], response_model=MessageResponse, tags=["auth"])
        add("/auth/reset-password", self.reset_password, methods=["POST"],
            response_model=MessageResponse, tags=["auth"])

    def _register_user_endpoints(self) -> None:
        """Register user-related endpoints."""
        add = self.app.add_api_route
        add("/users/profile", self.get_profile, methods=["GET"], response_model=UserEnvelope, tags=["users"])
        add("/users/profile", self.update_profile, methods=["PUT"], response_model=UserEnvelope, tags=["users"])
        add("/users/password", self.change_password, methods=["PUT"], response_model=MessageResponse, tags=["users"])
        add("/users", self.delete_account, methods=["DELETE"], response_model=MessageResponse, tags=["users"])

    def _register_task_endpoints(self) -> None:
        """Register task-related endpoints."""
        add = self.app.add_api_route
        add("/tasks", self.create_task, methods=["POST"], status_code=201, response_model=TaskEnvelope, tags=["tasks"])
        add("/tasks", self.list_tasks, methods=["GET"], response_model=TaskListResponse, tags=["tasks"])
        add("/tasks/{task_id}", self.get_task, methods=["GET"], response_model=TaskEnvelope, tags=["tasks"])
        add("/tasks/{task_id}", self.update_task, methods=["PUT"], response_model=TaskEnvelope, tags=["tasks"])
        add("/tasks/{task_id}/status", self.update_task_status, methods=["PATCH"],
            response_model=TaskEnvelope, tags=["tasks"])
        add("/tasks/{task_id}", self.delete_task, methods=["DELETE"], response_model=TaskEnvelope, tags=["tasks"])

    def _register_mail_endpoints(self) -> None:
        """Register e-mail endpoints."""
        add = self.app.add_api_route
        add("/mail/send-verification", self.send_verification, methods=["POST"],
            response_model=VerificationSentResponse, response_model_exclude_none=True, tags=["mail"])
        add("/mail/verify-email", self.verify_email, methods=["POST"], response_model=UserEnvelope, tags=["mail"])
        add("/mail/send-password-reset", self.send_password_reset, methods=["POST"],
            response_model=MessageResponse, tags=["mail"])
        add("/mail/send-email", self.send_email, methods=["POST"], response_model=MessageResponse, tags=["mail"])

    # -------------------------------------------------------------------------
    # System handlers
    # -------------------------------------------------------------------------

    async def health(self) -> Dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - self.started_at, 3),
            "environment": self.settings.ENVIRONMENT,
            "version": self.settings.VERSION,
        }

    async def api_info(self) -> Dict[str, Any]:
        return {
            "message": "Welcome to Tasky API",
            "version": self.settings.VERSION,
            "environment": self.settings.ENVIRONMENT,
            "endpoints": {
                "auth": "/auth",
                "users": "/users",
                "tasks": "/tasks",
                "mail": "/mail",
                "health": "/health",
            },
        }

    # -------------------------------------------------------------------------
    # Auth handlers
    # -------------------------------------------------------------------------

    async def register(self, payload: RegisterPayload) -> AuthResponse:
        """Register a new user and return an access token."""
        return await self.auth_service.register(payload)

    async def login(self, payload: LoginPayload) -> AuthResponse:
        """Login an existing user and return an access token."""
        return await self.auth_service.login(payload)

    async def me(self, request: Request) -> UserEnvelope:
        user = self._current_user(request)
        profile = await self.user_service.get_profile(user.user_id)
        return UserEnvelope(message="Profile fetched successfully", user=profile)

    async def refresh(self, request: Request) -> TokenResponse:
        return await self.auth_service.refresh(self._current_user(request).user_id)

    async def logout(self, request: Request) -> MessageResponse:
        # Tokens are stateless; the client discards its copy
        user = self._current_user(request)
        self.logger.info("user_logged_out", user_id=user.user_id)
        return MessageResponse(message="Logged out successfully")

    async def reset_password(self, payload: ResetPasswordRequest) -> MessageResponse:
        return await self.auth_service.reset_password(payload)

    # -------------------------------------------------------------------------
    # User handlers
    # -------------------------------------------------------------------------

    async def get_profile(self, request: Request) -> UserEnvelope:
        profile = await self.user_service.get_profile(self._current_user(request).user_id)
        return UserEnvelope(message="Profile fetched successfully", user=profile)

    async def update_profile(self, request: Request, payload: ProfileUpdateRequest) -> UserEnvelope:
        profile = await self.user_service.update_profile(self._current_user(request).user_id, payload)
        return UserEnvelope(message="User updated successfully", user=profile)

    async def change_password(self, request: Request, payload: PasswordChangeRequest) -> MessageResponse:
        await self.auth_service.change_password(
            self._current_user(request).user_id,
            payload.current_password,
            payload.new_password,
        )
        return MessageResponse(message="Password updated successfully")

    async def delete_account(self, request: Request, payload: DeleteAccountRequest) -> MessageResponse:
        await self.user_service.delete_account(self._current_user(request).user_id, payload.password)
        return MessageResponse(message="User account deleted successfully")

    # -------------------------------------------------------------------------
    # Task handlers
    # -------------------------------------------------------------------------

    async def create_task(self, request: Request, payload: TaskCreateRequest) -> TaskEnvelope:
        task = await self.task_service.create(self._current_user(request).user_id, payload)
        return TaskEnvelope(message="Task created successfully", task=task)

    async def list_tasks(self, request: Request) -> TaskListResponse:
        return await self.task_service.list(self._current_user(request).user_id)

    async def get_task(self, request: Request, task_id: str) -> TaskEnvelope:
        task = await self.task_service.get(self._current_user(request).user_id, task_id)
        return TaskEnvelope(message="Task fetched successfully", task=task)

    async def update_task(self, request: Request, task_id: str, payload: TaskUpdateRequest) -> TaskEnvelope:
        task = await self.task_service.update(self._current_user(request).user_id, task_id, payload)
        return TaskEnvelope(message="Task updated successfully", task=task)

    async def update_task_status(
        self, request: Request, task_id: str, payload: TaskStatusUpdateRequest
    ) -> TaskEnvelope:
        task = await self.task_service.update_status(self._current_user(request).user_id, task_id, payload.status)
        return TaskEnvelope(message="Task status updated successfully", task=task)

    async def delete_task(self, request: Request, task_id: str) -> TaskEnvelope:
        task = await self.task_service.delete(self._current_user(request).user_id, task_id)
        return TaskEnvelope(message="Task deleted successfully", task=task)

    # -------------------------------------------------------------------------
    # Mail handlers
    # -------------------------------------------------------------------------

    async def send_verification(self, payload: SendVerificationRequest) -> VerificationSentResponse:
        return await self.auth_service.request_email_verification(payload)

    async def verify_email(self, payload: VerifyEmailRequest) -> UserEnvelope:
        return await self.auth_service.verify_email(payload)

    async def send_password_reset(self, payload: PasswordResetRequest) -> MessageResponse:
        return await self.auth_service.request_password_reset(payload)

    async def send_email(self, request: Request, payload: SendEmailRequest) -> MessageResponse:
        user = self._current_user(request)
        await self.notification_service.send_raw_email(payload.to, payload.subject, payload.text, payload.html)
        self.logger.info("raw_email_sent", user_id=user.user_id)
        return MessageResponse(message="Email sent successfully")


def create_app(settings: Optional[TaskySettings] = None) -> FastAPI:
    """Application factory, e.g. ``uvicorn --factory tasky.tasky:create_app``."""
    return TaskyService(settings=settings).app
