from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.message import EmailMessage
from itertools import count
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from tasky.core.exceptions import ConflictError
from tasky.core.settings import TaskySettings
from tasky.models.documents import utc_now
from tasky.models.enums import TaskCategory, TaskPriority, TaskStatus, TokenPurpose
from tasky.repositories.token_repository import hash_token
from tasky.tasky import TaskyService

TEST_JWT_SECRET = "unit-test-signing-key-0123456789abcdef0123456789"


def by_slow_marker(item):
    # Sort key: regular tests first, then slow ones
    return 0 if item.get_closest_marker("slow") is None else 1


def pytest_addoption(parser):
    parser.addoption("--slow-last", action="store_true", default=False)


def pytest_collection_modifyitems(items, config):
    if config.getoption("--slow-last"):
        items.sort(key=by_slow_marker)


# ---------------------------------------------------------------------------
# Fake records and repositories (pure in-memory, no Mongo)
# ---------------------------------------------------------------------------

_sequence = count()


def _stamp() -> datetime:
    # Strictly increasing timestamps so ordering by created_at is deterministic
    return utc_now() + timedelta(microseconds=next(_sequence))


@dataclass
class FakeUser:
    id: str
    name: str
    email: str
    password_hash: str
    gender: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_verified: bool = False
    last_login_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_stamp)
    updated_at: datetime = field(default_factory=_stamp)


@dataclass
class FakeTask:
    id: str
    owner_id: str
    title: str
    description: str
    category: TaskCategory = TaskCategory.OTHER
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[datetime] = None
    reminder: Optional[datetime] = None
    created_at: datetime = field(default_factory=_stamp)
    updated_at: datetime = field(default_factory=_stamp)


@dataclass
class FakeToken:
    email: str
    purpose: TokenPurpose
    token_hash: str
    expires_at: datetime


class FakeUserRepository:
    """In-memory fake user repository mirroring UserRepository."""

    def __init__(self) -> None:
        self.users: Dict[str, FakeUser] = {}

    async def get_by_id(self, user_id: str) -> Optional[FakeUser]:
        return self.users.get(user_id)

    async def get_by_email(self, email: str) -> Optional[FakeUser]:
        return next((u for u in self.users.values() if u.email == email), None)

    async def create_user(self, name: str, email: str, password_hash: str, gender=None) -> FakeUser:
        if await self.get_by_email(email) is not None:
            raise ConflictError("User with this email already exists")
        user = FakeUser(id=str(ObjectId()), name=name, email=email, password_hash=password_hash, gender=gender)
        self.users[user.id] = user
        return user

    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> Optional[FakeUser]:
        user = self.users.get(user_id)
        if user is None:
            return None
        other = await self.get_by_email(fields.get("email", user.email))
        if other is not None and other.id != user_id:
            raise ConflictError("User with this email already exists")
        for key, value in fields.items():
            setattr(user, key, value)
        user.updated_at = _stamp()
        return user

    async def touch_login(self, user_id: str, when: Optional[datetime] = None) -> Optional[FakeUser]:
        return await self.update_user(user_id, {"last_login_at": when or utc_now()})

    async def delete_user(self, user_id: str) -> bool:
        return self.users.pop(user_id, None) is not None


class FakeTaskRepository:
    """In-memory fake task repository mirroring TaskRepository."""

    def __init__(self) -> None:
        self.tasks: Dict[str, FakeTask] = {}

    async def create_task(self, owner_id: str, fields: Dict[str, Any]) -> FakeTask:
        task = FakeTask(id=str(ObjectId()), owner_id=owner_id, **fields)
        self.tasks[task.id] = task
        return task

    async def list_by_owner(self, owner_id: str) -> List[FakeTask]:
        owned = [t for t in self.tasks.values() if t.owner_id == owner_id]
        return sorted(owned, key=lambda t: t.created_at, reverse=True)

    async def get_for_owner(self, owner_id: str, task_id: str) -> Optional[FakeTask]:
        task = self.tasks.get(task_id)
        if task is None or task.owner_id != owner_id:
            return None
        return task

    async def update_for_owner(self, owner_id: str, task_id: str, fields: Dict[str, Any]) -> Optional[FakeTask]:
        task = await self.get_for_owner(owner_id, task_id)
        if task is None:
            return None
        for key, value in fields.items():
            setattr(task, key, value)
        task.updated_at = _stamp()
        return task

    async def delete_for_owner(self, owner_id: str, task_id: str) -> Optional[FakeTask]:
        task = await self.get_for_owner(owner_id, task_id)
        if task is None:
            return None
        return self.tasks.pop(task_id)


class FakeTokenRepository:
    """In-memory fake one-time token store mirroring TokenRepository."""

    def __init__(self) -> None:
        self.tokens: List[FakeToken] = []

    async def issue(self, email: str, purpose: TokenPurpose, token: str, ttl_seconds: int) -> FakeToken:
        self.tokens = [t for t in self.tokens if not (t.email == email and t.purpose == purpose)]
        record = FakeToken(email, purpose, hash_token(token), utc_now() + timedelta(seconds=ttl_seconds))
        self.tokens.append(record)
        return record

    async def consume(self, purpose: TokenPurpose, token: str, email: Optional[str] = None) -> Optional[FakeToken]:
        digest = hash_token(token)
        for record in self.tokens:
            if record.purpose == purpose and record.token_hash == digest and email in (None, record.email):
                self.tokens.remove(record)
                return record if record.expires_at > utc_now() else None
        return None


class RecordingTransport:
    """Mail transport that keeps messages in memory, optionally failing."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[EmailMessage] = []
        self.fail = fail

    async def send(self, message: EmailMessage) -> None:
        if self.fail:
            raise ConnectionRefusedError("SMTP server unavailable")
        self.sent.append(message)

    def last_text(self) -> str:
        return self.sent[-1].get_body(preferencelist=("plain",)).get_content()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> TaskySettings:
    values = {
        "ENVIRONMENT": "test",
        "JWT_SECRET": TEST_JWT_SECRET,
        "RATE_LIMIT_ENABLED": False,
        "LOG_LEVEL": "WARNING",
    }
    values.update(overrides)
    return TaskySettings(_env_file=None, **values)


@pytest.fixture
def settings() -> TaskySettings:
    return make_settings()


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def user_repo() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def task_repo() -> FakeTaskRepository:
    return FakeTaskRepository()


@pytest.fixture
def token_repo() -> FakeTokenRepository:
    return FakeTokenRepository()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


def build_service(settings, user_repo, task_repo, token_repo, transport) -> TaskyService:
    """
    Create a TaskyService wired to fake repositories.

    No database is touched: the lazy repository properties are backed by
    private fields which are replaced here.
    """
    svc = TaskyService(settings=settings, enable_db=False, mail_transport=transport, configure_logging=False)
    svc._user_repo = user_repo
    svc._task_repo = task_repo
    svc._token_repo = token_repo
    return svc


@pytest.fixture
def service(settings, user_repo, task_repo, token_repo, transport) -> TaskyService:
    return build_service(settings, user_repo, task_repo, token_repo, transport)


@pytest.fixture
def service_factory(user_repo, task_repo, token_repo, transport):
    def _factory(settings: TaskySettings) -> TaskyService:
        return build_service(settings, user_repo, task_repo, token_repo, transport)

    return _factory


@pytest.fixture
def client(service):
    with TestClient(service.app) as c:
        yield c
