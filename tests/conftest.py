"""Pytest configuration and fixtures."""

import os
import time
import uuid
from typing import AsyncGenerator, Optional
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["NOTIFICATIONS_DRY_RUN"] = "true"
os.environ["MASTER_KEY"] = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-officemate-tests"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["KMS_KEY_ID"] = ""
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"

from officemate.cache.redis_client import RedisStore, set_redis_store
from officemate.crypto import reset_field_encryptor
from officemate.db.models import AccountStatus, Base, UserAccount
from officemate.notifications.email import EmailSender, set_email_sender
from officemate.notifications.sms import SmsSender, set_sms_sender
from officemate.profile.route_preferences import RoutePreferenceStore
from officemate.utils import clear_user_locks


class InMemoryRedis:
    """Stand-in for ``redis.asyncio.Redis`` covering the commands RedisStore uses."""

    def __init__(self):
        self.data: dict[str, object] = {}
        self.expiry: dict[str, float] = {}

    def _purge(self, key: str) -> None:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    async def get(self, key: str) -> Optional[str]:
        self._purge(key)
        value = self.data.get(key)
        return None if value is None else str(value)

    async def set(self, key: str, value, ex: Optional[int] = None) -> bool:
        self.data[key] = str(value)
        if ex:
            self.expiry[key] = time.monotonic() + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def incr(self, key: str) -> int:
        self._purge(key)
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        self._purge(key)
        if key not in self.data:
            return False
        self.expiry[key] = time.monotonic() + seconds
        return True

    async def ttl(self, key: str) -> int:
        self._purge(key)
        if key not in self.data:
            return -2
        deadline = self.expiry.get(key)
        if deadline is None:
            return -1
        return max(int(deadline - time.monotonic()), 1)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self._purge(key)
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def exists(self, key: str) -> int:
        self._purge(key)
        return 1 if key in self.data else 0

    async def sadd(self, key: str, *members: str) -> int:
        self._purge(key)
        members_set = self.data.setdefault(key, set())
        before = len(members_set)
        members_set.update(members)
        return len(members_set) - before

    async def srem(self, key: str, *members: str) -> int:
        self._purge(key)
        members_set = self.data.get(key)
        if not members_set:
            return 0
        before = len(members_set)
        members_set.difference_update(members)
        return before - len(members_set)

    async def smembers(self, key: str) -> set:
        self._purge(key)
        return set(self.data.get(key, set()))

    async def aclose(self) -> None:
        pass


class RecordingSmsSender(SmsSender):
    """Dry-run SMS sender that keeps what it would have sent."""

    def __init__(self):
        super().__init__(dry_run=True)
        self.messages: list[tuple[str, str]] = []
        self.otps: dict[str, str] = {}

    async def send_sms(self, phone_number: str, message: str) -> str:
        self.messages.append((phone_number, message))
        return await super().send_sms(phone_number, message)

    async def send_otp_sms(self, phone_number: str, otp: str) -> str:
        self.otps[phone_number] = otp
        return await super().send_otp_sms(phone_number, otp)


class RecordingEmailSender(EmailSender):
    """Dry-run email sender that keeps what it would have sent."""

    def __init__(self):
        super().__init__(dry_run=True)
        self.messages: list[tuple[str, str]] = []
        self.bodies: list[str] = []
        self.otps: dict[str, str] = {}

    async def send_email(self, to_email: str, subject: str, body: str, html: bool = True) -> str:
        self.messages.append((to_email, subject))
        self.bodies.append(body)
        return await super().send_email(to_email, subject, body, html)

    async def send_otp_email(self, to_email: str, otp: str) -> str:
        self.otps[to_email] = otp
        return await super().send_otp_email(to_email, otp)


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Each test gets fresh senders, locks and encryptor."""
    reset_field_encryptor()
    clear_user_locks()
    yield
    set_redis_store(None)
    set_sms_sender(None)
    set_email_sender(None)
    reset_field_encryptor()


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def store(redis_client) -> RedisStore:
    """Redis store over the in-memory client, also installed as the shared store."""
    redis_store = RedisStore(redis_client)
    set_redis_store(redis_store)
    return redis_store


@pytest.fixture
def sms_sender() -> RecordingSmsSender:
    sender = RecordingSmsSender()
    set_sms_sender(sender)
    return sender


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    sender = RecordingEmailSender()
    set_email_sender(sender)
    return sender


async def make_account(
    session: AsyncSession,
    phone_number: Optional[str] = None,
    phone_verified: bool = True,
    corporate_email: Optional[str] = None,
    email_verified: bool = False,
) -> UserAccount:
    """Insert an account; fully verified when both flags are set."""
    account = UserAccount(
        phone_number=phone_number or f"+9198{uuid.uuid4().int % 10**8:08d}",
        phone_verified=phone_verified,
        corporate_email=corporate_email,
        email_verified=email_verified,
        account_status=(
            AccountStatus.ACTIVE if phone_verified and email_verified else AccountStatus.PENDING_EMAIL
        ),
    )
    session.add(account)
    await session.flush()
    return account


@pytest_asyncio.fixture
async def verified_account(db_session) -> UserAccount:
    """A fully verified account (phone and corporate email)."""
    account = await make_account(
        db_session,
        phone_number="+919876543210",
        corporate_email="jane.doe@acme.com",
        email_verified=True,
    )
    await db_session.commit()
    return account


@pytest_asyncio.fixture
async def phone_only_account(db_session) -> UserAccount:
    account = await make_account(db_session, phone_number="+919812345678")
    await db_session.commit()
    return account


@pytest.fixture
def account_factory(db_session):
    """Create extra accounts inside a test."""

    async def create(**kwargs) -> UserAccount:
        return await make_account(db_session, **kwargs)

    return create


class InMemoryRouteTable:
    """Stand-in for a boto3 DynamoDB ``Table`` keyed on (userId, routeType)."""

    def __init__(self):
        self.items: dict[tuple[str, str], dict] = {}

    def put_item(self, Item: dict) -> dict:
        self.items[(Item["userId"], Item["routeType"])] = dict(Item)
        return {}

    def get_item(self, Key: dict) -> dict:
        item = self.items.get((Key["userId"], Key["routeType"]))
        return {"Item": dict(item)} if item else {}

    def query(self, KeyConditionExpression) -> dict:
        user_id = KeyConditionExpression.get_expression()["values"][1]
        return {"Items": [dict(item) for (uid, _), item in self.items.items() if uid == user_id]}

    def delete_item(self, Key: dict) -> dict:
        self.items.pop((Key["userId"], Key["routeType"]), None)
        return {}


@pytest.fixture
def route_table() -> InMemoryRouteTable:
    return InMemoryRouteTable()


@pytest.fixture
def route_store(route_table) -> RoutePreferenceStore:
    return RoutePreferenceStore(table=route_table, client=MagicMock())
