import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402
from argon2 import PasswordHasher  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from phoneauth.config import Settings  # noqa: E402
from phoneauth.database import Database  # noqa: E402
from phoneauth.main import create_app  # noqa: E402
from phoneauth.services.ledger import RefreshTokenLedger  # noqa: E402
from phoneauth.services.otp import OtpManager  # noqa: E402
from phoneauth.services.sessions import SessionOrchestrator  # noqa: E402
from phoneauth.services.tokens import TokenIssuer  # noqa: E402
from phoneauth.services.users import UserDirectory  # noqa: E402
from phoneauth.store.sql import SqlRecordStore  # noqa: E402

TEST_SECRET = "Test-Secret-Key_for-Automation-Only-987654321!"
TEST_PHONE = "+15551234567"


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def otp_hasher():
    """Argon2 with minimal cost so hashing does not dominate test time."""
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def settings():
    return Settings(
        jwt_secret=TEST_SECRET,
        access_token_ttl_seconds=15 * 60,
        refresh_token_ttl_seconds=7 * 24 * 3600,
        otp_length=6,
        otp_ttl_seconds=10 * 60,
        otp_max_attempts=5,
        otp_debug=True,
        store_backend="sql",
        database_url="sqlite://",
    )


@pytest.fixture
def store():
    database = Database("sqlite://")
    database.create_all()
    record_store = SqlRecordStore(database)
    yield record_store
    record_store.close()


@pytest.fixture
def otp_manager(store, settings, otp_hasher, clock):
    return OtpManager(
        store,
        code_length=settings.otp_length,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
        hasher=otp_hasher,
        clock=clock,
    )


@pytest.fixture
def token_issuer(settings):
    return TokenIssuer(
        settings.jwt_secret,
        access_ttl_seconds=settings.access_token_ttl_seconds,
        refresh_ttl_seconds=settings.refresh_token_ttl_seconds,
    )


@pytest.fixture
def ledger(store):
    return RefreshTokenLedger(store)


@pytest.fixture
def users(store):
    return UserDirectory(store)


@pytest.fixture
def orchestrator(otp_manager, token_issuer, ledger, users, settings):
    return SessionOrchestrator(
        otp_manager,
        token_issuer,
        ledger,
        users,
        otp_length=settings.otp_length,
        otp_ttl_seconds=settings.otp_ttl_seconds,
    )


@pytest.fixture
def app(settings, store, otp_hasher):
    return create_app(settings, store=store, otp_hasher=otp_hasher)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
