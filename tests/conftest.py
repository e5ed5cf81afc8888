import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ["APP_ENV"] = "dev"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "test_verify_token")
os.environ.setdefault("DEFAULT_WA_TOKEN", "default_wa_token")
os.environ.setdefault("DEFAULT_PHONE_NUMBER_ID", "default_phone_id")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-default")
# Note: WHATSAPP_APP_SECRET not set by default - allows tests without signature verification
os.environ.setdefault("WHATSAPP_DRY_RUN", "true")
os.environ.setdefault("GENERATION_FAILURE_POLICY", "silent")

from app.api.dependencies import get_message_deliverer, get_reply_generator
from app.db.base import Base
from app.db.deps import get_db
import app.db.models as _models  # noqa: F401
from app.main import app
from app.services.qualification.errors import DeliveryError, GenerationError

# Test database URL (in-memory SQLite for fast tests)
SQLALCHEMY_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///:memory:")


def is_sqlite() -> bool:
    """Return True if the test database is SQLite (e.g. in-memory tests)."""
    return (SQLALCHEMY_DATABASE_URL or "").startswith("sqlite")


# SQLite needs check_same_thread=False and StaticPool; Postgres does not support check_same_thread
if is_sqlite():
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Make the app (and the maintenance job) use the same DB
import app.db.session as _db_session

_db_session.engine = engine
_db_session.SessionLocal = TestingSessionLocal


class FakeGenerator:
    """Generation double: returns `reply` (or raises `error`) and records every call."""

    def __init__(self, reply: str | None = "Merci ! Quel est votre budget approximatif ?"):
        self.reply = reply
        self.error: Exception | None = None
        self.calls: list[dict] = []

    async def generate(self, instructions, history, new_message, profile):
        self.calls.append(
            {
                "instructions": instructions,
                "history": list(history),
                "new_message": new_message,
                "profile": profile,
            }
        )
        if self.error is not None:
            raise self.error
        return self.reply

    def fail_with(self, message: str = "upstream unavailable") -> None:
        self.error = GenerationError(message)


class FakeDeliverer:
    """Delivery double: records (endpoint_id, recipient_id, text); can be told to fail."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.error: Exception | None = None

    async def deliver(self, endpoint_id, recipient_id, text, profile):
        if self.error is not None:
            raise self.error
        self.sent.append((endpoint_id, recipient_id, text))
        return {"status": "sent", "message_id": f"wamid.out.{len(self.sent)}", "to": recipient_id}

    def fail_with(self, message: str = "Graph API 500") -> None:
        self.error = DeliveryError(message)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def fake_deliverer():
    return FakeDeliverer()


@pytest.fixture(scope="function")
def client(db, fake_generator, fake_deliverer):
    """Create a test client with database and capability overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reply_generator] = lambda: fake_generator
    app.dependency_overrides[get_message_deliverer] = lambda: fake_deliverer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
