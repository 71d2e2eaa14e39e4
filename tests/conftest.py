"""
Shared fixtures: in-memory SQLite database, test settings and a signed-webhook helper.
"""
import hashlib
import hmac
import os
import time

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.db.models  # noqa: F401
from app.main import app
from app.db.base import Base
from app.db.init_db import init_db
from app.db.models.tenant import Tenant
from app.db.session import get_db
from app.core.config import Settings, get_settings
from app.core.security import create_access_token

WEBHOOK_SECRET = "whsec_test_secret"
JWT_SECRET = "test-jwt-secret"

# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def settings():
    return Settings(
        database_url=TEST_DATABASE_URL,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        auth_jwt_secret=JWT_SECRET,
        app_base_url="https://app.example.com",
    )


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    init_db(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db, settings):
    """Test client sharing the test session and settings with the app."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_tenant(db):
    """Factory creating a tenant row."""
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        n = counter["n"]
        values = {
            "auth_user_id": f"auth-user-{n}",
            "email": f"dietitian{n}@example.com",
            "first_name": "Camille",
            "last_name": f"Martin{n}",
        }
        values.update(fields)
        tenant = Tenant(**values)
        db.add(tenant)
        db.commit()
        db.refresh(tenant)
        return tenant

    return _make


@pytest.fixture
def sign():
    """Build a stripe-signature header for a raw payload."""
    def _sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
        timestamp = int(time.time()) if timestamp is None else timestamp
        signed = f"{timestamp}.{payload}".encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return _sign


@pytest.fixture
def auth_headers():
    """Bearer header for a tenant, shaped like the auth provider's tokens."""
    def _headers(tenant: Tenant) -> dict:
        token = create_access_token({"sub": tenant.auth_user_id, "aud": "authenticated"}, JWT_SECRET)
        return {"Authorization": f"Bearer {token}"}

    return _headers
