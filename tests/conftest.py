"""Shared pytest fixtures for the test suite"""
import os
from datetime import timedelta
from typing import Generator

from cryptography.fernet import Fernet

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FERNET_KEY"] = Fernet.generate_key().decode()
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["LINKEDIN_CLIENT_ID"] = "personal-client"
os.environ["LINKEDIN_CLIENT_SECRET"] = "personal-secret"
os.environ["LINKEDIN_COMMUNITY_CLIENT_ID"] = "community-client"
os.environ["LINKEDIN_COMMUNITY_CLIENT_SECRET"] = "community-secret"
os.environ["APP_URL"] = "http://frontend.test"
os.environ["CRON_SECRET"] = "cron-secret"
os.environ["METRICS_SCHEDULER_ENABLED"] = "false"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from linkedbud.main import app
from linkedbud.deps import get_db
from linkedbud.auth.session import get_current_user_id
from linkedbud.db.base import Base, utcnow
from linkedbud.db import crud, crud_tokens

USER_ID = "user-1"

test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """FastAPI test client on the test database, signed in as USER_ID"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_token(db_session: Session):
    def _make(token_type="personal", user_id=USER_ID, expires_in=3600, refresh_token=None, **kwargs):
        return crud_tokens.upsert_token(
            db_session, user_id, token_type,
            access_token=f"{token_type}-access",
            expires_in=expires_in,
            refresh_token=refresh_token,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_post(db_session: Session):
    def _make(content="Hello LinkedIn", user_id=USER_ID, **fields):
        return crud.create_post(db_session, user_id, content, **fields)
    return _make


@pytest.fixture
def expire():
    """Push a token's expiry into the past."""
    def _expire(db_session, tok, seconds=60):
        tok.token_expires_at = utcnow() - timedelta(seconds=seconds)
        db_session.add(tok)
        db_session.commit()
        return tok
    return _expire


@pytest.fixture(autouse=True)
def no_network(monkeypatch):
    """Real transports fail fast; tests patch the calls they care about."""
    def refuse(self, request):
        raise httpx.ConnectError("network disabled in tests", request=request)
    monkeypatch.setattr(httpx.HTTPTransport, "handle_request", refuse)
