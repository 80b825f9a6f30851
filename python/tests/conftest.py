"""Pytest configuration and fixtures for Dropdawn tests.

Test isolation strategy:
- Required settings get harmless defaults before the app is imported
- The conversation store runs on an in-memory SQLite engine per test
- Auth tests use a client whose AuthMiddleware trusts MockJwtVerifier
- Outbound HTTP is mocked with respx; the model is replaced by ScriptedRouter
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path
from uuid import UUID

os.environ.setdefault("DROPDAWN_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_JWKS_URL", "https://test.supabase.co/auth/v1/.well-known/jwks.json")
os.environ.setdefault("SUPABASE_ISSUER", "test-issuer")
os.environ.setdefault("SUPABASE_AUDIENCES", "test-audience")

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dropdawn.api.deps import get_db, get_session_factory
from dropdawn.app import create_app
from dropdawn.auth.middleware import AuthMiddleware
from dropdawn.config import clear_settings_cache
from dropdawn.db.models import Base
from dropdawn.db.session import create_session_factory
from tests.helpers import MockJwtVerifier, create_test_user_id

PROVIDER_KEY_VARS = (
    "GOOGLE_GENERATIVE_AI_API_KEY",
    "MISTRAL_API_KEY",
    "COHERE_API_KEY",
    "DEEPINFRA_API_KEY",
    "NETLIFY_ACCESS_TOKEN",
    "TAVILY_API_KEY",
    "REDIS_URL",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
)


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with the schema created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session on the per-test engine."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(session_factory):
    """App with auth middleware trusting MockJwtVerifier and the SQLite store."""
    app = create_app(skip_auth_middleware=True)
    app.add_middleware(AuthMiddleware, verifier=MockJwtVerifier())
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def authenticated_client(app) -> Generator[TestClient, None, None]:
    """Test client for the app fixture. Use auth_headers() for signed-in requests."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client without auth middleware, for public endpoints."""
    app = create_app(skip_auth_middleware=True)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def test_user_id() -> UUID:
    return create_test_user_id()


@pytest.fixture(autouse=True)
def clean_provider_env(monkeypatch):
    """Start every test without provider, tool or quota credentials."""
    for name in PROVIDER_KEY_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
