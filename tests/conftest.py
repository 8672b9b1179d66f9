"""Shared fixtures: an in-memory database and an app wired to it.

See https://fastapi.tiangolo.com/advanced/testing-database
"""
import os
from http.cookies import SimpleCookie

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("FICAI_PWD_PEPPER", "dGVzdGluZyBwZXBwZXI")
os.environ.setdefault("FICAI_BETA_KEY", "testing-beta-key")
os.environ.setdefault("FICAI_DOMAIN", "testserver")
os.environ.setdefault("FICAI_DATABASE_URL", "sqlite://")

from ficai_signals.config import Settings, get_settings  # noqa: E402
from ficai_signals.database import get_db, init_db  # noqa: E402
from ficai_signals.dependencies import SESSION_COOKIE_NAME  # noqa: E402
from ficai_signals.main import create_app  # noqa: E402

BETA_KEY = "testing-beta-key"


@pytest.fixture
def settings():
    return Settings(
        pwd_pepper="dGVzdGluZyBwZXBwZXI",
        beta_key=BETA_KEY,
        domain="testserver",
        database_url="sqlite://",
    )


@pytest.fixture
def engine():
    # StaticPool keeps every connection on the same in-memory database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def app(session_factory, settings):
    get_settings.cache_clear()
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def client(app):
    """Returns a client that does not run the lifespan, so no real db is touched."""
    return TestClient(app)


def session_cookie(response):
    """Value of the session cookie set by response, or None."""
    header = response.headers.get("set-cookie")
    if header is None:
        return None
    cookie = SimpleCookie()
    cookie.load(header)
    morsel = cookie.get(SESSION_COOKIE_NAME)
    return morsel.value if morsel is not None else None


def with_session(token):
    return {"Cookie": f"{SESSION_COOKIE_NAME}={token}"}


@pytest.fixture
def register(client):
    """Register an account and return (account id, session token)."""
    def _register(email="a@x.com", password="pw"):
        res = client.post(
            "/v1/accounts",
            json={"email": email, "password": password, "betaKey": BETA_KEY},
        )
        assert res.status_code == 201, res.text
        return res.json()["id"], session_cookie(res)
    return _register
