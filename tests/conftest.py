"""Shared fixtures: a throwaway SQLite backend, profiles and an API client."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from threadspire.config import Settings
from threadspire.database import Backend
from threadspire.main import create_app
from threadspire.models import Profile
from threadspire.security import create_token, hash_password

PASSWORD = "correct horse"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'threadspire.db'}",
        tracing_enabled=False,
        jwt_secret="test-secret",
        app_url="https://threadspire.test",
    )


@pytest.fixture
async def backend(settings):
    backend = Backend(settings)
    await backend.init_schema()
    yield backend
    await backend.dispose()


@pytest.fixture
def make_profile(backend):
    """Insert a profile and return it (detached, usable as a viewer)."""
    counter = {"n": 0}

    async def _make(name="Test User", email=None, password=PASSWORD, avatar_url=None):
        counter["n"] += 1
        async with backend.session() as db:
            profile = Profile(
                name=name,
                email=email or f"user{counter['n']}@threadspire.test",
                password_hash=hash_password(password),
                avatar_url=avatar_url,
            )
            db.add(profile)
        return profile

    return _make


@pytest.fixture
async def alice(make_profile):
    return await make_profile(name="Alice", avatar_url="https://img.test/alice.png")


@pytest.fixture
async def bob(make_profile):
    return await make_profile(name="Bob")


@pytest.fixture
def rate_limiter():
    limiter = MagicMock()
    limiter.check = AsyncMock()
    return limiter


@pytest.fixture
def mailer():
    mailer = MagicMock()
    mailer.send_password_reset = AsyncMock()
    return mailer


@pytest.fixture
def app(settings, backend, rate_limiter, mailer):
    return create_app(settings, backend, rate_limiter=rate_limiter, mailer=mailer)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def auth_headers(settings):
    def _headers(profile):
        return {"Authorization": f"Bearer {create_token(settings, profile.id)}"}

    return _headers
