"""App and HTTP client fixtures for API integration tests.

The app is built by ``create_app`` with its dependencies pointed at the
per-test SQLite engine, the test settings (with code echoing on), and an
in-memory notifier.
"""

from collections.abc import AsyncGenerator
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ballot_api.core.config import Settings, get_settings
from ballot_api.core.dependencies import get_async_session, get_code_notifier
from ballot_api.lib.notifier import InMemoryCodeNotifier
from ballot_api.main import create_app


@pytest.fixture
def api_settings(settings: Settings) -> Settings:
    """Test settings with issued codes echoed in responses."""
    return settings.model_copy(update={"otp_echo_code": True})


@pytest.fixture
def app(async_engine: AsyncEngine, api_settings: Settings, notifier: InMemoryCodeNotifier) -> FastAPI:
    """Application wired to the test database."""
    with patch("ballot_api.main.get_settings", return_value=api_settings):
        app = create_app()

    factory = async_sessionmaker(async_engine, expire_on_commit=False)

    async def override_session() -> AsyncGenerator[AsyncSession]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_code_notifier] = lambda: notifier
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def bearer(token: str) -> dict[str, str]:
    """Authorization header for a bearer token."""
    return {"Authorization": f"Bearer {token}"}
