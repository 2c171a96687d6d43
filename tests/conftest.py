"""Shared test fixtures for async database, sessions, election data, and auth tokens."""

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ballot_api.core.config import Settings
from ballot_api.core.security import create_access_token, hash_password
from ballot_api.lib.notifier import InMemoryCodeNotifier
from ballot_api.models.base import Base
from ballot_api.models.election import Candidate, Constituency, Party
from ballot_api.models.user import User

TEST_PASSWORD = "testpassword123"


@dataclass
class ElectionData:
    """Reference rows for one small election."""

    constituency: Constituency
    other_constituency: Constituency
    party: Party
    candidate: Candidate
    other_candidate: Candidate


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret_key="test-secret-key-not-for-production",
        jwt_algorithm="HS256",
        jwt_access_token_expire_minutes=30,
        jwt_refresh_token_expire_days=7,
        environment="test",
        otp_cleanup_enabled=False,
    )


@pytest.fixture
def notifier() -> InMemoryCodeNotifier:
    """Notifier that records deliveries instead of sending them."""
    return InMemoryCodeNotifier()


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    session_factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


def make_user(
    email: str,
    *,
    role: str = "voter",
    is_verified: bool = True,
    is_active: bool = True,
    password: str = TEST_PASSWORD,
) -> User:
    """Build an unsaved user with a hashed password."""
    return User(
        id=uuid.uuid4(),
        email=email,
        hashed_password=hash_password(password),
        first_name="Test",
        last_name="User",
        role=role,
        is_verified=is_verified,
        is_active=is_active,
        failed_login_attempts=0,
    )


@pytest.fixture
async def sample_user(async_session: AsyncSession) -> User:
    """Create a sample admin user in the test database."""
    user = make_user("admin@test.com", role="admin")
    async_session.add(user)
    await async_session.commit()
    await async_session.refresh(user)
    return user


@pytest.fixture
async def voter(async_session: AsyncSession) -> User:
    """Create a verified, active voter."""
    user = make_user("voter@test.com")
    async_session.add(user)
    await async_session.commit()
    await async_session.refresh(user)
    return user


@pytest.fixture
async def election(async_session: AsyncSession) -> ElectionData:
    """Create two constituencies, one party, and one candidate in each constituency."""
    constituency = Constituency(id=uuid.uuid4(), name="North Ward", state="Karnataka", is_active=True)
    other_constituency = Constituency(id=uuid.uuid4(), name="South Ward", state="Karnataka", is_active=True)
    party = Party(id=uuid.uuid4(), name="Civic Party", symbol="lamp", is_active=True)
    async_session.add_all([constituency, other_constituency, party])
    await async_session.flush()

    candidate = Candidate(
        id=uuid.uuid4(),
        name="A. Candidate",
        party_id=party.id,
        constituency_id=constituency.id,
        is_active=True,
    )
    other_candidate = Candidate(
        id=uuid.uuid4(),
        name="B. Candidate",
        party_id=party.id,
        constituency_id=other_constituency.id,
        is_active=True,
    )
    async_session.add_all([candidate, other_candidate])
    await async_session.commit()
    return ElectionData(
        constituency=constituency,
        other_constituency=other_constituency,
        party=party,
        candidate=candidate,
        other_candidate=other_candidate,
    )


@pytest.fixture
def admin_token(settings: Settings) -> str:
    """Generate a JWT access token for the admin user."""
    return create_access_token(
        subject="admin@test.com",
        role="admin",
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


@pytest.fixture
def voter_token(settings: Settings) -> str:
    """Generate a JWT access token for the voter."""
    return create_access_token(
        subject="voter@test.com",
        role="voter",
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
