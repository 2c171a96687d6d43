"""Tests for the authentication service module."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.core.config import Settings
from ballot_api.core.errors import ErrorCategory
from ballot_api.core.security import decode_token, verify_password
from ballot_api.models.user import User
from ballot_api.schemas.auth import RegisterRequest
from ballot_api.services.auth_service import (
    AuthenticationError,
    AuthFailure,
    DuplicateUserError,
    UserNotFoundError,
    authenticate_user,
    change_password,
    generate_tokens,
    get_user_by_email,
    list_users,
    refresh_access_token,
    register_user,
    reset_password,
    set_user_active,
    unlock_user,
    verify_user,
)
from tests.conftest import TEST_PASSWORD, make_user

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _registration(**overrides: object) -> RegisterRequest:
    data = {
        "email": "New.Voter@Test.com",
        "password": "averysecretpw",
        "first_name": "New",
        "last_name": "Voter",
        "phone_number": "+919876543210",
    }
    data.update(overrides)
    return RegisterRequest(**data)


async def _fail_logins(session: AsyncSession, settings: Settings, count: int, now: datetime = NOW) -> None:
    for _ in range(count):
        with pytest.raises(AuthenticationError):
            await authenticate_user(session, "voter@test.com", "wrong-password", settings, now=now)


class TestRegisterUser:
    """Tests for register_user."""

    @pytest.mark.asyncio
    async def test_creates_unverified_user(self, async_session: AsyncSession) -> None:
        user = await register_user(async_session, _registration())

        assert user.email == "new.voter@test.com"
        assert user.is_verified is False
        assert user.is_active is True
        assert user.role == "voter"
        assert user.failed_login_attempts == 0
        assert verify_password("averysecretpw", user.hashed_password)

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, async_session: AsyncSession) -> None:
        await register_user(async_session, _registration())

        with pytest.raises(DuplicateUserError) as exc_info:
            await register_user(async_session, _registration(email="NEW.voter@test.com", phone_number=None))
        assert exc_info.value.category is ErrorCategory.CONFLICT

    @pytest.mark.asyncio
    async def test_duplicate_phone_rejected(self, async_session: AsyncSession) -> None:
        await register_user(async_session, _registration())

        with pytest.raises(DuplicateUserError):
            await register_user(async_session, _registration(email="someone.else@test.com"))

    @pytest.mark.asyncio
    async def test_users_without_phone_do_not_collide(self, async_session: AsyncSession) -> None:
        await register_user(async_session, _registration(phone_number=None))
        other = await register_user(async_session, _registration(email="second@test.com", phone_number=None))

        assert other.phone_number is None


class TestAuthenticateUser:
    """Tests for authenticate_user and the lockout window."""

    @pytest.mark.asyncio
    async def test_valid_credentials(self, async_session: AsyncSession, settings: Settings, voter: User) -> None:
        user = await authenticate_user(async_session, "VOTER@test.com", TEST_PASSWORD, settings, now=NOW)

        assert user.id == voter.id
        assert user.last_login_at == NOW
        assert user.failed_login_attempts == 0

    @pytest.mark.asyncio
    async def test_unknown_email(self, async_session: AsyncSession, settings: Settings) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await authenticate_user(async_session, "nobody@test.com", TEST_PASSWORD, settings, now=NOW)

        assert exc_info.value.reason is AuthFailure.INVALID_CREDENTIALS
        assert exc_info.value.category is ErrorCategory.VALIDATION

    @pytest.mark.asyncio
    async def test_wrong_password_counts(self, async_session: AsyncSession, settings: Settings, voter: User) -> None:
        await _fail_logins(async_session, settings, 2)

        assert voter.failed_login_attempts == 2
        assert voter.locked_until is None

    @pytest.mark.asyncio
    async def test_fifth_failure_locks_account(
        self, async_session: AsyncSession, settings: Settings, voter: User
    ) -> None:
        await _fail_logins(async_session, settings, 5)

        assert voter.failed_login_attempts == 5
        assert voter.locked_until == NOW + timedelta(minutes=30)

        # The correct password does not help while the lock is in force.
        with pytest.raises(AuthenticationError) as exc_info:
            await authenticate_user(
                async_session, "voter@test.com", TEST_PASSWORD, settings, now=NOW + timedelta(minutes=29)
            )
        assert exc_info.value.reason is AuthFailure.ACCOUNT_LOCKED
        assert exc_info.value.locked_until == NOW + timedelta(minutes=30)
        assert exc_info.value.category is ErrorCategory.STATE

    @pytest.mark.asyncio
    async def test_lock_heals_after_window(self, async_session: AsyncSession, settings: Settings, voter: User) -> None:
        await _fail_logins(async_session, settings, 5)

        user = await authenticate_user(
            async_session, "voter@test.com", TEST_PASSWORD, settings, now=NOW + timedelta(minutes=31)
        )

        assert user.failed_login_attempts == 0
        assert user.locked_until is None

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, async_session: AsyncSession, settings: Settings, voter: User) -> None:
        await _fail_logins(async_session, settings, 4)
        await authenticate_user(async_session, "voter@test.com", TEST_PASSWORD, settings, now=NOW)
        await _fail_logins(async_session, settings, 4)

        assert voter.failed_login_attempts == 4
        assert voter.locked_until is None

    @pytest.mark.asyncio
    async def test_inactive_user(self, async_session: AsyncSession, settings: Settings) -> None:
        async_session.add(make_user("gone@test.com", is_active=False))
        await async_session.commit()

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticate_user(async_session, "gone@test.com", TEST_PASSWORD, settings, now=NOW)
        assert exc_info.value.reason is AuthFailure.ACCOUNT_INACTIVE

    @pytest.mark.asyncio
    async def test_lock_checked_before_active_flag(self, async_session: AsyncSession, settings: Settings) -> None:
        user = make_user("both@test.com", is_active=False)
        user.locked_until = NOW + timedelta(minutes=5)
        async_session.add(user)
        await async_session.commit()

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticate_user(async_session, "both@test.com", TEST_PASSWORD, settings, now=NOW)
        assert exc_info.value.reason is AuthFailure.ACCOUNT_LOCKED

    @pytest.mark.asyncio
    async def test_configured_threshold(self, async_session: AsyncSession, settings: Settings, voter: User) -> None:
        strict = settings.model_copy(update={"max_failed_logins": 2, "lockout_duration_minutes": 5})

        await _fail_logins(async_session, strict, 2)

        assert voter.locked_until == NOW + timedelta(minutes=5)


class TestAccountAdministration:
    """Tests for verify, unlock, activation, and listing."""

    @pytest.mark.asyncio
    async def test_verify_user(self, async_session: AsyncSession) -> None:
        user = await register_user(async_session, _registration())

        verified = await verify_user(async_session, user.id)

        assert verified.is_verified is True

    @pytest.mark.asyncio
    async def test_unlock_user(self, async_session: AsyncSession, settings: Settings, voter: User) -> None:
        await _fail_logins(async_session, settings, 5)

        user = await unlock_user(async_session, voter.id)

        assert user.failed_login_attempts == 0
        assert user.locked_until is None
        await authenticate_user(async_session, "voter@test.com", TEST_PASSWORD, settings, now=NOW)

    @pytest.mark.asyncio
    async def test_set_user_active(self, async_session: AsyncSession, voter: User) -> None:
        user = await set_user_active(async_session, voter.id, is_active=False)
        assert user.is_active is False

        user = await set_user_active(async_session, voter.id, is_active=True)
        assert user.is_active is True

    @pytest.mark.asyncio
    async def test_missing_user(self, async_session: AsyncSession) -> None:
        with pytest.raises(UserNotFoundError) as exc_info:
            await unlock_user(async_session, uuid.uuid4())
        assert exc_info.value.category is ErrorCategory.NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_users_paginates(self, async_session: AsyncSession) -> None:
        for index in range(3):
            async_session.add(make_user(f"user{index}@test.com"))
        await async_session.commit()

        users, total = await list_users(async_session, page=2, page_size=2)

        assert total == 3
        assert len(users) == 1


class TestPasswords:
    """Tests for change_password and reset_password."""

    @pytest.mark.asyncio
    async def test_change_password(self, async_session: AsyncSession, voter: User) -> None:
        await change_password(async_session, voter, TEST_PASSWORD, "brand-new-password")

        assert verify_password("brand-new-password", voter.hashed_password)

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, async_session: AsyncSession, voter: User) -> None:
        with pytest.raises(AuthenticationError):
            await change_password(async_session, voter, "not-my-password", "brand-new-password")

        assert verify_password(TEST_PASSWORD, voter.hashed_password)

    @pytest.mark.asyncio
    async def test_reset_password_clears_lock(
        self, async_session: AsyncSession, settings: Settings, voter: User
    ) -> None:
        await _fail_logins(async_session, settings, 5)

        await reset_password(async_session, "Voter@Test.com", "brand-new-password")

        user = await authenticate_user(async_session, "voter@test.com", "brand-new-password", settings, now=NOW)
        assert user.id == voter.id

    @pytest.mark.asyncio
    async def test_reset_password_unknown_email(self, async_session: AsyncSession) -> None:
        with pytest.raises(UserNotFoundError):
            await reset_password(async_session, "nobody@test.com", "brand-new-password")


class TestTokens:
    """Tests for generate_tokens and refresh_access_token."""

    def test_generate_tokens(self, settings: Settings) -> None:
        user = make_user("voter@test.com")

        tokens = generate_tokens(user, settings)

        access = decode_token(tokens.access_token, settings.jwt_secret_key, settings.jwt_algorithm)
        refresh = decode_token(tokens.refresh_token, settings.jwt_secret_key, settings.jwt_algorithm)
        assert access["sub"] == "voter@test.com"
        assert access["type"] == "access"
        assert access["role"] == "voter"
        assert refresh["type"] == "refresh"
        assert tokens.token_type == "bearer"
        assert tokens.expires_in == 1800

    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, async_session: AsyncSession, settings: Settings, voter: User) -> None:
        tokens = generate_tokens(voter, settings)

        refreshed = await refresh_access_token(async_session, tokens.refresh_token, settings)

        payload = decode_token(refreshed.access_token, settings.jwt_secret_key, settings.jwt_algorithm)
        assert payload["sub"] == voter.email

    @pytest.mark.asyncio
    async def test_refresh_rejects_access_token(
        self, async_session: AsyncSession, settings: Settings, voter: User
    ) -> None:
        tokens = generate_tokens(voter, settings)

        with pytest.raises(ValueError, match="not a refresh token"):
            await refresh_access_token(async_session, tokens.access_token, settings)

    @pytest.mark.asyncio
    async def test_refresh_rejects_garbage(self, async_session: AsyncSession, settings: Settings) -> None:
        with pytest.raises(ValueError, match="Invalid refresh token"):
            await refresh_access_token(async_session, "not-a-jwt", settings)

    @pytest.mark.asyncio
    async def test_refresh_rejects_inactive_user(
        self, async_session: AsyncSession, settings: Settings, voter: User
    ) -> None:
        tokens = generate_tokens(voter, settings)
        await set_user_active(async_session, voter.id, is_active=False)

        with pytest.raises(ValueError, match="inactive"):
            await refresh_access_token(async_session, tokens.refresh_token, settings)

    @pytest.mark.asyncio
    async def test_lookup_by_email(self, async_session: AsyncSession, voter: User) -> None:
        assert await get_user_by_email(async_session, " VOTER@TEST.COM ") is voter
