"""Authentication and user management service.

Handles registration, credential checks with lockout, verification,
password changes, administrative unlock/deactivation, and token issuance.
The failed-login counter and lockout window live on the user row and are
only mutated here, inside a single transaction per call.
"""

import enum
import uuid
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.core.config import Settings
from ballot_api.core.errors import ErrorCategory, ServiceError
from ballot_api.core.logging import mask_email
from ballot_api.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from ballot_api.models.base import utcnow
from ballot_api.models.user import User, normalize_email
from ballot_api.schemas.auth import RegisterRequest, TokenResponse


class AuthFailure(enum.StrEnum):
    """Why a credential check was refused."""

    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_INACTIVE = "account_inactive"
    ACCOUNT_NOT_VERIFIED = "account_not_verified"


_FAILURE_MESSAGES: dict[AuthFailure, str] = {
    AuthFailure.INVALID_CREDENTIALS: "Incorrect email or password",
    AuthFailure.ACCOUNT_LOCKED: "Account is locked, please try again later",
    AuthFailure.ACCOUNT_INACTIVE: "Account is deactivated, please contact support",
    AuthFailure.ACCOUNT_NOT_VERIFIED: "Account email has not been verified",
}


class AuthenticationError(ServiceError):
    """Raised when a credential check fails."""

    category = ErrorCategory.STATE

    def __init__(self, reason: AuthFailure, *, locked_until: datetime | None = None) -> None:
        category = ErrorCategory.VALIDATION if reason is AuthFailure.INVALID_CREDENTIALS else ErrorCategory.STATE
        super().__init__(_FAILURE_MESSAGES[reason], code=reason.value, category=category)
        self.reason = reason
        self.locked_until = locked_until


class DuplicateUserError(ServiceError):
    """Raised when registering an email or phone number that is already taken."""

    category = ErrorCategory.CONFLICT
    default_code = "duplicate_user"


class UserNotFoundError(ServiceError):
    """Raised when a user lookup by id or email finds nothing."""

    category = ErrorCategory.NOT_FOUND
    default_code = "user_not_found"


async def register_user(session: AsyncSession, request: RegisterRequest) -> User:
    """Create a new, unverified user.

    Args:
        session: The database session.
        request: Registration data.

    Returns:
        The created User.

    Raises:
        DuplicateUserError: If the email or phone number is already registered.
    """
    email = normalize_email(request.email)
    criteria = [User.email == email]
    if request.phone_number:
        criteria.append(User.phone_number == request.phone_number)
    existing = await session.execute(select(User).where(or_(*criteria)))
    if existing.scalars().first() is not None:
        msg = "A user with this email or phone number already exists"
        raise DuplicateUserError(msg)

    user = User(
        email=email,
        hashed_password=hash_password(request.password),
        first_name=request.first_name,
        last_name=request.last_name,
        phone_number=request.phone_number,
        role=request.role,
        is_verified=False,
        is_active=True,
        failed_login_attempts=0,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        msg = "A user with this email or phone number already exists"
        raise DuplicateUserError(msg) from None
    logger.info("Registered user {} ({})", user.id, mask_email(email))
    return user


async def authenticate_user(
    session: AsyncSession,
    email: str,
    password: str,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> User:
    """Check credentials, maintaining the failed-attempt counter and lockout.

    Checks run in this order: lock, active flag, password. A wrong password
    increments the counter and locks the account once it reaches
    ``settings.max_failed_logins``. A correct password resets the counter.
    An elapsed lock heals itself: it is simply no longer in the future.

    Args:
        session: The database session.
        email: Login email.
        password: Plaintext password.
        settings: Application settings (lockout thresholds).
        now: Override of the current time.

    Returns:
        The authenticated User.

    Raises:
        AuthenticationError: With reason INVALID_CREDENTIALS,
            ACCOUNT_LOCKED or ACCOUNT_INACTIVE.
    """
    now = now or utcnow()
    result = await session.execute(select(User).where(User.email == normalize_email(email)).with_for_update())
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthenticationError(AuthFailure.INVALID_CREDENTIALS)

    if user.is_locked(now):
        raise AuthenticationError(AuthFailure.ACCOUNT_LOCKED, locked_until=user.locked_until)

    if not user.is_active:
        raise AuthenticationError(AuthFailure.ACCOUNT_INACTIVE)

    if not verify_password(password, user.hashed_password):
        user.failed_login_attempts += 1
        if user.failed_login_attempts >= settings.max_failed_logins:
            user.locked_until = now + timedelta(minutes=settings.lockout_duration_minutes)
            logger.warning(
                "Locked account {} until {} after {} failed logins",
                user.id,
                user.locked_until.isoformat(),
                user.failed_login_attempts,
            )
        await session.commit()
        raise AuthenticationError(AuthFailure.INVALID_CREDENTIALS)

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = now
    await session.commit()
    return user


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> User | None:
    """Get a user by ID."""
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    """Get a user by email (case-insensitive)."""
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def _require_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await get_user(session, user_id)
    if user is None:
        msg = f"User {user_id} not found"
        raise UserNotFoundError(msg)
    return user


async def verify_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    """Mark a user's email as verified.

    Raises:
        UserNotFoundError: If the user does not exist.
    """
    user = await _require_user(session, user_id)
    user.is_verified = True
    await session.commit()
    logger.info("Verified user {}", user.id)
    return user


async def unlock_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    """Clear the failed-login counter and any lockout window.

    Raises:
        UserNotFoundError: If the user does not exist.
    """
    user = await _require_user(session, user_id)
    user.failed_login_attempts = 0
    user.locked_until = None
    await session.commit()
    logger.info("Unlocked user {}", user.id)
    return user


async def set_user_active(session: AsyncSession, user_id: uuid.UUID, *, is_active: bool) -> User:
    """Activate or soft-deactivate a user. Users are never deleted.

    Raises:
        UserNotFoundError: If the user does not exist.
    """
    user = await _require_user(session, user_id)
    user.is_active = is_active
    await session.commit()
    logger.info("Set user {} active={}", user.id, is_active)
    return user


async def change_password(
    session: AsyncSession,
    user: User,
    current_password: str,
    new_password: str,
) -> User:
    """Change a password after re-checking the current one.

    Raises:
        AuthenticationError: If the current password is wrong.
    """
    if not verify_password(current_password, user.hashed_password):
        raise AuthenticationError(AuthFailure.INVALID_CREDENTIALS)
    user.hashed_password = hash_password(new_password)
    user.failed_login_attempts = 0
    await session.commit()
    logger.info("Changed password for user {}", user.id)
    return user


async def reset_password(session: AsyncSession, email: str, new_password: str) -> User:
    """Set a new password without the old one (after a password-reset code).

    Also clears the failed-login counter and lockout.

    Raises:
        UserNotFoundError: If no user has this email.
    """
    user = await get_user_by_email(session, email)
    if user is None:
        msg = "User not found"
        raise UserNotFoundError(msg)
    user.hashed_password = hash_password(new_password)
    user.failed_login_attempts = 0
    user.locked_until = None
    await session.commit()
    logger.info("Reset password for user {}", user.id)
    return user


async def list_users(session: AsyncSession, page: int = 1, page_size: int = 20) -> tuple[list[User], int]:
    """List users with pagination.

    Returns:
        Tuple of (users list, total count).
    """
    count_result = await session.execute(select(func.count(User.id)))
    total = count_result.scalar_one()

    offset = (page - 1) * page_size
    result = await session.execute(select(User).offset(offset).limit(page_size).order_by(User.created_at))
    users = list(result.scalars().all())
    return users, total


def generate_tokens(user: User, settings: Settings) -> TokenResponse:
    """Generate access and refresh tokens for a user.

    Args:
        user: The authenticated user.
        settings: Application settings.

    Returns:
        Token response with access and refresh tokens.
    """
    access_token = create_access_token(
        subject=user.email,
        role=user.role,
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_minutes=settings.jwt_access_token_expire_minutes,
    )
    refresh_token = create_refresh_token(
        subject=user.email,
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_days=settings.jwt_refresh_token_expire_days,
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


async def refresh_access_token(
    session: AsyncSession,
    refresh_token_str: str,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> TokenResponse:
    """Refresh an access token using a refresh token.

    Raises:
        ValueError: If the refresh token is invalid or the user can no
            longer sign in.
    """
    try:
        payload = decode_token(refresh_token_str, settings.jwt_secret_key, settings.jwt_algorithm)
    except Exception as e:
        msg = "Invalid refresh token"
        raise ValueError(msg) from e

    if payload.get("type") != "refresh":
        msg = "Token is not a refresh token"
        raise ValueError(msg)

    email = payload.get("sub")
    if email is None:
        msg = "Invalid token payload"
        raise ValueError(msg)

    user = await get_user_by_email(session, email)
    if user is None or not user.is_active or user.is_locked(now or utcnow()):
        msg = "User not found, inactive or locked"
        raise ValueError(msg)

    return generate_tokens(user, settings)
