"""One-time code service.

Issues, validates, rate-limits, and garbage-collects verification codes.
All state lives in the ``one_time_codes`` table; every call reads the latest
committed rows. Issuing a code invalidates every still-valid code for the
same (email, purpose) in the same transaction, so at most one code per pair
can be redeemed at any time.
"""

import contextlib
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from ballot_api.core.config import Settings
from ballot_api.core.database import session_scope
from ballot_api.core.errors import ErrorCategory, NotificationError, ServiceError
from ballot_api.core.logging import mask_email
from ballot_api.core.security import codes_match, generate_otp_code
from ballot_api.lib.notifier import CodeDelivery, CodeNotifier
from ballot_api.models.base import utcnow
from ballot_api.models.one_time_code import OneTimeCode, OtpPurpose
from ballot_api.models.user import User, normalize_email

# Longest window the issuance caps look back over. The sweep keeps rows
# younger than this.
ISSUANCE_WINDOW = timedelta(days=1)


class OtpValidationResult(enum.StrEnum):
    """Outcome of a code validation. Only VALID proves possession."""

    VALID = "valid"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"
    NOT_FOUND = "not_found"


class OtpRateLimitedError(ServiceError):
    """Raised when an email has requested too many codes or asked to resend too soon."""

    category = ErrorCategory.RATE_LIMITED
    default_code = "otp_rate_limited"


class OtpVerificationError(ServiceError):
    """Raised by flows that require a VALID code and got another outcome."""

    default_code = "otp_invalid"

    def __init__(self, result: OtpValidationResult) -> None:
        category = ErrorCategory.VALIDATION
        if result in (OtpValidationResult.EXPIRED, OtpValidationResult.ALREADY_USED):
            category = ErrorCategory.STATE
        elif result is OtpValidationResult.MAX_ATTEMPTS_EXCEEDED:
            category = ErrorCategory.RATE_LIMITED
        super().__init__(_RESULT_MESSAGES[result], code=f"otp_{result.value}", category=category)
        self.result = result


_RESULT_MESSAGES: dict[OtpValidationResult, str] = {
    OtpValidationResult.VALID: "Verification code accepted",
    OtpValidationResult.INVALID_CODE: "Verification code is incorrect",
    OtpValidationResult.EXPIRED: "Verification code has expired, request a new one",
    OtpValidationResult.ALREADY_USED: "Verification code has already been used, request a new one",
    OtpValidationResult.MAX_ATTEMPTS_EXCEEDED: "Too many incorrect attempts, request a new code",
    OtpValidationResult.NOT_FOUND: "No verification code found, request a new one",
}


@dataclass(frozen=True)
class SweepResult:
    """Rows removed by one cleanup sweep."""

    expired_deleted: int = 0
    used_deleted: int = 0
    skipped: bool = False

    @property
    def total(self) -> int:
        return self.expired_deleted + self.used_deleted


@dataclass(frozen=True)
class CodeStatistics:
    """Point-in-time counts over the code table."""

    total: int
    active: int
    expired: int
    used: int
    created_today: int


def _valid_clause(email: str, purpose: OtpPurpose, now: datetime):  # noqa: ANN202
    return and_(
        OneTimeCode.email == email,
        OneTimeCode.purpose == purpose,
        OneTimeCode.is_used.is_(False),
        OneTimeCode.expires_at > now,
    )


async def _latest_valid_code(
    session: AsyncSession,
    email: str,
    purpose: OtpPurpose,
    now: datetime,
    *,
    for_update: bool = False,
) -> OneTimeCode | None:
    query = (
        select(OneTimeCode)
        .where(_valid_clause(email, purpose, now))
        .order_by(OneTimeCode.created_at.desc())
        .limit(1)
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def _latest_code(session: AsyncSession, email: str, purpose: OtpPurpose) -> OneTimeCode | None:
    result = await session.execute(
        select(OneTimeCode)
        .where(OneTimeCode.email == email, OneTimeCode.purpose == purpose)
        .order_by(OneTimeCode.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def issue_code(
    session: AsyncSession,
    email: str,
    purpose: OtpPurpose,
    settings: Settings,
    *,
    notifier: CodeNotifier | None = None,
    now: datetime | None = None,
) -> str:
    """Issue a new code, invalidating every still-valid code for (email, purpose).

    The invalidation and the insert commit together. On PostgreSQL the owning
    user row is locked for the duration so concurrent issuance for the same
    identity is serialized.

    Args:
        session: The database session.
        email: Recipient email (normalized before use).
        purpose: What the code will authorize.
        settings: Application settings (TTL and code length).
        notifier: Delivery channel; skipped when None.
        now: Override of the current time.

    Returns:
        The plaintext code. Callers must not expose it to clients unless
        ``settings.otp_echo_code`` is enabled.

    Raises:
        NotificationError: If the code was stored but could not be delivered.
    """
    email = normalize_email(email)
    now = now or utcnow()

    await session.execute(select(User.id).where(User.email == email).with_for_update())
    invalidated = await session.execute(
        update(OneTimeCode)
        .where(_valid_clause(email, purpose, now))
        .values(is_used=True, used_at=now)
        .execution_options(synchronize_session="fetch")
    )

    code = generate_otp_code(settings.otp_code_length)
    record = OneTimeCode(
        email=email,
        code=code,
        purpose=purpose,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.otp_expiration_minutes),
        attempts=0,
        is_used=False,
    )
    session.add(record)
    await session.commit()
    logger.info(
        "Issued {} code for {} (invalidated {}, expires in {} min)",
        purpose.value,
        mask_email(email),
        invalidated.rowcount,
        settings.otp_expiration_minutes,
    )

    if notifier is not None:
        delivery = CodeDelivery(email=email, code=code, purpose=purpose.value, expires_at=record.expires_at)
        try:
            await notifier.send_code(delivery)
        except Exception as exc:
            logger.exception("Failed to deliver {} code to {}", purpose.value, mask_email(email))
            msg = "Unable to deliver verification code"
            raise NotificationError(msg) from exc
    return code


async def validate_code(
    session: AsyncSession,
    email: str,
    code: str,
    purpose: OtpPurpose,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> OtpValidationResult:
    """Check a supplied code against the latest valid code for (email, purpose).

    Every outcome other than VALID is terminal for the code involved; the
    caller has to request a fresh one.

    Args:
        session: The database session.
        email: Email the code was issued to.
        code: The code supplied by the user.
        purpose: The purpose the code must be bound to.
        settings: Application settings (max attempts).
        now: Override of the current time.

    Returns:
        The validation outcome.
    """
    email = normalize_email(email)
    now = now or utcnow()
    supplied = code.strip()
    max_attempts = settings.otp_max_attempts

    record = await _latest_valid_code(session, email, purpose, now, for_update=True)

    if record is None:
        outcome = await _classify_without_valid_code(session, email, supplied, purpose, max_attempts, now)
        logger.info("Code check for {} ({}): {}", mask_email(email), purpose.value, outcome.value)
        return outcome

    if record.attempts >= max_attempts:
        await _close_code(session, record, now)
        await session.commit()
        return OtpValidationResult.MAX_ATTEMPTS_EXCEEDED

    if not codes_match(record.code, supplied):
        outcome = await _register_wrong_guess(session, record, supplied, max_attempts, now)
        await session.commit()
        logger.info(
            "Code check for {} ({}): {} (attempt {}/{})",
            mask_email(email),
            purpose.value,
            outcome.value,
            record.attempts,
            max_attempts,
        )
        return outcome

    if record.is_expired(now):
        return OtpValidationResult.EXPIRED

    if record.is_used:
        return OtpValidationResult.ALREADY_USED

    # Conditional update: only one concurrent redeemer can flip is_used.
    marked = await session.execute(
        update(OneTimeCode)
        .where(OneTimeCode.id == record.id, OneTimeCode.is_used.is_(False))
        .values(is_used=True, used_at=now)
        .execution_options(synchronize_session="fetch")
    )
    await session.commit()
    if marked.rowcount != 1:
        return OtpValidationResult.ALREADY_USED

    logger.info("Code check for {} ({}): valid", mask_email(email), purpose.value)
    return OtpValidationResult.VALID


async def _classify_without_valid_code(
    session: AsyncSession,
    email: str,
    supplied: str,
    purpose: OtpPurpose,
    max_attempts: int,
    now: datetime,
) -> OtpValidationResult:
    latest = await _latest_code(session, email, purpose)
    if latest is None:
        return OtpValidationResult.NOT_FOUND
    if not latest.is_used and latest.is_expired(now):
        return OtpValidationResult.EXPIRED
    if latest.attempts >= max_attempts:
        return OtpValidationResult.MAX_ATTEMPTS_EXCEEDED
    if codes_match(latest.code, supplied):
        if latest.is_expired(now):
            return OtpValidationResult.EXPIRED
        return OtpValidationResult.ALREADY_USED
    return OtpValidationResult.NOT_FOUND


async def _register_wrong_guess(
    session: AsyncSession,
    record: OneTimeCode,
    supplied: str,
    max_attempts: int,
    now: datetime,
) -> OtpValidationResult:
    result = await session.execute(
        update(OneTimeCode)
        .where(OneTimeCode.id == record.id)
        .values(attempts=OneTimeCode.attempts + 1)
        .returning(OneTimeCode.attempts)
        .execution_options(synchronize_session=False)
    )
    attempts = result.scalar_one()
    set_committed_value(record, "attempts", attempts)
    if attempts >= max_attempts:
        await _close_code(session, record, now)

    superseded = await session.execute(
        select(OneTimeCode.id)
        .where(
            OneTimeCode.email == record.email,
            OneTimeCode.purpose == record.purpose,
            OneTimeCode.id != record.id,
            OneTimeCode.is_used.is_(True),
            OneTimeCode.code == supplied,
        )
        .limit(1)
    )
    if superseded.scalar_one_or_none() is not None:
        return OtpValidationResult.ALREADY_USED
    return OtpValidationResult.INVALID_CODE


async def _close_code(session: AsyncSession, record: OneTimeCode, now: datetime) -> None:
    await session.execute(
        update(OneTimeCode)
        .where(OneTimeCode.id == record.id, OneTimeCode.is_used.is_(False))
        .values(is_used=True, used_at=now)
        .execution_options(synchronize_session=False)
    )
    set_committed_value(record, "is_used", True)
    set_committed_value(record, "used_at", now)


async def require_valid_code(
    session: AsyncSession,
    email: str,
    code: str,
    purpose: OtpPurpose,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> None:
    """Validate a code and raise unless the outcome is VALID.

    Raises:
        OtpVerificationError: Carrying the non-VALID outcome.
    """
    result = await validate_code(session, email, code, purpose, settings, now=now)
    if result is not OtpValidationResult.VALID:
        raise OtpVerificationError(result)


async def can_request_code(
    session: AsyncSession,
    email: str,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> bool:
    """Check the hourly and daily issuance caps for an email.

    Returns:
        False when either cap has been reached.
    """
    email = normalize_email(email)
    now = now or utcnow()

    hourly = await session.execute(
        select(func.count(OneTimeCode.id)).where(
            OneTimeCode.email == email,
            OneTimeCode.created_at > now - timedelta(hours=1),
        )
    )
    if hourly.scalar_one() >= settings.otp_max_requests_per_hour:
        return False

    daily = await session.execute(
        select(func.count(OneTimeCode.id)).where(
            OneTimeCode.email == email,
            OneTimeCode.created_at > now - ISSUANCE_WINDOW,
        )
    )
    return daily.scalar_one() < settings.otp_max_requests_per_day


async def can_resend_code(
    session: AsyncSession,
    email: str,
    purpose: OtpPurpose,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> bool:
    """Check the resend cooldown for (email, purpose).

    Returns:
        True if no valid code exists or the latest valid one is older than
        the cooldown.
    """
    email = normalize_email(email)
    now = now or utcnow()
    record = await _latest_valid_code(session, email, purpose, now)
    if record is None:
        return True
    return record.created_at < now - timedelta(minutes=settings.otp_resend_cooldown_minutes)


async def request_code(
    session: AsyncSession,
    email: str,
    purpose: OtpPurpose,
    settings: Settings,
    *,
    notifier: CodeNotifier | None = None,
    resend: bool = False,
    now: datetime | None = None,
) -> str:
    """Issue a code after applying the issuance caps (and the cooldown for resends).

    Raises:
        OtpRateLimitedError: If a cap or the cooldown blocks issuance.
    """
    now = now or utcnow()
    if not await can_request_code(session, email, settings, now=now):
        msg = "Too many verification codes requested, try again later"
        raise OtpRateLimitedError(msg)
    if resend and not await can_resend_code(session, email, purpose, settings, now=now):
        msg = f"Please wait {settings.otp_resend_cooldown_minutes} minute(s) before requesting another code"
        raise OtpRateLimitedError(msg, code="otp_resend_cooldown")
    return await issue_code(session, email, purpose, settings, notifier=notifier, now=now)


async def get_remaining_minutes(
    session: AsyncSession,
    email: str,
    purpose: OtpPurpose,
    *,
    now: datetime | None = None,
) -> int | None:
    """Return whole minutes left on the latest valid code, or None if there is none."""
    email = normalize_email(email)
    now = now or utcnow()
    record = await _latest_valid_code(session, email, purpose, now)
    if record is None:
        return None
    return int((record.expires_at - now).total_seconds() // 60)


async def sweep_expired_codes(
    session: AsyncSession,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> SweepResult:
    """Delete expired codes and used codes past the retention window.

    Rows created inside the issuance window are kept; the hourly and daily
    caps count them.

    Best-effort: a missing table or an unreachable database is logged and
    reported as a skipped sweep instead of raising.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=settings.otp_retention_days)
    outside_window = OneTimeCode.created_at < now - ISSUANCE_WINDOW
    try:
        expired = await session.execute(
            delete(OneTimeCode).where(OneTimeCode.expires_at < now, outside_window)
        )
        used = await session.execute(
            delete(OneTimeCode).where(OneTimeCode.is_used.is_(True), OneTimeCode.used_at < cutoff, outside_window)
        )
        await session.commit()
    except (SQLAlchemyError, OSError) as exc:
        with contextlib.suppress(SQLAlchemyError, OSError):
            await session.rollback()
        logger.warning("Code cleanup skipped: {}", exc.__class__.__name__)
        return SweepResult(skipped=True)

    result = SweepResult(expired_deleted=expired.rowcount, used_deleted=used.rowcount)
    if result.total > 0:
        logger.info(
            "Code cleanup removed {} expired and {} old used code(s)",
            result.expired_deleted,
            result.used_deleted,
        )
    return result


async def run_code_sweep(settings: Settings) -> SweepResult:
    """Run one sweep in its own session. Entry point for the periodic task and the CLI."""
    async with session_scope() as session:
        return await sweep_expired_codes(session, settings)


async def get_code_statistics(session: AsyncSession, *, now: datetime | None = None) -> CodeStatistics:
    """Count codes by state."""
    now = now or utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    async def _count(*criteria) -> int:  # noqa: ANN002
        query = select(func.count(OneTimeCode.id))
        if criteria:
            query = query.where(*criteria)
        result = await session.execute(query)
        return result.scalar_one()

    return CodeStatistics(
        total=await _count(),
        active=await _count(OneTimeCode.is_used.is_(False), OneTimeCode.expires_at > now),
        expired=await _count(OneTimeCode.expires_at <= now),
        used=await _count(OneTimeCode.is_used.is_(True)),
        created_today=await _count(OneTimeCode.created_at >= start_of_day),
    )


async def get_latest_code(session: AsyncSession, email: str) -> OneTimeCode | None:
    """Return the most recently issued code for an email across all purposes."""
    result = await session.execute(
        select(OneTimeCode)
        .where(OneTimeCode.email == normalize_email(email))
        .order_by(OneTimeCode.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def delete_codes_for_email(session: AsyncSession, email: str) -> int:
    """Delete every code issued to an email.

    Returns:
        Number of rows deleted.
    """
    result = await session.execute(delete(OneTimeCode).where(OneTimeCode.email == normalize_email(email)))
    await session.commit()
    return result.rowcount
