"""OneTimeCode model: issued verification challenges and their state."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ballot_api.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin


class OtpPurpose(enum.StrEnum):
    """Authentication context a code is bound to. Codes never cross purposes."""

    REGISTRATION_VERIFICATION = "registration_verification"
    LOGIN_VERIFICATION = "login_verification"
    VOTING_VERIFICATION = "voting_verification"
    PASSWORD_RESET = "password_reset"


class OneTimeCode(Base, UUIDMixin, TimestampMixin):
    """A single issued code.

    Valid means unused and unexpired; at most one valid row exists per
    (email, purpose). Rows are not modified after being used or expiring.
    """

    __tablename__ = "one_time_codes"
    __table_args__ = (
        Index("ix_one_time_codes_email_purpose_created", "email", "purpose", "created_at"),
        Index("ix_one_time_codes_expires_at", "expires_at"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(10), nullable=False)
    purpose: Mapped[OtpPurpose] = mapped_column(
        Enum(
            OtpPurpose,
            name="otp_purpose",
            native_enum=False,
            length=32,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def is_expired(self, now: datetime) -> bool:
        """Whether the expiry time has passed."""
        return self.expires_at <= now

    def is_valid(self, now: datetime) -> bool:
        """Whether the code can still be redeemed."""
        return not self.is_used and not self.is_expired(now)
