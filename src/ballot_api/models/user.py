"""User model: a registered voter (or administrator) and their authentication state."""

from datetime import datetime

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ballot_api.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin


def normalize_email(email: str) -> str:
    """Canonical form of an email address used as the identity key."""
    return email.strip().lower()


class User(Base, UUIDMixin, TimestampMixin):
    """Registered identity with lockout tracking. Soft-deactivated, never deleted."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="voter", server_default="voter")
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def is_locked(self, now: datetime) -> bool:
        """Whether a lockout window is set and still in the future."""
        return self.locked_until is not None and self.locked_until > now
