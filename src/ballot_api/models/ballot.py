"""Ballot model: the durable record of one cast vote."""

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ballot_api.models.base import Base, TimestampMixin, UUIDMixin


class BallotStatus(enum.StrEnum):
    """Review status of a ballot."""

    CAST = "cast"
    PENDING = "pending"
    VERIFIED = "verified"
    FLAGGED = "flagged"
    CANCELLED = "cancelled"


class Ballot(Base, UUIDMixin, TimestampMixin):
    """One vote per user for the whole election.

    The unique constraint on ``user_id`` is the authoritative guard against
    double voting. Rows are never deleted; only ``status`` changes.
    """

    __tablename__ = "ballots"
    __table_args__ = (UniqueConstraint("user_id", name="uq_ballots_user_id"),)

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    constituency_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("constituencies.id"), nullable=False, index=True
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("candidates.id"), nullable=False, index=True)
    session_token: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    origin_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    client_signature: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[BallotStatus] = mapped_column(
        Enum(
            BallotStatus,
            name="ballot_status",
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=BallotStatus.CAST,
    )
    status_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
