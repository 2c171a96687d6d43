"""Election reference data: constituencies, parties, and candidates.

These rows are maintained outside this service. The vote casting guard
and the public ballot option endpoints only read them.
"""

import uuid

from sqlalchemy import Boolean, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ballot_api.models.base import Base, TimestampMixin, UUIDMixin


class Constituency(Base, UUIDMixin, TimestampMixin):
    """Electoral district a voter casts a ballot in."""

    __tablename__ = "constituencies"

    name: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class Party(Base, UUIDMixin, TimestampMixin):
    """Political party a candidate stands for."""

    __tablename__ = "parties"

    name: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    symbol: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class Candidate(Base, UUIDMixin, TimestampMixin):
    """Candidate standing in exactly one constituency for one party."""

    __tablename__ = "candidates"

    name: Mapped[str] = mapped_column(String(150), nullable=False)
    party_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("parties.id"), nullable=False, index=True)
    constituency_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("constituencies.id"), nullable=False, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    party: Mapped[Party] = relationship(lazy="joined")
