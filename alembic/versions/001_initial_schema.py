"""Initial schema: users, one-time codes, election reference data, and ballots.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

OTP_PURPOSES = ("registration_verification", "login_verification", "voting_verification", "password_reset")
BALLOT_STATUSES = ("cast", "pending", "verified", "flagged", "cancelled")


def upgrade() -> None:
    # Create users table
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone_number", sa.String(20), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="voter"),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("failed_login_attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("phone_number", name="uq_users_phone_number"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Create one_time_codes table
    op.create_table(
        "one_time_codes",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column(
            "purpose",
            sa.Enum(*OTP_PURPOSES, name="otp_purpose", native_enum=False, length=32),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_used", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_one_time_codes_email_purpose_created",
        "one_time_codes",
        ["email", "purpose", "created_at"],
    )
    op.create_index("ix_one_time_codes_expires_at", "one_time_codes", ["expires_at"])

    # Create election reference tables
    op.create_table(
        "constituencies",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(150), nullable=False, unique=True),
        sa.Column("state", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "parties",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(150), nullable=False, unique=True),
        sa.Column("symbol", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "candidates",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("party_id", sa.Uuid, sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("constituency_id", sa.Uuid, sa.ForeignKey("constituencies.id"), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_candidates_party_id", "candidates", ["party_id"])
    op.create_index("ix_candidates_constituency_id", "candidates", ["constituency_id"])

    # Create ballots table; uq_ballots_user_id enforces one ballot per voter
    op.create_table(
        "ballots",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("constituency_id", sa.Uuid, sa.ForeignKey("constituencies.id"), nullable=False),
        sa.Column("candidate_id", sa.Uuid, sa.ForeignKey("candidates.id"), nullable=False),
        sa.Column("session_token", sa.String(36), nullable=False, unique=True),
        sa.Column("origin_address", sa.String(45), nullable=True),
        sa.Column("client_signature", sa.String(500), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*BALLOT_STATUSES, name="ballot_status", native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column("status_reason", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_ballots_user_id"),
    )
    op.create_index("ix_ballots_constituency_id", "ballots", ["constituency_id"])
    op.create_index("ix_ballots_candidate_id", "ballots", ["candidate_id"])


def downgrade() -> None:
    op.drop_table("ballots")
    op.drop_table("candidates")
    op.drop_table("parties")
    op.drop_table("constituencies")
    op.drop_table("one_time_codes")
    op.drop_table("users")
