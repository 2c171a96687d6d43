"""Ballot casting, eligibility, and history schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ballot_api.models.ballot import BallotStatus
from ballot_api.schemas.auth import OTP_CODE_PATTERN


class CastVoteRequest(BaseModel):
    """Cast the caller's single ballot.

    ``verification_code`` is a code issued for the voting purpose.
    """

    constituency_id: UUID
    candidate_id: UUID
    party_id: UUID | None = None
    verification_code: str = Field(pattern=OTP_CODE_PATTERN)


class BallotResponse(BaseModel):
    """Receipt for a cast ballot. The chosen candidate is never echoed back."""

    id: UUID
    constituency_id: UUID
    session_token: str
    status: BallotStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class EligibilityResponse(BaseModel):
    """Advisory pre-flight check result."""

    eligible: bool
    reason: str
    code: str


class VotingHistoryItem(BaseModel):
    """Anonymized history entry."""

    ballot_id: UUID
    constituency_name: str
    state: str
    voted_at: datetime
    status: BallotStatus
    transaction_id: str


class BallotStatusUpdate(BaseModel):
    """Administrative ballot status change."""

    status: BallotStatus
    reason: str | None = Field(default=None, max_length=500)
