"""Vote casting service.

Commits at most one ballot per user for the whole election. The
precondition checks give precise feedback; the unique constraint on
``ballots.user_id`` is what actually prevents a second ballot when two
requests race past the checks.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.core.errors import ErrorCategory, ServiceError
from ballot_api.core.security import generate_session_token
from ballot_api.models.ballot import Ballot, BallotStatus
from ballot_api.models.base import Base, utcnow
from ballot_api.models.election import Candidate, Constituency
from ballot_api.models.user import User


class VoteRejection(enum.StrEnum):
    """Why a ballot was refused, in the order the checks run."""

    USER_NOT_FOUND = "user_not_found"
    USER_INACTIVE = "user_inactive"
    USER_NOT_VERIFIED = "user_not_verified"
    USER_LOCKED = "user_locked"
    ALREADY_VOTED = "already_voted"
    CONSTITUENCY_NOT_FOUND = "constituency_not_found"
    CONSTITUENCY_INACTIVE = "constituency_inactive"
    CANDIDATE_NOT_FOUND = "candidate_not_found"
    CANDIDATE_INACTIVE = "candidate_inactive"
    CANDIDATE_NOT_IN_CONSTITUENCY = "candidate_not_in_constituency"
    PARTY_INACTIVE = "party_inactive"
    PARTY_MISMATCH = "party_mismatch"


_REJECTION_MESSAGES: dict[VoteRejection, str] = {
    VoteRejection.USER_NOT_FOUND: "User not found",
    VoteRejection.USER_INACTIVE: "User account is not active",
    VoteRejection.USER_NOT_VERIFIED: "User account is not verified",
    VoteRejection.USER_LOCKED: "User account is locked",
    VoteRejection.ALREADY_VOTED: "User has already voted",
    VoteRejection.CONSTITUENCY_NOT_FOUND: "Constituency not found",
    VoteRejection.CONSTITUENCY_INACTIVE: "Constituency is not active",
    VoteRejection.CANDIDATE_NOT_FOUND: "Candidate not found",
    VoteRejection.CANDIDATE_INACTIVE: "Candidate is not active",
    VoteRejection.CANDIDATE_NOT_IN_CONSTITUENCY: "Candidate does not belong to this constituency",
    VoteRejection.PARTY_INACTIVE: "Candidate's party is not active",
    VoteRejection.PARTY_MISMATCH: "Candidate does not stand for the given party",
}

_REJECTION_CATEGORIES: dict[VoteRejection, ErrorCategory] = {
    VoteRejection.USER_NOT_FOUND: ErrorCategory.NOT_FOUND,
    VoteRejection.ALREADY_VOTED: ErrorCategory.CONFLICT,
    VoteRejection.CONSTITUENCY_NOT_FOUND: ErrorCategory.NOT_FOUND,
    VoteRejection.CANDIDATE_NOT_FOUND: ErrorCategory.NOT_FOUND,
    VoteRejection.CANDIDATE_NOT_IN_CONSTITUENCY: ErrorCategory.VALIDATION,
    VoteRejection.PARTY_MISMATCH: ErrorCategory.VALIDATION,
}

# Review transitions an auditor may apply to a ballot.
ALLOWED_STATUS_TRANSITIONS: dict[BallotStatus, frozenset[BallotStatus]] = {
    BallotStatus.CAST: frozenset({BallotStatus.VERIFIED, BallotStatus.FLAGGED, BallotStatus.CANCELLED}),
    BallotStatus.PENDING: frozenset({BallotStatus.VERIFIED, BallotStatus.FLAGGED, BallotStatus.CANCELLED}),
    BallotStatus.VERIFIED: frozenset({BallotStatus.FLAGGED}),
    BallotStatus.FLAGGED: frozenset({BallotStatus.VERIFIED, BallotStatus.CANCELLED}),
    BallotStatus.CANCELLED: frozenset(),
}


class VoteRejectedError(ServiceError):
    """Raised when a ballot fails a precondition."""

    def __init__(self, reason: VoteRejection) -> None:
        super().__init__(
            _REJECTION_MESSAGES[reason],
            code=reason.value,
            category=_REJECTION_CATEGORIES.get(reason, ErrorCategory.STATE),
        )
        self.reason = reason


class AlreadyVotedError(VoteRejectedError):
    """Raised when the user already has a ballot, whether found up front or by the constraint."""

    def __init__(self) -> None:
        super().__init__(VoteRejection.ALREADY_VOTED)


class BallotNotFoundError(ServiceError):
    category = ErrorCategory.NOT_FOUND
    default_code = "ballot_not_found"


class InvalidStatusTransitionError(ServiceError):
    category = ErrorCategory.STATE
    default_code = "invalid_status_transition"


@dataclass(frozen=True)
class BallotMetadata:
    """Submission details recorded with a ballot."""

    origin_address: str | None = None
    client_signature: str | None = None


@dataclass(frozen=True)
class Eligibility:
    """Advisory answer to "may this user vote right now?"."""

    eligible: bool
    reason: str
    code: str
    rejection: VoteRejection | None = None


@dataclass(frozen=True)
class VotingHistoryEntry:
    """A ballot as shown back to its owner. The candidate is never included."""

    ballot_id: uuid.UUID
    constituency_name: str
    state: str
    voted_at: datetime
    status: BallotStatus
    transaction_id: str


async def _load(session: AsyncSession, model: type[Base], row_id: uuid.UUID) -> Any:
    # populate_existing so a long-lived session never answers from a stale identity map
    result = await session.execute(
        select(model).where(model.id == row_id).execution_options(populate_existing=True)  # type: ignore[attr-defined]
    )
    return result.unique().scalar_one_or_none()


def _voter_rejection(user: User | None, now: datetime) -> VoteRejection | None:
    if user is None:
        return VoteRejection.USER_NOT_FOUND
    if not user.is_active:
        return VoteRejection.USER_INACTIVE
    if not user.is_verified:
        return VoteRejection.USER_NOT_VERIFIED
    if user.is_locked(now):
        return VoteRejection.USER_LOCKED
    return None


async def has_voted(session: AsyncSession, user_id: uuid.UUID) -> bool:
    """Whether any ballot exists for the user."""
    result = await session.execute(select(exists().where(Ballot.user_id == user_id)))
    return bool(result.scalar())


async def check_eligibility(
    session: AsyncSession,
    user_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> Eligibility:
    """Re-state the account and already-voted preconditions without writing anything.

    The answer is advisory: it can be stale by the time a ballot is cast.
    """
    now = now or utcnow()
    user = await _load(session, User, user_id)
    rejection = _voter_rejection(user, now)
    if rejection is None and await has_voted(session, user_id):
        rejection = VoteRejection.ALREADY_VOTED
    if rejection is not None:
        return Eligibility(
            eligible=False,
            reason=_REJECTION_MESSAGES[rejection],
            code=rejection.value,
            rejection=rejection,
        )
    return Eligibility(eligible=True, reason="User is eligible to vote", code="eligible")


async def cast_vote(
    session: AsyncSession,
    user_id: uuid.UUID,
    constituency_id: uuid.UUID,
    candidate_id: uuid.UUID,
    *,
    party_id: uuid.UUID | None = None,
    metadata: BallotMetadata | None = None,
    now: datetime | None = None,
) -> Ballot:
    """Cast the user's only ballot.

    Args:
        session: The database session.
        user_id: The voter.
        constituency_id: Constituency the ballot is cast in.
        candidate_id: Chosen candidate.
        party_id: Optional party the client believes the candidate stands for.
        metadata: Origin address and client signature to record.
        now: Override of the current time.

    Returns:
        The committed Ballot.

    Raises:
        VoteRejectedError: If a precondition fails.
        AlreadyVotedError: If the user already has a ballot, including when a
            concurrent request committed first.
    """
    now = now or utcnow()
    metadata = metadata or BallotMetadata()

    user = await _load(session, User, user_id)
    rejection = _voter_rejection(user, now)
    if rejection is not None:
        raise VoteRejectedError(rejection)

    if await has_voted(session, user_id):
        raise AlreadyVotedError

    constituency = await _load(session, Constituency, constituency_id)
    if constituency is None:
        raise VoteRejectedError(VoteRejection.CONSTITUENCY_NOT_FOUND)
    if not constituency.is_active:
        raise VoteRejectedError(VoteRejection.CONSTITUENCY_INACTIVE)

    candidate = await _load(session, Candidate, candidate_id)
    if candidate is None:
        raise VoteRejectedError(VoteRejection.CANDIDATE_NOT_FOUND)
    if not candidate.is_active:
        raise VoteRejectedError(VoteRejection.CANDIDATE_INACTIVE)
    if candidate.constituency_id != constituency.id:
        raise VoteRejectedError(VoteRejection.CANDIDATE_NOT_IN_CONSTITUENCY)

    if not candidate.party.is_active:
        raise VoteRejectedError(VoteRejection.PARTY_INACTIVE)
    if party_id is not None and candidate.party_id != party_id:
        raise VoteRejectedError(VoteRejection.PARTY_MISMATCH)

    ballot = Ballot(
        user_id=user_id,
        constituency_id=constituency.id,
        candidate_id=candidate.id,
        session_token=generate_session_token(),
        origin_address=metadata.origin_address,
        client_signature=metadata.client_signature,
        status=BallotStatus.CAST,
        created_at=now,
    )
    session.add(ballot)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        if await has_voted(session, user_id):
            logger.warning("Rejected concurrent second ballot for user {}", user_id)
            raise AlreadyVotedError from None
        raise

    logger.info("Ballot {} cast by user {} in constituency {}", ballot.id, user_id, constituency.id)
    return ballot


def transaction_id_for(ballot: Ballot) -> str:
    """Public reference for a ballot that reveals nothing about the choice."""
    day = ballot.created_at.strftime("%Y%m%d")
    return f"VTX{day}-{ballot.session_token[:8].upper()}"


async def get_voting_history(session: AsyncSession, user_id: uuid.UUID) -> list[VotingHistoryEntry]:
    """List the user's ballots, newest first, without candidate or party."""
    result = await session.execute(
        select(Ballot, Constituency)
        .join(Constituency, Ballot.constituency_id == Constituency.id)
        .where(Ballot.user_id == user_id)
        .order_by(Ballot.created_at.desc())
    )
    return [
        VotingHistoryEntry(
            ballot_id=ballot.id,
            constituency_name=constituency.name,
            state=constituency.state,
            voted_at=ballot.created_at,
            status=ballot.status,
            transaction_id=transaction_id_for(ballot),
        )
        for ballot, constituency in result.all()
    ]


async def update_ballot_status(
    session: AsyncSession,
    ballot_id: uuid.UUID,
    status: BallotStatus,
    *,
    reason: str | None = None,
) -> Ballot:
    """Move a ballot to a new review status.

    Raises:
        BallotNotFoundError: If the ballot does not exist.
        InvalidStatusTransitionError: If the transition is not allowed.
    """
    ballot = await _load(session, Ballot, ballot_id)
    if ballot is None:
        msg = f"Ballot {ballot_id} not found"
        raise BallotNotFoundError(msg)

    if status not in ALLOWED_STATUS_TRANSITIONS[ballot.status]:
        msg = f"Cannot change ballot status from {ballot.status.value} to {status.value}"
        raise InvalidStatusTransitionError(msg)

    previous = ballot.status
    ballot.status = status
    ballot.status_reason = reason
    await session.commit()
    logger.info("Ballot {} status {} -> {}", ballot.id, previous.value, status.value)
    return ballot
