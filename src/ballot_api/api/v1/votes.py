"""Voting API endpoints.

GET /votes/eligibility, POST /votes, GET /votes/history.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.api.middleware import get_client_ip
from ballot_api.core.config import Settings, get_settings
from ballot_api.core.dependencies import get_async_session, get_current_user
from ballot_api.models.ballot import Ballot
from ballot_api.models.one_time_code import OtpPurpose
from ballot_api.models.user import User
from ballot_api.schemas.vote import BallotResponse, CastVoteRequest, EligibilityResponse, VotingHistoryItem
from ballot_api.services import otp_service, vote_service
from ballot_api.services.vote_service import BallotMetadata

votes_router = APIRouter(prefix="/votes", tags=["votes"])

_MAX_SIGNATURE_LENGTH = 500


@votes_router.get("/eligibility", response_model=EligibilityResponse)
async def get_eligibility(
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> EligibilityResponse:
    """Advisory check of whether the signed-in user may vote now."""
    eligibility = await vote_service.check_eligibility(session, current_user.id)
    return EligibilityResponse(eligible=eligibility.eligible, reason=eligibility.reason, code=eligibility.code)


@votes_router.post("", response_model=BallotResponse, status_code=201)
async def cast_vote(
    request: CastVoteRequest,
    http_request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Ballot:
    """Cast the signed-in user's ballot after confirming a voting code."""
    await otp_service.require_valid_code(
        session,
        current_user.email,
        request.verification_code,
        OtpPurpose.VOTING_VERIFICATION,
        settings,
    )
    user_agent = http_request.headers.get("user-agent")
    metadata = BallotMetadata(
        origin_address=get_client_ip(http_request, settings.trusted_proxy_header_list),
        client_signature=user_agent[:_MAX_SIGNATURE_LENGTH] if user_agent else None,
    )
    return await vote_service.cast_vote(
        session,
        current_user.id,
        request.constituency_id,
        request.candidate_id,
        party_id=request.party_id,
        metadata=metadata,
    )


@votes_router.get("/history", response_model=list[VotingHistoryItem])
async def get_history(
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> list[VotingHistoryItem]:
    """List the signed-in user's ballots without revealing their choices."""
    entries = await vote_service.get_voting_history(session, current_user.id)
    return [
        VotingHistoryItem(
            ballot_id=entry.ballot_id,
            constituency_name=entry.constituency_name,
            state=entry.state,
            voted_at=entry.voted_at,
            status=entry.status,
            transaction_id=entry.transaction_id,
        )
        for entry in entries
    ]
