"""Ballot option endpoints. Public and read-only.

GET /elections/constituencies, GET /elections/constituencies/{id},
GET /elections/constituencies/{id}/candidates.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.core.dependencies import get_async_session
from ballot_api.models.election import Constituency
from ballot_api.schemas.election import CandidateOption, ConstituencyResponse
from ballot_api.services import election_service

elections_router = APIRouter(prefix="/elections", tags=["elections"])


@elections_router.get("/constituencies", response_model=list[ConstituencyResponse])
async def list_constituencies(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    state: str | None = Query(default=None, description="Filter by state"),
) -> list[Constituency]:
    """List active constituencies."""
    return await election_service.list_constituencies(session, state=state)


@elections_router.get("/constituencies/{constituency_id}", response_model=ConstituencyResponse)
async def get_constituency(
    constituency_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> Constituency:
    return await election_service.get_constituency(session, constituency_id)


@elections_router.get("/constituencies/{constituency_id}/candidates", response_model=list[CandidateOption])
async def list_candidates(
    constituency_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> list[CandidateOption]:
    """List the active candidates on a constituency's ballot with party name and symbol."""
    candidates = await election_service.list_candidates(session, constituency_id)
    return [CandidateOption.from_candidate(candidate) for candidate in candidates]
