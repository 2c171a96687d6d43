"""Election service: read-only access to the ballot a voter chooses from.

Only active rows are visible. A candidate is listed only while both the
candidate and its party are active, which is the same set ``cast_vote``
accepts.
"""

import uuid

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.core.errors import ErrorCategory, ServiceError
from ballot_api.models.election import Candidate, Constituency, Party


class ConstituencyNotFoundError(ServiceError):
    category = ErrorCategory.NOT_FOUND
    default_code = "constituency_not_found"


async def list_constituencies(session: AsyncSession, *, state: str | None = None) -> list[Constituency]:
    """List active constituencies ordered by state and name.

    Args:
        session: Async database session.
        state: Optional exact state filter (case-insensitive).

    Returns:
        Active constituencies.
    """
    query = select(Constituency).where(Constituency.is_active.is_(True))
    if state:
        query = query.where(Constituency.state.ilike(state.strip()))
    result = await session.execute(query.order_by(Constituency.state, Constituency.name))
    return list(result.scalars().all())


async def get_constituency(session: AsyncSession, constituency_id: uuid.UUID) -> Constituency:
    """Return an active constituency.

    Raises:
        ConstituencyNotFoundError: If it does not exist or is inactive.
    """
    constituency = await session.get(Constituency, constituency_id)
    if constituency is None or not constituency.is_active:
        msg = "Constituency not found"
        raise ConstituencyNotFoundError(msg)
    return constituency


async def list_candidates(session: AsyncSession, constituency_id: uuid.UUID) -> list[Candidate]:
    """List the active candidates standing in a constituency, with their parties.

    Args:
        session: Async database session.
        constituency_id: The constituency UUID.

    Returns:
        Candidates ordered by party name, then candidate name.

    Raises:
        ConstituencyNotFoundError: If the constituency does not exist or is inactive.
    """
    await get_constituency(session, constituency_id)
    result = await session.execute(
        select(Candidate)
        .join(Party, Candidate.party_id == Party.id)
        .where(
            Candidate.constituency_id == constituency_id,
            Candidate.is_active.is_(True),
            Party.is_active.is_(True),
        )
        .order_by(Party.name, Candidate.name)
    )
    candidates = list(result.unique().scalars().all())
    logger.debug("Listed {} candidate(s) for constituency {}", len(candidates), constituency_id)
    return candidates
