"""Administrative API endpoints (admin role only).

GET /admin/users, POST /admin/users/{id}/unlock, PATCH /admin/users/{id}/status,
POST /admin/ballots/{id}/status, GET /admin/otp/stats.
"""

import math
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.core.dependencies import get_async_session, require_role
from ballot_api.models.ballot import Ballot
from ballot_api.models.user import User
from ballot_api.schemas.auth import UserResponse, UserStatusUpdate
from ballot_api.schemas.common import PaginationMeta, PaginationParams
from ballot_api.schemas.otp import CodeStatisticsResponse
from ballot_api.schemas.vote import BallotResponse, BallotStatusUpdate
from ballot_api.services import auth_service, otp_service, vote_service

admin_router = APIRouter(prefix="/admin", tags=["admin"])

AdminUser = Annotated[User, Depends(require_role("admin"))]


@admin_router.get("/users", response_model=dict)
async def list_users(
    _current_user: AdminUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    pagination: Annotated[PaginationParams, Depends()],
) -> dict:
    """List all users."""
    users, total = await auth_service.list_users(session, pagination.page, pagination.page_size)
    return {
        "items": [UserResponse.model_validate(u) for u in users],
        "pagination": PaginationMeta(
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=max(1, math.ceil(total / pagination.page_size)),
        ),
    }


@admin_router.post("/users/{user_id}/unlock", response_model=UserResponse)
async def unlock_user(
    user_id: uuid.UUID,
    _current_user: AdminUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> User:
    """Clear a user's failed-login counter and lockout."""
    return await auth_service.unlock_user(session, user_id)


@admin_router.patch("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: uuid.UUID,
    request: UserStatusUpdate,
    _current_user: AdminUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> User:
    """Activate or deactivate a user."""
    return await auth_service.set_user_active(session, user_id, is_active=request.is_active)


@admin_router.post("/ballots/{ballot_id}/status", response_model=BallotResponse)
async def update_ballot_status(
    ballot_id: uuid.UUID,
    request: BallotStatusUpdate,
    _current_user: AdminUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> Ballot:
    """Move a ballot to a new review status."""
    return await vote_service.update_ballot_status(session, ballot_id, request.status, reason=request.reason)


@admin_router.get("/otp/stats", response_model=CodeStatisticsResponse)
async def code_statistics(
    _current_user: AdminUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> CodeStatisticsResponse:
    """Counts of issued codes by state."""
    stats = await otp_service.get_code_statistics(session)
    return CodeStatisticsResponse.model_validate(stats)
