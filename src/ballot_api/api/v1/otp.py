"""One-time code API endpoints.

POST /otp/request, POST /otp/resend, GET /otp/status.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.core.config import Settings, get_settings
from ballot_api.core.dependencies import get_async_session, get_code_notifier, get_current_user
from ballot_api.lib.notifier import CodeNotifier
from ballot_api.models.one_time_code import OtpPurpose
from ballot_api.models.user import User
from ballot_api.schemas.auth import CodeIssuedResponse
from ballot_api.schemas.otp import CodeRequest, CodeResendRequest, CodeStatusResponse
from ballot_api.services import auth_service, otp_service
from ballot_api.services.auth_service import UserNotFoundError
from ballot_api.services.vote_service import VoteRejectedError, check_eligibility

otp_router = APIRouter(prefix="/otp", tags=["otp"])


def code_issued_response(
    email: str,
    purpose: OtpPurpose,
    code: str,
    settings: Settings,
    message: str = "Verification code sent",
) -> CodeIssuedResponse:
    """Build the acknowledgement for an issued code.

    The code itself is only included when ``settings.otp_echo_code`` is on.
    """
    return CodeIssuedResponse(
        message=message,
        email=email,
        purpose=purpose.value,
        expires_in_minutes=settings.otp_expiration_minutes,
        code=code if settings.otp_echo_code else None,
    )


@otp_router.post("/request", response_model=CodeIssuedResponse)
async def request_code(
    request: CodeRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    notifier: Annotated[CodeNotifier, Depends(get_code_notifier)],
) -> CodeIssuedResponse:
    """Issue a code to the signed-in user.

    A voting code is only issued to a user who is currently eligible to vote.
    """
    if request.purpose is OtpPurpose.VOTING_VERIFICATION:
        eligibility = await check_eligibility(session, current_user.id)
        if eligibility.rejection is not None:
            raise VoteRejectedError(eligibility.rejection)

    code = await otp_service.request_code(session, current_user.email, request.purpose, settings, notifier=notifier)
    return code_issued_response(current_user.email, request.purpose, code, settings)


@otp_router.post("/resend", response_model=CodeIssuedResponse)
async def resend_code(
    request: CodeResendRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    notifier: Annotated[CodeNotifier, Depends(get_code_notifier)],
) -> CodeIssuedResponse:
    """Replace the outstanding code for (email, purpose), subject to the resend cooldown."""
    user = await auth_service.get_user_by_email(session, request.email)
    if user is None:
        msg = "User not found"
        raise UserNotFoundError(msg)

    code = await otp_service.request_code(
        session, user.email, request.purpose, settings, notifier=notifier, resend=True
    )
    return code_issued_response(user.email, request.purpose, code, settings, message="Verification code resent")


@otp_router.get("/status", response_model=CodeStatusResponse)
async def code_status(
    email: Annotated[EmailStr, Query()],
    purpose: Annotated[OtpPurpose, Query()],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CodeStatusResponse:
    """Report whether a code is outstanding, its remaining minutes, and whether a resend is allowed."""
    remaining = await otp_service.get_remaining_minutes(session, email, purpose)
    can_resend = await otp_service.can_resend_code(session, email, purpose, settings)
    return CodeStatusResponse(
        email=email.lower(),
        purpose=purpose,
        active=remaining is not None,
        remaining_minutes=remaining,
        can_resend=can_resend,
    )
