"""Authentication API endpoints.

GET /health, GET /info, POST /auth/register, POST /auth/verify-registration,
POST /auth/login, POST /auth/verify-login, POST /auth/refresh, GET /auth/me,
POST /auth/password/change, POST /auth/password-reset/request,
POST /auth/password-reset/confirm.
"""

import subprocess
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api import __version__
from ballot_api.api.v1.otp import code_issued_response
from ballot_api.core.config import Settings, get_settings
from ballot_api.core.dependencies import get_async_session, get_code_notifier, get_current_user
from ballot_api.lib.notifier import CodeNotifier
from ballot_api.models.one_time_code import OtpPurpose
from ballot_api.models.user import User
from ballot_api.schemas.auth import (
    CodeIssuedResponse,
    CodeVerifyRequest,
    LoginRequest,
    PasswordChangeRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from ballot_api.schemas.common import MessageResponse
from ballot_api.services import auth_service, otp_service
from ballot_api.services.auth_service import AuthenticationError, AuthFailure, UserNotFoundError


def _get_git_commit() -> str:
    """Resolve the current git short SHA once at import time."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S603, S607
            capture_output=True,
            text=True,
            timeout=5,
            cwd=Path(__file__).resolve().parent,
        )
        return result.stdout.strip() if result.returncode == 0 else "unknown"
    except Exception:
        return "unknown"


_GIT_COMMIT = _get_git_commit()

router = APIRouter(tags=["auth"])


def _unauthorized(exc: AuthenticationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=exc.message,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.get("/health", status_code=200)
async def health_check() -> dict:
    """Health check endpoint (no authentication required)."""
    return {"status": "healthy"}


@router.get("/info", status_code=200)
async def info(
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict:
    """Return application version, git commit, and environment."""
    return {
        "version": __version__,
        "git_commit": _GIT_COMMIT,
        "environment": settings.environment,
    }


@router.post("/auth/register", response_model=CodeIssuedResponse, status_code=201)
async def register(
    request: RegisterRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    notifier: Annotated[CodeNotifier, Depends(get_code_notifier)],
) -> CodeIssuedResponse:
    """Register a voter and send the registration verification code."""
    user = await auth_service.register_user(session, request)
    code = await otp_service.issue_code(
        session, user.email, OtpPurpose.REGISTRATION_VERIFICATION, settings, notifier=notifier
    )
    return code_issued_response(
        user.email,
        OtpPurpose.REGISTRATION_VERIFICATION,
        code,
        settings,
        message="Registration successful, check your email for the verification code",
    )


@router.post("/auth/verify-registration", response_model=UserResponse)
async def verify_registration(
    request: CodeVerifyRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> User:
    """Confirm a registration code and mark the account verified."""
    await otp_service.require_valid_code(
        session, request.email, request.code, OtpPurpose.REGISTRATION_VERIFICATION, settings
    )
    user = await auth_service.get_user_by_email(session, request.email)
    if user is None:
        msg = "User not found"
        raise UserNotFoundError(msg)
    return await auth_service.verify_user(session, user.id)


@router.post("/auth/login", response_model=CodeIssuedResponse)
async def login(
    request: LoginRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    notifier: Annotated[CodeNotifier, Depends(get_code_notifier)],
) -> CodeIssuedResponse:
    """Check credentials and send the login verification code.

    Tokens are only issued by ``/auth/verify-login`` once the code is confirmed.
    """
    try:
        user = await auth_service.authenticate_user(session, request.email, request.password, settings)
    except AuthenticationError as e:
        if e.reason is AuthFailure.INVALID_CREDENTIALS:
            raise _unauthorized(e) from e
        raise

    if not user.is_verified:
        raise AuthenticationError(AuthFailure.ACCOUNT_NOT_VERIFIED)

    code = await otp_service.request_code(
        session, user.email, OtpPurpose.LOGIN_VERIFICATION, settings, notifier=notifier
    )
    return code_issued_response(user.email, OtpPurpose.LOGIN_VERIFICATION, code, settings)


@router.post("/auth/verify-login", response_model=TokenResponse)
async def verify_login(
    request: CodeVerifyRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenResponse:
    """Confirm a login code and return JWT tokens."""
    await otp_service.require_valid_code(session, request.email, request.code, OtpPurpose.LOGIN_VERIFICATION, settings)
    user = await auth_service.get_user_by_email(session, request.email)
    if user is None or not user.is_active:
        raise _unauthorized(AuthenticationError(AuthFailure.INVALID_CREDENTIALS))
    return auth_service.generate_tokens(user, settings)


@router.post("/auth/refresh", response_model=TokenResponse)
async def refresh_token(
    request: RefreshRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenResponse:
    """Refresh an access token using a refresh token."""
    try:
        return await auth_service.refresh_access_token(session, request.refresh_token, settings)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e


@router.get("/auth/me", response_model=UserResponse)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get the currently authenticated user's profile."""
    return current_user


@router.post("/auth/password/change", response_model=MessageResponse)
async def change_password(
    request: PasswordChangeRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> MessageResponse:
    """Change the signed-in user's password."""
    try:
        await auth_service.change_password(session, current_user, request.current_password, request.new_password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect") from e
    return MessageResponse(message="Password changed")


@router.post("/auth/password-reset/request", response_model=CodeIssuedResponse)
async def request_password_reset(
    request: PasswordResetRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    notifier: Annotated[CodeNotifier, Depends(get_code_notifier)],
) -> CodeIssuedResponse:
    """Send a password-reset code."""
    user = await auth_service.get_user_by_email(session, request.email)
    if user is None:
        msg = "No account found with this email address"
        raise UserNotFoundError(msg)
    code = await otp_service.request_code(session, user.email, OtpPurpose.PASSWORD_RESET, settings, notifier=notifier)
    return code_issued_response(
        user.email, OtpPurpose.PASSWORD_RESET, code, settings, message="Password reset code sent"
    )


@router.post("/auth/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(
    request: PasswordResetConfirm,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    """Set a new password using a password-reset code."""
    await otp_service.require_valid_code(session, request.email, request.code, OtpPurpose.PASSWORD_RESET, settings)
    await auth_service.reset_password(session, request.email, request.new_password)
    return MessageResponse(message="Password reset successful")
