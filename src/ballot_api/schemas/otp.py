"""One-time code request and status schemas."""

from pydantic import BaseModel, EmailStr

from ballot_api.models.one_time_code import OtpPurpose


class CodeRequest(BaseModel):
    """Request a fresh code for the signed-in user."""

    purpose: OtpPurpose = OtpPurpose.VOTING_VERIFICATION


class CodeResendRequest(BaseModel):
    """Ask for a replacement code before signing in."""

    email: EmailStr
    purpose: OtpPurpose


class CodeStatusResponse(BaseModel):
    """Whether a code is outstanding and how long it has left."""

    email: str
    purpose: OtpPurpose
    active: bool
    remaining_minutes: int | None = None
    can_resend: bool


class CodeStatisticsResponse(BaseModel):
    """Counts over the code table."""

    total: int
    active: int
    expired: int
    used: int
    created_today: int

    model_config = {"from_attributes": True}
