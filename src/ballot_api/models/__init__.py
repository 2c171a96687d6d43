"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from ballot_api.models.ballot import Ballot, BallotStatus
from ballot_api.models.election import Candidate, Constituency, Party
from ballot_api.models.one_time_code import OneTimeCode, OtpPurpose
from ballot_api.models.user import User

__all__ = [
    "Ballot",
    "BallotStatus",
    "Candidate",
    "Constituency",
    "OneTimeCode",
    "OtpPurpose",
    "Party",
    "User",
]
