"""Ballot option schemas: constituencies and the candidates standing in them."""

from uuid import UUID

from pydantic import BaseModel

from ballot_api.models.election import Candidate


class ConstituencyResponse(BaseModel):
    """Constituency a ballot can be cast in."""

    id: UUID
    name: str
    state: str

    model_config = {"from_attributes": True}


class CandidateOption(BaseModel):
    """One choice on a constituency's ballot."""

    id: UUID
    name: str
    constituency_id: UUID
    party_id: UUID
    party_name: str
    party_symbol: str

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "CandidateOption":
        return cls(
            id=candidate.id,
            name=candidate.name,
            constituency_id=candidate.constituency_id,
            party_id=candidate.party_id,
            party_name=candidate.party.name,
            party_symbol=candidate.party.symbol,
        )
