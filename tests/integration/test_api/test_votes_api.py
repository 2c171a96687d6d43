"""Integration tests for voting codes, ballot casting, eligibility, and history."""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_api.core.config import Settings
from ballot_api.core.security import create_access_token
from ballot_api.models.ballot import Ballot
from ballot_api.models.user import User
from tests.conftest import ElectionData, make_user
from tests.integration.test_api.conftest import bearer


async def _voting_code(client: AsyncClient, token: str) -> str:
    resp = await client.post("/api/v1/otp/request", json={"purpose": "voting_verification"}, headers=bearer(token))
    assert resp.status_code == 200, resp.text
    return resp.json()["code"]


def _ballot_body(election: ElectionData, code: str, **overrides: object) -> dict:
    body = {
        "constituency_id": str(election.constituency.id),
        "candidate_id": str(election.candidate.id),
        "party_id": str(election.party.id),
        "verification_code": code,
    }
    body.update(overrides)
    return body


async def _ballots(session: AsyncSession) -> list[Ballot]:
    result = await session.execute(select(Ballot))
    return list(result.scalars().all())


class TestCastVote:
    """Tests for POST /votes."""

    @pytest.mark.asyncio
    async def test_cast_ballot(
        self,
        client: AsyncClient,
        async_session: AsyncSession,
        voter: User,
        voter_token: str,
        election: ElectionData,
    ) -> None:
        code = await _voting_code(client, voter_token)

        resp = await client.post(
            "/api/v1/votes",
            json=_ballot_body(election, code),
            headers={**bearer(voter_token), "X-Forwarded-For": "198.51.100.4, 10.0.0.1", "User-Agent": "kiosk/2"},
        )

        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["constituency_id"] == str(election.constituency.id)
        assert body["status"] == "cast"
        assert "candidate_id" not in body
        assert len(body["session_token"]) == 36

        [ballot] = await _ballots(async_session)
        assert ballot.origin_address == "198.51.100.4"
        assert ballot.client_signature == "kiosk/2"

    @pytest.mark.asyncio
    async def test_second_voting_code_refused(
        self, client: AsyncClient, voter: User, voter_token: str, election: ElectionData
    ) -> None:
        code = await _voting_code(client, voter_token)
        await client.post("/api/v1/votes", json=_ballot_body(election, code), headers=bearer(voter_token))

        resp = await client.post(
            "/api/v1/otp/request", json={"purpose": "voting_verification"}, headers=bearer(voter_token)
        )

        assert resp.status_code == 409
        assert resp.json()["code"] == "already_voted"

    @pytest.mark.asyncio
    async def test_voting_code_cannot_be_reused(
        self, client: AsyncClient, voter: User, voter_token: str, election: ElectionData
    ) -> None:
        code = await _voting_code(client, voter_token)
        await client.post("/api/v1/votes", json=_ballot_body(election, code), headers=bearer(voter_token))

        resp = await client.post("/api/v1/votes", json=_ballot_body(election, code), headers=bearer(voter_token))

        assert resp.status_code == 403
        assert resp.json()["code"] == "otp_already_used"

    @pytest.mark.asyncio
    async def test_wrong_code_casts_nothing(
        self,
        client: AsyncClient,
        async_session: AsyncSession,
        voter: User,
        voter_token: str,
        election: ElectionData,
    ) -> None:
        code = await _voting_code(client, voter_token)
        wrong = "000000" if code != "000000" else "111111"

        resp = await client.post("/api/v1/votes", json=_ballot_body(election, wrong), headers=bearer(voter_token))

        assert resp.status_code == 400
        assert resp.json()["code"] == "otp_invalid_code"
        assert await _ballots(async_session) == []

    @pytest.mark.asyncio
    async def test_login_code_does_not_authorize_vote(
        self, client: AsyncClient, voter: User, voter_token: str, election: ElectionData
    ) -> None:
        resp = await client.post(
            "/api/v1/otp/request", json={"purpose": "login_verification"}, headers=bearer(voter_token)
        )
        code = resp.json()["code"]

        resp = await client.post("/api/v1/votes", json=_ballot_body(election, code), headers=bearer(voter_token))

        assert resp.status_code == 400
        assert resp.json()["code"] == "otp_not_found"

    @pytest.mark.asyncio
    async def test_candidate_outside_constituency(
        self, client: AsyncClient, voter: User, voter_token: str, election: ElectionData
    ) -> None:
        code = await _voting_code(client, voter_token)

        resp = await client.post(
            "/api/v1/votes",
            json=_ballot_body(election, code, candidate_id=str(election.other_candidate.id)),
            headers=bearer(voter_token),
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "candidate_not_in_constituency"

    @pytest.mark.asyncio
    async def test_unknown_constituency(
        self, client: AsyncClient, voter: User, voter_token: str, election: ElectionData
    ) -> None:
        code = await _voting_code(client, voter_token)

        resp = await client.post(
            "/api/v1/votes",
            json=_ballot_body(election, code, constituency_id=str(uuid.uuid4())),
            headers=bearer(voter_token),
        )

        assert resp.status_code == 404
        assert resp.json()["code"] == "constituency_not_found"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient, election: ElectionData) -> None:
        resp = await client.post("/api/v1/votes", json=_ballot_body(election, "123456"))
        assert resp.status_code == 401


class TestUnverifiedVoter:
    @pytest.mark.asyncio
    async def test_no_voting_code_for_unverified_user(
        self, client: AsyncClient, async_session: AsyncSession, settings: Settings
    ) -> None:
        async_session.add(make_user("pending@test.com", is_verified=False))
        await async_session.commit()
        token = create_access_token(
            subject="pending@test.com", role="voter", secret_key=settings.jwt_secret_key, algorithm="HS256"
        )

        resp = await client.post("/api/v1/otp/request", json={"purpose": "voting_verification"}, headers=bearer(token))

        assert resp.status_code == 403
        assert resp.json()["code"] == "user_not_verified"

        resp = await client.get("/api/v1/votes/eligibility", headers=bearer(token))
        assert resp.json() == {
            "eligible": False,
            "reason": "User account is not verified",
            "code": "user_not_verified",
        }


class TestEligibilityAndHistory:
    @pytest.mark.asyncio
    async def test_eligibility_changes_after_vote(
        self, client: AsyncClient, voter: User, voter_token: str, election: ElectionData
    ) -> None:
        resp = await client.get("/api/v1/votes/eligibility", headers=bearer(voter_token))
        assert resp.status_code == 200
        assert resp.json()["eligible"] is True

        code = await _voting_code(client, voter_token)
        await client.post("/api/v1/votes", json=_ballot_body(election, code), headers=bearer(voter_token))

        resp = await client.get("/api/v1/votes/eligibility", headers=bearer(voter_token))
        assert resp.json()["eligible"] is False
        assert resp.json()["code"] == "already_voted"

    @pytest.mark.asyncio
    async def test_history(self, client: AsyncClient, voter: User, voter_token: str, election: ElectionData) -> None:
        resp = await client.get("/api/v1/votes/history", headers=bearer(voter_token))
        assert resp.json() == []

        code = await _voting_code(client, voter_token)
        cast = await client.post("/api/v1/votes", json=_ballot_body(election, code), headers=bearer(voter_token))

        resp = await client.get("/api/v1/votes/history", headers=bearer(voter_token))
        [entry] = resp.json()
        assert entry["ballot_id"] == cast.json()["id"]
        assert entry["constituency_name"] == "North Ward"
        assert entry["state"] == "Karnataka"
        assert entry["status"] == "cast"
        assert entry["transaction_id"].startswith("VTX")
        assert entry["transaction_id"].endswith(cast.json()["session_token"][:8].upper())
        assert "candidate_id" not in entry
