"""Tests for BallotCommandGateway."""

import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from scrutin.ballot.models import (
    AlreadyRegistered,
    InvalidState,
    NoVotes,
    PermissionDenied,
    ProposalNotFound,
)
from scrutin.config import BallotConfig
from scrutin.gateway import BallotCommandGateway, create_app, rejection_status_code
from scrutin.model import AlreadyExists
from scrutin.access import OwnerAccessControl
from scrutin.notifier import RecordingNotifier
from scrutin.service import BallotService


class TestRejectionStatusCode:
    @pytest.mark.parametrize(
        "rejection,code",
        [
            (PermissionDenied(), 403),
            (ProposalNotFound(), 404),
            (AlreadyRegistered(), 409),
            (AlreadyExists(), 409),
            (InvalidState(), 400),
            (NoVotes(), 400),
        ],
    )
    def test_mapping(self, rejection, code):
        assert rejection_status_code(rejection) == code


class TestBallotCommandGateway:
    """Tests for the ballot HTTP routes."""

    @pytest.fixture
    def notifiers(self):
        return {}

    @pytest.fixture
    def gateway(self, notifiers):
        def factory(ballot_id: str) -> RecordingNotifier:
            notifiers[ballot_id] = RecordingNotifier()
            return notifiers[ballot_id]

        return BallotCommandGateway(notifier_factory=factory)

    @pytest.fixture
    def client(self, gateway):
        return TestClient(create_app(gateway=gateway))

    def _command(self, client, caller, command_type, ballot_id="b1", **payload):
        return client.post(
            f"/ballots/{ballot_id}/commands",
            json={"caller": caller, "command_type": command_type, "payload": payload},
        )

    @pytest.fixture
    def created(self, client, admin, voters):
        response = client.post("/ballots/b1", json={"caller": admin})
        assert response.status_code == 200
        for voter in voters:
            assert self._command(client, admin, "register_voter", identity=voter).status_code == 200
        return client

    def test_create_ballot(self, client, admin):
        response = client.post("/ballots/b1", json={"caller": admin})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["ballot_id"] == "b1"
        assert data["version"] == 2
        assert data["administrator"] == admin

    def test_create_existing_ballot(self, created, admin):
        response = created.post("/ballots/b1", json={"caller": admin})
        assert response.status_code == 409
        assert response.json()["detail"]["rejection"] == "AlreadyExists"

    def test_create_uses_config_defaults(self, admin):
        gateway = BallotCommandGateway(config=BallotConfig(allow_revote=True, min_voters=3))
        client = TestClient(create_app(gateway=gateway))
        client.post("/ballots/b1", json={"caller": admin})
        state = gateway.services["b1"].state
        assert state.allow_revote is True
        assert state.min_voters == 3

    def test_create_overrides_config(self, client, gateway, admin):
        client.post("/ballots/b1", json={"caller": admin, "allow_revote": True})
        assert gateway.services["b1"].state.allow_revote is True

    def test_create_refuses_lone_administrator(self, client, admin):
        response = client.post("/ballots/b1", json={"caller": admin, "min_voters": 1})
        assert response.status_code == 422
        assert client.get("/ballots/b1/status").status_code == 404

    def test_unknown_ballot(self, client, admin):
        response = self._command(client, admin, "tally_votes", ballot_id="missing")
        assert response.status_code == 404
        assert client.get("/ballots/missing/result").status_code == 404

    def test_unknown_command_type(self, created, admin):
        response = self._command(created, admin, "close_everything")
        assert response.status_code == 400
        assert "Unknown command type" in response.json()["detail"]

    def test_invalid_payload(self, created, voters):
        response = self._command(created, voters[0], "vote", proposal_id="first")
        assert response.status_code == 400

    def test_permission_denied(self, created, random_guy):
        response = self._command(created, random_guy, "start_proposals_registration")
        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["rejection"] == "PermissionDenied"
        assert detail["msg"]

    def test_already_registered(self, created, admin, voters):
        response = self._command(created, admin, "register_voter", identity=voters[0])
        assert response.status_code == 409

    def test_status(self, created):
        data = created.get("/ballots/b1/status").json()
        assert data["workflow_status"] == "REGISTERING_VOTERS"
        assert data["status_code"] == 0
        assert data["version"] == 5
        assert data["winning_proposal_id"] == 0

    def test_full_ballot(self, created, admin, voters, proposals, notifiers):
        client = created
        assert self._command(client, admin, "start_proposals_registration").status_code == 200
        for voter, text in zip(voters, proposals):
            response = self._command(client, voter, "submit_proposal", description=text)
            assert response.status_code == 200
            assert response.json()["events"][0]["type"] == "ProposalRegistered"
        assert self._command(client, admin, "end_proposals_registration").status_code == 200
        assert self._command(client, admin, "start_voting_session").status_code == 200

        response = self._command(client, voters[0], "vote", proposal_id=7)
        assert response.status_code == 404

        for voter in voters:
            response = self._command(client, voter, "vote", proposal_id=1)
            assert response.status_code == 200

        ballot_view = client.get(f"/ballots/b1/voters/{voters[0]}", params={"caller": voters[1]})
        assert ballot_view.status_code == 200
        assert ballot_view.json()["voted_description"] == proposals[1]

        assert client.get("/ballots/b1/result").status_code == 400

        assert self._command(client, admin, "end_voting_session").status_code == 200
        response = self._command(client, admin, "tally_votes")
        assert response.status_code == 200
        assert response.json()["workflow_status"] == "VOTES_TALLIED"
        assert [e["type"] for e in response.json()["events"]] == [
            "VotesTallied",
            "WorkflowStatusChange",
        ]

        result = client.get("/ballots/b1/result").json()
        assert result["winners"] == [1]
        assert result["vote_count"] == 3
        assert result["is_tie"] is False

        listed = client.get("/ballots/b1/proposals", params={"caller": voters[2]}).json()
        assert [p["vote_count"] for p in listed] == [0, 3, 0]

        assert notifiers["b1"].names()[-1] == "WorkflowStatusChange"

    def test_proposals_require_voter(self, created, admin, random_guy):
        self._command(created, admin, "start_proposals_registration")
        response = created.get("/ballots/b1/proposals", params={"caller": random_guy})
        assert response.status_code == 403

    def test_health(self, created):
        assert created.get("/health").json() == {"status": "ok", "ballots": 1}


class TestConcurrentRequests:
    class SlowAccessControl(OwnerAccessControl):
        def is_administrator(self, identity):
            time.sleep(0.05)
            return super().is_administrator(identity)

    def test_concurrent_commands_on_one_ballot(self, admin):
        service = BallotService(
            "b", notifier=RecordingNotifier(), access_control=self.SlowAccessControl(admin)
        )
        service.create(admin)
        client = TestClient(create_app(gateway=BallotCommandGateway(services={"b": service})))
        identities = [f"0xv{i}" for i in range(6)]

        def register(identity):
            return client.post(
                "/ballots/b/commands",
                json={
                    "caller": admin,
                    "command_type": "register_voter",
                    "payload": {"identity": identity},
                },
            )

        with ThreadPoolExecutor(max_workers=len(identities)) as pool:
            responses = list(pool.map(register, identities))

        assert [r.status_code for r in responses] == [200] * len(identities)
        assert sorted(r.json()["version"] for r in responses) == list(range(3, 9))
        state = service.state
        assert all(state.is_voter(v) for v in identities)
        assert state.voter_count == len(identities) + 1
        assert service.version == len(service.events)

    def test_concurrent_creation(self, admin):
        def slow_factory(ballot_id):
            time.sleep(0.05)
            return RecordingNotifier()

        gateway = BallotCommandGateway(notifier_factory=slow_factory)
        client = TestClient(create_app(gateway=gateway))

        with ThreadPoolExecutor(max_workers=4) as pool:
            responses = list(
                pool.map(lambda _: client.post("/ballots/b1", json={"caller": admin}), range(4))
            )

        assert sorted(r.status_code for r in responses) == [200, 409, 409, 409]
        assert gateway.services["b1"].version == 2
