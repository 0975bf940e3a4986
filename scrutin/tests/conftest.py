"""
Pytest configuration and shared fixtures for scrutin tests.
"""

import pytest

from scrutin.notifier import RecordingNotifier
from scrutin.service import BallotService

ADMIN = "0xadmin"
RANDOM_GUY = "0xrandom"
VOTERS = ["0xvoter0", "0xvoter1", "0xvoter2"]
PROPOSALS = ["Proposal #0", "Proposal #1", "Proposal #2"]


@pytest.fixture
def admin() -> str:
    return ADMIN


@pytest.fixture
def random_guy() -> str:
    """An identity that is neither administrator nor voter."""
    return RANDOM_GUY


@pytest.fixture
def voters() -> list[str]:
    return list(VOTERS)


@pytest.fixture
def proposals() -> list[str]:
    return list(PROPOSALS)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ballot(notifier) -> BallotService:
    """A freshly created ballot administered by ADMIN."""
    service = BallotService("ballot-test", notifier=notifier)
    service.create(ADMIN)
    return service


@pytest.fixture
def registered_ballot(ballot) -> BallotService:
    """Ballot with the three voters registered, still in RegisteringVoters."""
    for voter in VOTERS:
        ballot.register_voter(ADMIN, voter)
    return ballot


@pytest.fixture
def proposals_ballot(registered_ballot) -> BallotService:
    """Ballot in ProposalsRegistrationStarted with one proposal per voter."""
    registered_ballot.start_proposals_registration(ADMIN)
    for voter, text in zip(VOTERS, PROPOSALS):
        registered_ballot.submit_proposal(voter, text)
    return registered_ballot


@pytest.fixture
def voting_ballot(proposals_ballot) -> BallotService:
    """Ballot in VotingSessionStarted with three proposals."""
    proposals_ballot.end_proposals_registration(ADMIN)
    proposals_ballot.start_voting_session(ADMIN)
    return proposals_ballot


@pytest.fixture
def revote_ballot(notifier) -> BallotService:
    """Ballot allowing vote changes, in VotingSessionStarted with three proposals."""
    service = BallotService("ballot-revote", notifier=notifier)
    service.create(ADMIN, allow_revote=True)
    for voter in VOTERS:
        service.register_voter(ADMIN, voter)
    service.start_proposals_registration(ADMIN)
    for voter, text in zip(VOTERS, PROPOSALS):
        service.submit_proposal(voter, text)
    service.end_proposals_registration(ADMIN)
    service.start_voting_session(ADMIN)
    return service
