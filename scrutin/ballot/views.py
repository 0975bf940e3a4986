"""Read-only views over a ballot state.

Each query returns its view or a ``Rejection``; none of them mutate state.
"""
from pydantic import BaseModel

from scrutin.model import Rejection

from .models import (
    BallotState,
    InvalidState,
    PermissionDenied,
    ProposalNotFound,
    Voter,
    WorkflowStatus,
)


class ProposalView(BaseModel):
    proposal_id: int
    description: str
    vote_count: int


class VoterBallot(BaseModel):
    identity: str
    is_registered: bool
    has_voted: bool
    voted_proposal_id: int | None = None
    voted_description: str | None = None


class BallotResult(BaseModel):
    winners: list[int]
    vote_count: int
    is_tie: bool
    message: str


def _require_voter(state: BallotState, caller: str) -> PermissionDenied | None:
    if not state.is_voter(caller):
        return PermissionDenied(msg="You're not a voter")
    return None


def get_proposals(state: BallotState, caller: str) -> list[ProposalView] | Rejection:
    denied = _require_voter(state, caller)
    if denied:
        return denied
    if state.status < WorkflowStatus.PROPOSALS_REGISTRATION_STARTED:
        return InvalidState(msg="Proposals registration has not started yet")
    return [
        ProposalView(proposal_id=i, description=p.description, vote_count=p.vote_count)
        for i, p in enumerate(state.proposals)
    ]


def get_one_proposal(
    state: BallotState, caller: str, proposal_id: int
) -> ProposalView | Rejection:
    denied = _require_voter(state, caller)
    if denied:
        return denied
    if not 0 <= proposal_id < len(state.proposals):
        return ProposalNotFound(msg=f"Proposal {proposal_id} not found")
    p = state.proposals[proposal_id]
    return ProposalView(
        proposal_id=proposal_id, description=p.description, vote_count=p.vote_count
    )


def get_voter(state: BallotState, caller: str, identity: str) -> Voter | Rejection:
    """Raw voter record; unknown identities read as an unregistered voter."""
    denied = _require_voter(state, caller)
    if denied:
        return denied
    return state.voter(identity).model_copy()


def get_voter_ballot(
    state: BallotState, caller: str, identity: str
) -> VoterBallot | Rejection:
    denied = _require_voter(state, caller)
    if denied:
        return denied
    if state.status < WorkflowStatus.VOTING_SESSION_STARTED:
        return InvalidState(msg="Voting session has not started yet")
    voter = state.voter(identity)
    ballot = VoterBallot(
        identity=identity,
        is_registered=voter.is_registered,
        has_voted=voter.has_voted,
    )
    if voter.has_voted:
        ballot.voted_proposal_id = voter.voted_proposal_id
        ballot.voted_description = state.proposals[voter.voted_proposal_id].description
    return ballot


def result_message(state: BallotState) -> str:
    winners = state.winners
    if not winners:
        return "No proposal received any vote"
    count = state.proposals[winners[0]].vote_count
    if len(winners) == 1:
        description = state.proposals[winners[0]].description
        return f"Proposal #{winners[0]} ({description!r}) wins with {count} vote(s)"
    ids = ", ".join(f"#{i}" for i in winners)
    return f"Tie between proposals {ids} with {count} vote(s) each"


def get_result(state: BallotState) -> BallotResult | Rejection:
    if state.status != WorkflowStatus.VOTES_TALLIED:
        return InvalidState(msg="Votes have not been tallied yet")
    winners = list(state.winners)
    return BallotResult(
        winners=winners,
        vote_count=state.proposals[winners[0]].vote_count if winners else 0,
        is_tie=len(winners) > 1,
        message=result_message(state),
    )
