"""Models for the ballot workflow.

Commands, events, state and rejections of a single ballot.
"""
from enum import IntEnum
from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from scrutin.model import EventBase, Rejection, StateBase


class WorkflowStatus(IntEnum):
    REGISTERING_VOTERS = 0
    PROPOSALS_REGISTRATION_STARTED = 1
    PROPOSALS_REGISTRATION_ENDED = 2
    VOTING_SESSION_STARTED = 3
    VOTING_SESSION_ENDED = 4
    VOTES_TALLIED = 5


# ============================================================================
# Commands - External inputs that trigger workflow decisions
# ============================================================================


class BallotCommand(BaseModel):
    """Base for ballot commands; ``caller`` is supplied by the host."""

    admin_only: ClassVar[bool] = False

    caller: str


class CmdCreateBallot(BallotCommand):
    allow_revote: bool = False
    min_voters: int = Field(default=2, ge=2)


class CmdRegisterVoter(BallotCommand):
    admin_only: ClassVar[bool] = True

    identity: str


class CmdStartProposalsRegistration(BallotCommand):
    admin_only: ClassVar[bool] = True


class CmdSubmitProposal(BallotCommand):
    description: str


class CmdEndProposalsRegistration(BallotCommand):
    admin_only: ClassVar[bool] = True


class CmdStartVotingSession(BallotCommand):
    admin_only: ClassVar[bool] = True


class CmdVote(BallotCommand):
    proposal_id: int


class CmdEndVotingSession(BallotCommand):
    admin_only: ClassVar[bool] = True


class CmdTallyVotes(BallotCommand):
    admin_only: ClassVar[bool] = True


# Command types accepted from hosts (gateway, CLI scripts).
COMMAND_TYPES: dict[str, type[BallotCommand]] = {
    "register_voter": CmdRegisterVoter,
    "start_proposals_registration": CmdStartProposalsRegistration,
    "submit_proposal": CmdSubmitProposal,
    "end_proposals_registration": CmdEndProposalsRegistration,
    "start_voting_session": CmdStartVotingSession,
    "vote": CmdVote,
    "end_voting_session": CmdEndVotingSession,
    "tally_votes": CmdTallyVotes,
}


def parse_command(command_type: str, caller: str, payload: dict) -> BallotCommand:
    """Build a command from its wire name.

    Raises ``ValueError`` for unknown command types or invalid payloads
    (pydantic's ``ValidationError`` is a ``ValueError``).
    """
    cmd_cls = COMMAND_TYPES.get(command_type)
    if cmd_cls is None:
        raise ValueError(f"Unknown command type: {command_type!r}")
    return cmd_cls.model_validate({**payload, "caller": caller})


# ============================================================================
# Events - Immutable state changes emitted by the workflow
# ============================================================================


class EvBallotCreated(EventBase):
    type: Literal["BallotCreated"] = "BallotCreated"
    administrator: str
    allow_revote: bool = False
    min_voters: int = 2


class EvVoterRegistered(EventBase):
    type: Literal["VoterRegistered"] = "VoterRegistered"
    voter_address: str


class EvWorkflowStatusChange(EventBase):
    type: Literal["WorkflowStatusChange"] = "WorkflowStatusChange"
    previous_status: WorkflowStatus
    new_status: WorkflowStatus


class EvProposalRegistered(EventBase):
    type: Literal["ProposalRegistered"] = "ProposalRegistered"
    proposal_id: int
    description: str


class EvVoted(EventBase):
    type: Literal["Voted"] = "Voted"
    voter: str
    proposal_id: int
    # Set when the vote replaces an earlier one.
    previous_proposal_id: int | None = None


class EvVotesTallied(EventBase):
    type: Literal["VotesTallied"] = "VotesTallied"
    winners: list[int]


BallotEvent = Union[
    EvBallotCreated,
    EvVoterRegistered,
    EvWorkflowStatusChange,
    EvProposalRegistered,
    EvVoted,
    EvVotesTallied,
]

ballot_event_adapter: TypeAdapter = TypeAdapter(
    Annotated[BallotEvent, Field(discriminator="type")]
)


# ============================================================================
# State - Ballot state derived from events
# ============================================================================


class Voter(BaseModel):
    is_registered: bool = False
    has_voted: bool = False
    voted_proposal_id: int = 0


class Proposal(BaseModel):
    description: str
    vote_count: int = Field(default=0, ge=0)


class BallotState(StateBase):
    administrator: str
    status: WorkflowStatus = WorkflowStatus.REGISTERING_VOTERS
    voters: dict[str, Voter] = Field(default_factory=dict)
    # Append-only; the index is the proposal id.
    proposals: list[Proposal] = Field(default_factory=list)
    winners: list[int] = Field(default_factory=list)
    voter_count: int = 0
    allow_revote: bool = False
    min_voters: int = 2

    def voter(self, identity: str) -> Voter:
        return self.voters.get(identity) or Voter()

    def is_voter(self, identity: str) -> bool:
        return self.voter(identity).is_registered

    @property
    def total_votes(self) -> int:
        return sum(p.vote_count for p in self.proposals)

    @property
    def winning_proposal_id(self) -> int:
        return self.winners[0] if self.winners else 0


# ============================================================================
# Rejections
# ============================================================================


class PermissionDenied(Rejection):
    pass


class InvalidState(Rejection):
    pass


class OutOfOrderTransition(InvalidState):
    pass


class AlreadyRegistered(Rejection):
    pass


class EmptyProposal(Rejection):
    pass


class ProposalNotFound(Rejection):
    pass


class NoProposals(Rejection):
    pass


class NoVotes(Rejection):
    pass


class AlreadyVoted(Rejection):
    pass
