"""Workflow definition for a ballot.

``decide`` validates a command against the current state and returns the
events it produces, or a ``Rejection``. ``evolve`` folds one event into the
state. Admin-only commands are expected to have cleared access control in
the host before reaching ``decide`` (see ``BallotService``).
"""
from scrutin.model import Rejection, Workflow

from .models import (
    AlreadyRegistered,
    AlreadyVoted,
    BallotCommand,
    BallotEvent,
    BallotState,
    CmdCreateBallot,
    CmdEndProposalsRegistration,
    CmdEndVotingSession,
    CmdRegisterVoter,
    CmdStartProposalsRegistration,
    CmdStartVotingSession,
    CmdSubmitProposal,
    CmdTallyVotes,
    CmdVote,
    EmptyProposal,
    EvBallotCreated,
    EvProposalRegistered,
    EvVoted,
    EvVoterRegistered,
    EvVotesTallied,
    EvWorkflowStatusChange,
    InvalidState,
    NoProposals,
    NoVotes,
    OutOfOrderTransition,
    PermissionDenied,
    Proposal,
    ProposalNotFound,
    Voter,
    WorkflowStatus,
)

_TRANSITION_ERRORS = {
    WorkflowStatus.PROPOSALS_REGISTRATION_STARTED: "Proposals registration cannot be started now",
    WorkflowStatus.PROPOSALS_REGISTRATION_ENDED: "Proposals registration has not started yet",
    WorkflowStatus.VOTING_SESSION_STARTED: "Proposals registration phase is not finished",
    WorkflowStatus.VOTING_SESSION_ENDED: "Voting session has not started yet",
    WorkflowStatus.VOTES_TALLIED: "Current status is not voting session ended",
}


def transition(
    state: BallotState, requested: WorkflowStatus
) -> EvWorkflowStatusChange | OutOfOrderTransition:
    """Single validated step of the workflow: only ``current + 1`` is allowed."""
    if state.status + 1 != requested:
        return OutOfOrderTransition(
            msg=_TRANSITION_ERRORS.get(requested, f"Cannot move to {requested.name}")
        )
    return EvWorkflowStatusChange(previous_status=state.status, new_status=requested)


def tally(proposals: list[Proposal]) -> list[int]:
    """Ids of the proposals sharing the highest vote count, in index order.

    The running maximum starts at 1, so proposals without votes never win
    and an all-zero tally returns an empty list.
    """
    winners: list[int] = []
    highest = 1
    for proposal_id, proposal in enumerate(proposals):
        if proposal.vote_count > highest:
            winners = [proposal_id]
            highest = proposal.vote_count
        elif proposal.vote_count == highest:
            winners.append(proposal_id)
    return winners


class BallotWorkflow(Workflow[BallotEvent, BallotCommand, BallotState]):
    """Voter registration, proposals, voting and tally for one ballot."""

    @classmethod
    def name(cls) -> str:
        return "ballot"

    @staticmethod
    def decide(
        state: BallotState | None,
        cmd: BallotCommand,
    ) -> list[BallotEvent] | Rejection:
        if isinstance(cmd, CmdCreateBallot):
            if state is not None:
                return InvalidState(msg="Ballot already created")
            return [
                EvBallotCreated(
                    administrator=cmd.caller,
                    allow_revote=cmd.allow_revote,
                    min_voters=cmd.min_voters,
                ),
                EvVoterRegistered(voter_address=cmd.caller),
            ]

        if state is None:
            return InvalidState(msg="Ballot has not been created")

        if isinstance(cmd, CmdRegisterVoter):
            if state.status != WorkflowStatus.REGISTERING_VOTERS:
                return InvalidState(msg="Voters registration is not open")
            if state.is_voter(cmd.identity):
                return AlreadyRegistered(msg="Already registered")
            return [EvVoterRegistered(voter_address=cmd.identity)]

        if isinstance(cmd, CmdStartProposalsRegistration):
            change = transition(state, WorkflowStatus.PROPOSALS_REGISTRATION_STARTED)
            if isinstance(change, Rejection):
                return change
            if state.voter_count < state.min_voters:
                return InvalidState(
                    msg=f"At least {state.min_voters} registered voters are required"
                )
            return [change]

        if isinstance(cmd, CmdSubmitProposal):
            if not state.is_voter(cmd.caller):
                return PermissionDenied(msg="You're not a voter")
            if state.status != WorkflowStatus.PROPOSALS_REGISTRATION_STARTED:
                return InvalidState(msg="Proposals are not allowed yet")
            if not cmd.description:
                return EmptyProposal(msg="A proposal cannot be empty")
            return [
                EvProposalRegistered(
                    proposal_id=len(state.proposals), description=cmd.description
                )
            ]

        if isinstance(cmd, CmdEndProposalsRegistration):
            change = transition(state, WorkflowStatus.PROPOSALS_REGISTRATION_ENDED)
            if isinstance(change, Rejection):
                return change
            if not state.proposals:
                return NoProposals(msg="No proposal has been registered")
            return [change]

        if isinstance(cmd, CmdStartVotingSession):
            change = transition(state, WorkflowStatus.VOTING_SESSION_STARTED)
            if isinstance(change, Rejection):
                return change
            return [change]

        if isinstance(cmd, CmdVote):
            if not state.is_voter(cmd.caller):
                return PermissionDenied(msg="You're not a voter")
            if state.status != WorkflowStatus.VOTING_SESSION_STARTED:
                return InvalidState(msg="Voting session has not started yet")
            if not 0 <= cmd.proposal_id < len(state.proposals):
                return ProposalNotFound(msg=f"Proposal {cmd.proposal_id} not found")
            voter = state.voter(cmd.caller)
            if voter.has_voted and not state.allow_revote:
                return AlreadyVoted(msg="You have already voted")
            return [
                EvVoted(
                    voter=cmd.caller,
                    proposal_id=cmd.proposal_id,
                    previous_proposal_id=(
                        voter.voted_proposal_id if voter.has_voted else None
                    ),
                )
            ]

        if isinstance(cmd, CmdEndVotingSession):
            change = transition(state, WorkflowStatus.VOTING_SESSION_ENDED)
            if isinstance(change, Rejection):
                return change
            if state.total_votes == 0:
                return NoVotes(msg="No vote has been cast")
            return [change]

        if isinstance(cmd, CmdTallyVotes):
            change = transition(state, WorkflowStatus.VOTES_TALLIED)
            if isinstance(change, Rejection):
                return change
            return [EvVotesTallied(winners=tally(state.proposals)), change]

        return Rejection(msg="Unknown command")

    @staticmethod
    def evolve(
        state: BallotState | None,
        event: BallotEvent,
    ) -> BallotState:
        if isinstance(event, EvBallotCreated):
            return BallotState(
                administrator=event.administrator,
                allow_revote=event.allow_revote,
                min_voters=event.min_voters,
            )
        if state is None:
            raise ValueError(f"{event.type} received before BallotCreated")

        if isinstance(event, EvVoterRegistered):
            state.voters[event.voter_address] = Voter(is_registered=True)
            state.voter_count += 1
        elif isinstance(event, EvWorkflowStatusChange):
            state.status = event.new_status
        elif isinstance(event, EvProposalRegistered):
            state.proposals.append(Proposal(description=event.description))
        elif isinstance(event, EvVoted):
            if event.previous_proposal_id is not None:
                state.proposals[event.previous_proposal_id].vote_count -= 1
            state.proposals[event.proposal_id].vote_count += 1
            voter = state.voters[event.voter]
            voter.has_voted = True
            voter.voted_proposal_id = event.proposal_id
        elif isinstance(event, EvVotesTallied):
            state.winners = list(event.winners)
        return state

    @staticmethod
    def is_final_event(e: BallotEvent) -> bool:
        return (
            isinstance(e, EvWorkflowStatusChange)
            and e.new_status == WorkflowStatus.VOTES_TALLIED
        )
