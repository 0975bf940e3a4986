from scrutin.ballot.models import (
    BallotCommand,
    BallotEvent,
    BallotState,
    Proposal,
    Voter,
    WorkflowStatus,
    parse_command,
)
from scrutin.ballot.workflow import BallotWorkflow, tally, transition

__all__ = [
    "BallotCommand",
    "BallotEvent",
    "BallotState",
    "BallotWorkflow",
    "Proposal",
    "Voter",
    "WorkflowStatus",
    "parse_command",
    "tally",
    "transition",
]
