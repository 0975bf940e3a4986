"""
Scrutin - Ballot Workflow for Python

An event-sourced ballot: register voters, collect proposals, open a voting
session, tally votes and publish the winning proposal(s).
"""

__version__ = "0.1.0"

# Core workflow abstractions
from scrutin.model import AlreadyExists, EventBase, Rejection, StateBase, Workflow

# Ballot workflow
from scrutin.ballot.models import (
    AlreadyRegistered,
    AlreadyVoted,
    BallotState,
    EmptyProposal,
    InvalidState,
    NoProposals,
    NoVotes,
    OutOfOrderTransition,
    PermissionDenied,
    Proposal,
    ProposalNotFound,
    Voter,
    WorkflowStatus,
    parse_command,
)
from scrutin.ballot.views import BallotResult, ProposalView, VoterBallot
from scrutin.ballot.workflow import BallotWorkflow, tally

# Collaborators
from scrutin.access import AccessControl, OwnerAccessControl
from scrutin.notifier import EventNotifier, LoggingNotifier, RecordingNotifier

# Hosting
from scrutin.service import BallotNotFound, BallotRejected, BallotService, StoredState

# Configuration
from scrutin.config import BallotConfig, load_config, load_scrutin_toml

__all__ = [
    # Version
    "__version__",
    # Core
    "AlreadyExists",
    "EventBase",
    "Rejection",
    "StateBase",
    "Workflow",
    # Ballot
    "AlreadyRegistered",
    "AlreadyVoted",
    "BallotState",
    "BallotWorkflow",
    "EmptyProposal",
    "InvalidState",
    "NoProposals",
    "NoVotes",
    "OutOfOrderTransition",
    "PermissionDenied",
    "Proposal",
    "ProposalNotFound",
    "Voter",
    "WorkflowStatus",
    "parse_command",
    "tally",
    # Views
    "BallotResult",
    "ProposalView",
    "VoterBallot",
    # Collaborators
    "AccessControl",
    "OwnerAccessControl",
    "EventNotifier",
    "LoggingNotifier",
    "RecordingNotifier",
    # Hosting
    "BallotNotFound",
    "BallotRejected",
    "BallotService",
    "StoredState",
    # Config
    "BallotConfig",
    "load_config",
    "load_scrutin_toml",
]
