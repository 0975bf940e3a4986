"""In-memory host for a single ballot.

``BallotService`` plays the part of the execution environment around
``BallotWorkflow``: it supplies access control for admin-only commands,
keeps the current state and the append-only event log, commits a command's
events all at once, and forwards them to the event notifier.

Example::

    ballot = BallotService("ballot-1")
    ballot.create("alice")
    ballot.register_voter("alice", "bob")
    ballot.start_proposals_registration("alice")

    # Low-level API: returns a Rejection instead of raising
    result = ballot.process_command(CmdSubmitProposal(caller="eve", description="x"))
    assert isinstance(result, PermissionDenied)
"""

from __future__ import annotations

import logging
import threading
from typing import Generic, TypeVar

from pydantic import BaseModel

from scrutin.access import AccessControl, OwnerAccessControl
from scrutin.ballot import views
from scrutin.ballot.models import (
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
    EvBallotCreated,
    EvProposalRegistered,
    EvVoted,
    EvVoterRegistered,
    EvWorkflowStatusChange,
    PermissionDenied,
    Voter,
    WorkflowStatus,
)
from scrutin.ballot.workflow import BallotWorkflow
from scrutin.model import AlreadyExists, Rejection, StateBase
from scrutin.notifier import EventNotifier, LoggingNotifier

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=StateBase)
T = TypeVar("T")


class StoredState(BaseModel, Generic[S]):
    id: str
    version: int
    state: S


class BallotNotFound(Exception):
    def __init__(self, id, *args: object) -> None:
        self.ballot_id = id
        super().__init__(f"Ballot {id} has not been created")


class BallotRejected(Exception):
    """Raised by the typed service methods when the ballot rejects a call."""

    def __init__(self, rejection: Rejection) -> None:
        self.rejection = rejection
        super().__init__(rejection.msg or type(rejection).__name__)


def _unwrap(result: T | Rejection) -> T:
    if isinstance(result, Rejection):
        raise BallotRejected(result)
    return result


def check_event_log(events: list[BallotEvent]) -> None:
    """Raise ``ValueError`` if ``events`` is not a log a ballot could have written.

    Checks only what ``evolve`` relies on: the log opens with the ballot's
    creation, status changes move one step forward, and votes name
    registered voters and existing proposals.
    """
    if not events:
        raise ValueError("Cannot replay a ballot from an empty event log")
    if not isinstance(events[0], EvBallotCreated):
        raise ValueError(f"Event log starts with {events[0].type}, not BallotCreated")

    voters: set[str] = set()
    n_proposals = 0
    status = WorkflowStatus.REGISTERING_VOTERS
    for n, e in enumerate(events[1:], start=2):
        if isinstance(e, EvBallotCreated):
            raise ValueError(f"Event {n}: ballot created twice")
        elif isinstance(e, EvVoterRegistered):
            voters.add(e.voter_address)
        elif isinstance(e, EvWorkflowStatusChange):
            if e.previous_status != status or e.new_status != status + 1:
                raise ValueError(
                    f"Event {n}: status change {e.previous_status.name} -> "
                    f"{e.new_status.name} while {status.name}"
                )
            status = e.new_status
        elif isinstance(e, EvProposalRegistered):
            if e.proposal_id != n_proposals:
                raise ValueError(f"Event {n}: proposal {e.proposal_id} out of sequence")
            n_proposals += 1
        elif isinstance(e, EvVoted):
            if e.voter not in voters:
                raise ValueError(f"Event {n}: vote from unregistered voter {e.voter}")
            for proposal_id in (e.proposal_id, e.previous_proposal_id):
                if proposal_id is not None and not 0 <= proposal_id < n_proposals:
                    raise ValueError(f"Event {n}: vote for unknown proposal {proposal_id}")


class BallotService:
    def __init__(
        self,
        ballot_id: str = "ballot",
        notifier: EventNotifier | None = None,
        access_control: AccessControl | None = None,
    ) -> None:
        self.ballot_id = ballot_id
        self._notifier = notifier or LoggingNotifier(ballot_id)
        self._access_control = access_control
        self._stored: StoredState[BallotState] | None = None
        self._events: list[BallotEvent] = []
        # One command at a time: decide and commit against the same state
        self._lock = threading.RLock()

    @classmethod
    def from_events(
        cls,
        events: list[BallotEvent],
        ballot_id: str = "ballot",
        notifier: EventNotifier | None = None,
        access_control: AccessControl | None = None,
    ) -> BallotService:
        """Rebuild a ballot by replaying its event log. Nothing is notified.

        Raises ``ValueError`` for a malformed log (see ``check_event_log``).
        """
        check_event_log(events)
        service = cls(ballot_id, notifier=notifier, access_control=access_control)
        state = BallotWorkflow.evolve_(None, events)
        service._stored = StoredState(id=ballot_id, version=len(events), state=state)
        service._events = list(events)
        service._ensure_access_control()
        logger.debug("Replayed ballot %s to version %d", ballot_id, len(events))
        return service

    # ------------------------------------------------------------------
    # Command processing
    # ------------------------------------------------------------------

    def create_new(self, cmd: CmdCreateBallot) -> StoredState[BallotState] | Rejection:
        with self._lock:
            if self._stored is not None:
                return AlreadyExists(msg=f"Ballot '{self.ballot_id}' already exists")

            events = BallotWorkflow.decide(None, cmd)
            if isinstance(events, Rejection):
                return events

            state = BallotWorkflow.evolve_(None, events)
            self._commit(state, events)
            self._ensure_access_control()
            logger.info("Ballot %s created by %s", self.ballot_id, cmd.caller)
            return self._stored.model_copy(deep=True)

    def process_command(
        self, cmd: BallotCommand
    ) -> tuple[StoredState[BallotState], list[BallotEvent]] | Rejection:
        with self._lock:
            stored = self._require_stored()
            events = self._decide(stored.state, cmd)
            if isinstance(events, Rejection):
                logger.info(
                    "Ballot %s rejected %s from %s: %s",
                    self.ballot_id,
                    type(cmd).__name__,
                    cmd.caller,
                    events.msg,
                )
                return events
            if not events:
                return stored.model_copy(deep=True), []

            new_state = BallotWorkflow.evolve_(stored.state, events)
            self._commit(new_state, events)
            return self._stored.model_copy(deep=True), events

    def simulate(
        self, cmd: BallotCommand
    ) -> tuple[StoredState[BallotState], list[BallotEvent]] | Rejection:
        """What-if: apply a command without storing or notifying anything."""
        with self._lock:
            stored = self._require_stored()
            events = self._decide(stored.state, cmd)
        if isinstance(events, Rejection):
            return events
        if not events:
            return stored.model_copy(deep=True), []
        new_state = BallotWorkflow.evolve_(stored.state, events)
        return (
            StoredState(
                id=self.ballot_id,
                state=new_state,
                version=stored.version + len(events),
            ),
            events,
        )

    def _decide(
        self, state: BallotState, cmd: BallotCommand
    ) -> list[BallotEvent] | Rejection:
        if cmd.admin_only and not self._access_control.is_administrator(cmd.caller):
            return PermissionDenied(msg="Caller is not the administrator")
        return BallotWorkflow.decide(state, cmd)

    def _commit(self, state: BallotState, events: list[BallotEvent]) -> None:
        version = (self._stored.version if self._stored else 0) + len(events)
        self._stored = StoredState(id=self.ballot_id, state=state, version=version)
        self._events.extend(events)
        logger.debug(
            "Ballot %s at version %d after %s",
            self.ballot_id,
            version,
            [e.type for e in events],
        )
        for e in events:
            try:
                self._notifier.emit(e.type, e.payload())
            except Exception:
                logger.exception(
                    "Notifier failed on %s for ballot %s", e.type, self.ballot_id
                )

    def _require_stored(self) -> StoredState[BallotState]:
        if self._stored is None:
            raise BallotNotFound(self.ballot_id)
        return self._stored

    def _ensure_access_control(self) -> None:
        if self._access_control is None:
            self._access_control = OwnerAccessControl(self._stored.state.administrator)

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    # Committed states are never mutated in place; callers get copies

    @property
    def stored(self) -> StoredState[BallotState]:
        return self._require_stored().model_copy(deep=True)

    @property
    def state(self) -> BallotState:
        return self._require_stored().state.model_copy(deep=True)

    @property
    def version(self) -> int:
        return self._require_stored().version

    @property
    def events(self) -> list[BallotEvent]:
        """Read-only copy of the event log."""
        return list(self._events)

    @property
    def exists(self) -> bool:
        return self._stored is not None

    @property
    def status(self) -> WorkflowStatus:
        return self.state.status

    @property
    def winning_proposal_id(self) -> int:
        return self.state.winning_proposal_id

    @property
    def finished(self) -> bool:
        return any(BallotWorkflow.is_final_event(e) for e in self._events)

    # ------------------------------------------------------------------
    # Typed operations (raise BallotRejected)
    # ------------------------------------------------------------------

    def create(
        self, caller: str, allow_revote: bool = False, min_voters: int = 2
    ) -> BallotState:
        cmd = CmdCreateBallot(
            caller=caller, allow_revote=allow_revote, min_voters=min_voters
        )
        return _unwrap(self.create_new(cmd)).state

    def execute(self, cmd: BallotCommand) -> list[BallotEvent]:
        _, events = _unwrap(self.process_command(cmd))
        return events

    def register_voter(self, caller: str, identity: str) -> list[BallotEvent]:
        return self.execute(CmdRegisterVoter(caller=caller, identity=identity))

    def start_proposals_registration(self, caller: str) -> list[BallotEvent]:
        return self.execute(CmdStartProposalsRegistration(caller=caller))

    def submit_proposal(self, caller: str, description: str) -> int:
        """Returns the id of the new proposal."""
        (event,) = self.execute(CmdSubmitProposal(caller=caller, description=description))
        return event.proposal_id

    def end_proposals_registration(self, caller: str) -> list[BallotEvent]:
        return self.execute(CmdEndProposalsRegistration(caller=caller))

    def start_voting_session(self, caller: str) -> list[BallotEvent]:
        return self.execute(CmdStartVotingSession(caller=caller))

    def vote(self, caller: str, proposal_id: int) -> list[BallotEvent]:
        return self.execute(CmdVote(caller=caller, proposal_id=proposal_id))

    def end_voting_session(self, caller: str) -> list[BallotEvent]:
        return self.execute(CmdEndVotingSession(caller=caller))

    def tally_votes(self, caller: str) -> list[int]:
        """Returns the winning proposal ids."""
        self.execute(CmdTallyVotes(caller=caller))
        return list(self.state.winners)

    # ------------------------------------------------------------------
    # Queries (raise BallotRejected)
    # ------------------------------------------------------------------

    def get_proposals(self, caller: str) -> list[views.ProposalView]:
        return _unwrap(views.get_proposals(self.state, caller))

    def get_one_proposal(self, caller: str, proposal_id: int) -> views.ProposalView:
        return _unwrap(views.get_one_proposal(self.state, caller, proposal_id))

    def get_voter(self, caller: str, identity: str) -> Voter:
        return _unwrap(views.get_voter(self.state, caller, identity))

    def get_voter_ballot(self, caller: str, identity: str) -> views.VoterBallot:
        return _unwrap(views.get_voter_ballot(self.state, caller, identity))

    def get_result(self) -> views.BallotResult:
        return _unwrap(views.get_result(self.state))
