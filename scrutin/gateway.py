"""HTTP gateway for ballots.

Exposes ballot commands and queries via REST API. The caller identity is
part of each request, standing in for the identity a host would supply.
"""

import threading
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException
from pydantic import BaseModel, Field

from scrutin.ballot import views
from scrutin.ballot.models import (
    AlreadyRegistered,
    PermissionDenied,
    ProposalNotFound,
    parse_command,
)
from scrutin.config import BallotConfig
from scrutin.model import AlreadyExists, Rejection
from scrutin.notifier import EventNotifier, LoggingNotifier
from scrutin.service import BallotService

_STATUS_CODES: list[tuple[type[Rejection], int]] = [
    (PermissionDenied, 403),
    (ProposalNotFound, 404),
    (AlreadyRegistered, 409),
    (AlreadyExists, 409),
]


def rejection_status_code(rejection: Rejection) -> int:
    for rejection_type, code in _STATUS_CODES:
        if isinstance(rejection, rejection_type):
            return code
    return 400


def _raise_for(rejection: Rejection) -> None:
    raise HTTPException(
        rejection_status_code(rejection),
        detail={"rejection": type(rejection).__name__, "msg": rejection.msg},
    )


class CreateBallotBody(BaseModel):
    caller: str
    allow_revote: bool | None = None
    min_voters: int | None = Field(default=None, ge=2)


class CommandBody(BaseModel):
    caller: str
    command_type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class BallotCommandGateway:
    """FastAPI router holding one ``BallotService`` per ballot id."""

    def __init__(
        self,
        config: BallotConfig | None = None,
        notifier_factory: Callable[[str], EventNotifier] | None = None,
        services: dict[str, BallotService] | None = None,
    ):
        """
        Args:
            config: defaults applied to ballots created without explicit settings
            notifier_factory: ballot_id -> EventNotifier for new ballots
            services: pre-existing ballots, keyed by id
        """
        self.router = APIRouter(prefix="/ballots", tags=["ballots"])
        self.config = config or BallotConfig()
        self._notifier_factory = notifier_factory or LoggingNotifier
        self.services: dict[str, BallotService] = services if services is not None else {}
        # Routes run in FastAPI's thread pool; guards ballot creation
        self._lock = threading.Lock()
        self._setup_routes()

    def _get_service(self, ballot_id: str) -> BallotService:
        service = self.services.get(ballot_id)
        if service is None:
            raise HTTPException(404, detail=f"Unknown ballot: {ballot_id}")
        return service

    def _setup_routes(self):
        @self.router.post("/{ballot_id}")
        def create_ballot(ballot_id: str, body: CreateBallotBody):
            """Create a new ballot administered by the caller."""
            cmd = self.config.create_command(body.caller).model_copy(
                update=body.model_dump(exclude={"caller"}, exclude_none=True)
            )
            with self._lock:
                if ballot_id in self.services:
                    _raise_for(AlreadyExists(msg=f"Ballot '{ballot_id}' already exists"))
                service = BallotService(
                    ballot_id, notifier=self._notifier_factory(ballot_id)
                )
                result = service.create_new(cmd)
                if isinstance(result, Rejection):
                    _raise_for(result)
                self.services[ballot_id] = service
            return {
                "status": "ok",
                "ballot_id": ballot_id,
                "version": result.version,
                "administrator": result.state.administrator,
            }

        @self.router.post("/{ballot_id}/commands")
        def process_command(ballot_id: str, body: CommandBody):
            """Process a command for an existing ballot."""
            service = self._get_service(ballot_id)
            try:
                cmd = parse_command(body.command_type, body.caller, body.payload)
            except (ValueError, TypeError) as e:
                raise HTTPException(400, detail=str(e))

            result = service.process_command(cmd)
            if isinstance(result, Rejection):
                _raise_for(result)
            stored, events = result
            return {
                "status": "ok",
                "ballot_id": stored.id,
                "version": stored.version,
                "workflow_status": stored.state.status.name,
                "events": [{"type": e.type, **e.payload()} for e in events],
            }

        @self.router.get("/{ballot_id}/status")
        def get_status(ballot_id: str):
            service = self._get_service(ballot_id)
            return {
                "ballot_id": ballot_id,
                "version": service.version,
                "workflow_status": service.status.name,
                "status_code": int(service.status),
                "winning_proposal_id": service.winning_proposal_id,
            }

        @self.router.get("/{ballot_id}/proposals")
        def get_proposals(ballot_id: str, caller: str):
            service = self._get_service(ballot_id)
            result = views.get_proposals(service.state, caller)
            if isinstance(result, Rejection):
                _raise_for(result)
            return [p.model_dump() for p in result]

        @self.router.get("/{ballot_id}/voters/{identity}")
        def get_voter_ballot(ballot_id: str, identity: str, caller: str):
            service = self._get_service(ballot_id)
            result = views.get_voter_ballot(service.state, caller, identity)
            if isinstance(result, Rejection):
                _raise_for(result)
            return result.model_dump()

        @self.router.get("/{ballot_id}/result")
        def get_result(ballot_id: str):
            service = self._get_service(ballot_id)
            result = views.get_result(service.state)
            if isinstance(result, Rejection):
                _raise_for(result)
            return result.model_dump()


def create_app(
    config: BallotConfig | None = None,
    gateway: BallotCommandGateway | None = None,
) -> FastAPI:
    """Create the FastAPI application serving ballots."""
    gateway = gateway or BallotCommandGateway(config=config)
    app = FastAPI(title="Scrutin", description="Ballot workflow API")
    app.include_router(gateway.router)
    app.state.gateway = gateway

    @app.get("/health")
    def health():
        return {"status": "ok", "ballots": len(gateway.services)}

    return app
