"""Command-line interface for Scrutin."""

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from scrutin.ballot import views
from scrutin.ballot.models import ballot_event_adapter, parse_command
from scrutin.config import BallotConfig, load_config
from scrutin.model import Rejection
from scrutin.notifier import RecordingNotifier
from scrutin.service import BallotService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(config: BallotConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _echo_result(service: BallotService) -> None:
    result = views.get_result(service.state)
    if isinstance(result, Rejection):
        click.echo(f"Status: {service.status.name} (not tallied)")
        return
    click.echo(f"Status: {service.status.name}")
    click.echo(f"Winners: {result.winners}")
    click.echo(f"Result: {result.message}")


def _load_script(path: str) -> dict:
    try:
        with open(path, encoding="utf-8") as fh:
            script = json.load(fh)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid script {path}: {e}")
    if not isinstance(script, dict) or "administrator" not in script:
        raise click.ClickException(
            f"Script {path} must be an object with an 'administrator' key"
        )
    commands = script.get("commands", [])
    if not isinstance(commands, list):
        raise click.ClickException(f"Script {path}: 'commands' must be a list")
    for n, entry in enumerate(commands, start=1):
        if not isinstance(entry, dict):
            raise click.ClickException(f"Script {path}: command {n} must be an object")
        if not isinstance(entry.get("payload", {}), dict):
            raise click.ClickException(f"Script {path}: command {n} payload must be an object")
    return script


def _write_events(service: BallotService, path: str) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for e in service.events:
            fh.write(e.model_dump_json() + "\n")


# ---------------------------------------------------------------------------
# Click CLI
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Path to scrutin.toml (default: $SCRUTIN_CONFIG or ./scrutin.toml)",
)
@click.pass_context
def cli(ctx, config_path):
    """Scrutin - ballot workflow"""
    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}")
    _setup_logging(config)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command("run")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--events-out",
    type=click.Path(dir_okay=False),
    help="Write the resulting event log as JSON lines",
)
@click.pass_context
def run(ctx, script, events_out):
    """Run a scripted ballot.

    SCRIPT is a JSON file::

        {"ballot_id": "b1", "administrator": "alice",
         "commands": [{"caller": "alice", "command_type": "register_voter",
                       "payload": {"identity": "bob"}}, ...]}

    Stops at the first rejected command with exit code 1.
    """
    config: BallotConfig = ctx.obj["config"]
    data = _load_script(script)
    notifier = RecordingNotifier()
    service = BallotService(data.get("ballot_id", Path(script).stem), notifier=notifier)

    created = service.create_new(config.create_command(data["administrator"]))
    if isinstance(created, Rejection):
        click.echo(f"✗ Ballot creation rejected: {created.msg}", err=True)
        sys.exit(1)

    failed = False
    for n, entry in enumerate(data.get("commands", []), start=1):
        try:
            cmd = parse_command(
                entry.get("command_type", ""),
                entry.get("caller", ""),
                entry.get("payload", {}),
            )
        except (ValueError, TypeError) as e:
            click.echo(f"✗ Command {n}: {e}", err=True)
            failed = True
            break
        result = service.process_command(cmd)
        if isinstance(result, Rejection):
            click.echo(
                f"✗ Command {n} ({entry.get('command_type')}) rejected: "
                f"{type(result).__name__}: {result.msg}",
                err=True,
            )
            failed = True
            break

    for name, fields in notifier.emitted:
        click.echo(f"{name} {json.dumps(fields)}")
    _echo_result(service)

    if events_out:
        _write_events(service, events_out)
        click.echo(f"✓ Wrote {len(service.events)} events to {events_out}")
    if failed:
        sys.exit(1)


@cli.command("replay")
@click.argument("events", type=click.Path(exists=True, dir_okay=False))
def replay(events):
    """Rebuild a ballot from a JSON-lines event log and print its outcome."""
    parsed = []
    with open(events, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                parsed.append(ballot_event_adapter.validate_json(line))
            except ValidationError as e:
                raise click.ClickException(f"{events}:{lineno}: invalid event: {e}")
    if not parsed:
        raise click.ClickException(f"{events} contains no events")

    try:
        service = BallotService.from_events(parsed, ballot_id=Path(events).stem)
    except ValueError as e:
        raise click.ClickException(f"{events}: cannot replay: {e}")
    state = service.state
    click.echo(f"Ballot: {service.ballot_id} (version {service.version})")
    click.echo(f"Administrator: {state.administrator}")
    click.echo(f"Voters: {state.voter_count}, proposals: {len(state.proposals)}")
    _echo_result(service)


@cli.command("serve")
@click.option("--host", default=None, help="Host to bind (default from config)")
@click.option("--port", default=None, type=int, help="Port (default from config)")
@click.pass_context
def serve(ctx, host, port):
    """Start the HTTP gateway."""
    import uvicorn

    from scrutin.gateway import create_app

    config: BallotConfig = ctx.obj["config"]
    host = host or config.host
    port = port or config.port
    logger.info(f"Starting Scrutin gateway on http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port, log_level="info")


def main() -> None:
    """Main CLI entry point (delegates to click)."""
    cli()


if __name__ == "__main__":
    main()
