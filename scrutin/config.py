import logging
import os
import tomllib
from dataclasses import dataclass, fields
from typing import Any

from scrutin.ballot.models import CmdCreateBallot

logger = logging.getLogger(__name__)


@dataclass
class BallotConfig:
    # Settings recorded on each new ballot
    allow_revote: bool = False
    min_voters: int = 2
    # Host settings
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self):
        # The administrator alone never makes a ballot
        if self.min_voters < 2:
            raise ValueError(f"min_voters must be at least 2, got {self.min_voters}")

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> "BallotConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(cfg) - known
        if unknown:
            logger.warning("Ignoring unknown scrutin settings: %s", sorted(unknown))
        return cls(**{k: v for k, v in cfg.items() if k in known})

    def create_command(self, caller: str) -> CmdCreateBallot:
        return CmdCreateBallot(
            caller=caller, allow_revote=self.allow_revote, min_voters=self.min_voters
        )


def load_scrutin_toml(path: str | None = None) -> dict[str, Any]:
    """Load a ``scrutin.toml`` configuration file.

    Searches (in order):
    1. The explicit ``path`` argument.
    2. ``$SCRUTIN_CONFIG`` environment variable.
    3. ``scrutin.toml`` in the current working directory.

    Returns an empty dict if no file is found.

    The TOML file can contain a ``[scrutin]`` section with any of the
    following keys (all optional):

    .. code-block:: toml

        [scrutin]
        allow_revote = false
        min_voters = 2
        log_level = "INFO"
        host = "127.0.0.1"
        port = 8000

    Environment variables prefixed with ``SCRUTIN_`` override TOML values
    (e.g. ``SCRUTIN_ALLOW_REVOTE=true``).
    """
    candidates = [
        path,
        os.getenv("SCRUTIN_CONFIG"),
        "scrutin.toml",
    ]
    for candidate in candidates:
        if candidate and os.path.exists(candidate):
            with open(candidate, "rb") as fh:
                data = tomllib.load(fh)
            result: dict[str, Any] = data.get("scrutin", {})
            _apply_env_overrides(result)
            return result

    result = {}
    _apply_env_overrides(result)
    return result


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    """Apply ``SCRUTIN_*`` environment variables on top of cfg dict (in-place)."""
    _BOOL_KEYS = {"allow_revote"}
    _INT_KEYS = {"min_voters", "port"}
    _STR_KEYS = {"log_level", "host"}

    for env_key, env_val in os.environ.items():
        if not env_key.startswith("SCRUTIN_"):
            continue
        cfg_key = env_key[len("SCRUTIN_"):].lower()
        if cfg_key in _BOOL_KEYS:
            cfg[cfg_key] = env_val.lower() in ("1", "true", "yes")
        elif cfg_key in _INT_KEYS:
            try:
                cfg[cfg_key] = int(env_val)
            except ValueError:
                logger.warning("Ignoring non-integer %s=%r", env_key, env_val)
        elif cfg_key in _STR_KEYS:
            cfg[cfg_key] = env_val


def load_config(path: str | None = None) -> BallotConfig:
    return BallotConfig.from_dict(load_scrutin_toml(path))
