"""Event notifier collaborator.

Committed ballot events are handed to a notifier as ``(name, fields)``
pairs, in the order they were produced. Notification is fire-and-forget:
nothing it returns is consumed.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class EventNotifier(ABC):
    @abstractmethod
    def emit(self, event_name: str, fields: dict[str, Any]) -> None:
        pass


class LoggingNotifier(EventNotifier):
    def __init__(self, ballot_id: str = "", level: int = logging.INFO) -> None:
        self.ballot_id = ballot_id
        self.level = level

    def emit(self, event_name: str, fields: dict[str, Any]) -> None:
        logger.log(self.level, "[%s] %s %s", self.ballot_id, event_name, fields)


class RecordingNotifier(EventNotifier):
    """Keeps emitted facts in memory, e.g. for a host that exposes them later."""

    def __init__(self) -> None:
        self.emitted: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_name: str, fields: dict[str, Any]) -> None:
        self.emitted.append((event_name, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.emitted]

    def clear(self) -> None:
        self.emitted.clear()
