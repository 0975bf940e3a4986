"""Access control collaborator: who may drive the ballot workflow."""
from abc import ABC, abstractmethod


class AccessControl(ABC):
    @abstractmethod
    def is_administrator(self, identity: str) -> bool:
        pass


class OwnerAccessControl(AccessControl):
    """A single owner, fixed at construction."""

    def __init__(self, owner: str) -> None:
        self._owner = owner

    @property
    def owner(self) -> str:
        return self._owner

    def is_administrator(self, identity: str) -> bool:
        return identity == self._owner
