from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class EventBase(BaseModel, ABC):
    # This makes the model abstract
    class Config:
        abstract = True

    # Optional metadata injected by the host; not part of event schema.
    metadata_: dict[str, Any] = Field(default_factory=dict, exclude=True)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        if cls is EventBase or ABC in cls.__bases__:
            return

        annotation = cls.__annotations__.get("type")
        if annotation is None:
            model_fields = getattr(cls, "model_fields", {})
            type_field = model_fields.get("type")
            if type_field is not None and not type_field.is_required():
                return
            raise TypeError(
                f"{cls.__name__} must override `type` with a Literal[...] default."
            )

    def payload(self) -> dict[str, Any]:
        """Event payload without the ``type`` discriminator."""
        return self.model_dump(mode="json", exclude={"type"})


class StateBase(BaseModel):
    pass


C = TypeVar("C", bound=BaseModel)  # Command type
E = TypeVar("E", bound=EventBase)  # Event type
S = TypeVar("S", bound=StateBase)


class Rejection(BaseModel):
    msg: str = ""


class AlreadyExists(Rejection):
    pass


class Workflow(BaseModel, Generic[E, C, S], ABC):
    @classmethod
    @abstractmethod
    def name(cls) -> str:
        pass

    @classmethod
    def decide_and_evolve(
        cls, state: S | None, cmd: C
    ) -> Rejection | tuple[S | None, list[E]]:
        d = cls.decide(state, cmd)
        if isinstance(d, Rejection):
            return d
        new_state = cls.evolve_(state, d)
        return new_state, d

    @classmethod
    def evolve_(cls, state: S | None, events: list[E]) -> S:
        """Evolve a copy of ``state`` through events; the input is left untouched."""
        if state is not None:
            state = state.model_copy(deep=True)
        for e in events:
            state = cls.evolve(state, e)
        assert state
        return state

    @staticmethod
    @abstractmethod
    def decide(state: S | None, cmd: C) -> list[E] | Rejection:
        pass

    @staticmethod
    @abstractmethod
    def evolve(state: S | None, event: E) -> S:
        """Apply one event. May mutate ``state``; use ``evolve_`` to keep it intact."""
        pass

    @staticmethod
    @abstractmethod
    def is_final_event(e: E) -> bool:
        pass
