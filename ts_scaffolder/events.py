"""Lifecycle events emitted by a bundling engine.

Each event is a small frozen Pydantic model tagged by ``kind``. ``BuildEvent``
is the discriminated union of all of them, so raw engine payloads can be
validated straight into the right class with ``parse_event``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class BuildErrorDetail(BaseModel):
    """What the engine told us about a failure."""

    model_config = ConfigDict(frozen=True)

    message: str
    stage: str | None = Field(default=None, description="Plugin or stage that failed")
    module: str | None = Field(default=None, description="Module id being processed")
    frame: str | None = Field(default=None, description="Source code frame, if any")

    def __str__(self) -> str:
        prefix = f"[{self.stage}] " if self.stage else ""
        location = f" ({self.module})" if self.module else ""
        return f"{prefix}{self.message}{location}"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class StartEvent(_Event):
    """The watch session has started."""

    kind: Literal["start"] = "start"


class BundleStartEvent(_Event):
    """A bundle rebuild began."""

    kind: Literal["bundle-start"] = "bundle-start"


class BundleEndEvent(_Event):
    """A bundle rebuild finished successfully."""

    kind: Literal["bundle-end"] = "bundle-end"
    duration_ms: float = 0.0


class CompleteEvent(_Event):
    """All bundles of one cycle are done; the engine waits for changes."""

    kind: Literal["complete"] = "complete"


class ErrorEvent(_Event):
    """A single rebuild failed. The session continues."""

    kind: Literal["error"] = "error"
    detail: BuildErrorDetail


class FatalEvent(_Event):
    """The session itself failed."""

    kind: Literal["fatal"] = "fatal"
    detail: BuildErrorDetail


class EndEvent(_Event):
    """The session was closed gracefully."""

    kind: Literal["end"] = "end"


BuildEvent = Annotated[
    Union[
        StartEvent,
        BundleStartEvent,
        BundleEndEvent,
        CompleteEvent,
        ErrorEvent,
        FatalEvent,
        EndEvent,
    ],
    Field(discriminator="kind"),
]

_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(BuildEvent)


def parse_event(payload: dict[str, Any]) -> BuildEvent:
    """Validate a ``{"kind": ..., ...}`` mapping into a ``BuildEvent``."""
    return _EVENT_ADAPTER.validate_python(payload)
