"""Collaborator interface between the build executor and a bundling engine.

An engine consumes a ``PipelineDescription`` and offers two entry points:

* ``bundle`` produces the artifacts of one build and returns a result that can
  be written to disk;
* ``watch`` starts a long-lived session that yields ``BuildEvent`` values
  until it ends or fails.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from ..events import BuildErrorDetail, BuildEvent
from ..pipeline import PipelineDescription


class EngineError(Exception):
    """The engine could not produce a bundle."""

    def __init__(self, detail: BuildErrorDetail) -> None:
        self.detail = detail
        super().__init__(str(detail))


class Artifact(BaseModel):
    """A single generated output file, relative to the output folder."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    content: bytes


class BundleResult(Protocol):
    async def write(self) -> list[Path]:
        """Materialise every artifact and return the written paths."""
        ...


class WatchSession(Protocol):
    def __aiter__(self) -> AsyncIterator[BuildEvent]:
        ...

    async def close(self) -> None:
        """Stop watching. Safe to call more than once."""
        ...


class BundleEngine(Protocol):
    name: str

    async def version(self) -> str:
        ...

    async def bundle(self, pipeline: PipelineDescription) -> BundleResult:
        ...

    def watch(self, pipeline: PipelineDescription) -> WatchSession:
        ...


class ArtifactBundle:
    """In-memory build output waiting to be written to *output_dir*."""

    def __init__(self, output_dir: str | Path, artifacts: Iterable[Artifact]) -> None:
        self.output_dir = Path(output_dir)
        self.artifacts = list(artifacts)

    async def write(self) -> list[Path]:
        return await asyncio.to_thread(self._write_all)

    def _write_all(self) -> list[Path]:
        root = self.output_dir.resolve()
        written: list[Path] = []
        for artifact in self.artifacts:
            target = (root / artifact.file_name).resolve()
            if root != target and root not in target.parents:
                raise EngineError(
                    BuildErrorDetail(
                        message=f"artifact '{artifact.file_name}' escapes the output folder {root}"
                    )
                )
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(artifact.content)
            written.append(target)
        return written
