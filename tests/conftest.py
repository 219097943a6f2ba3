"""Shared pytest fixtures for the ts-scaffolder test suite.

Provides reusable fixtures for:
- Temporary project directories with a settings file
- Resolved configurations built from the field table
- An in-memory bundling engine and watch session
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from ts_scaffolder.config import (
    BUILD_FIELDS,
    SETTINGS_FILE_NAME,
    ResolvedConfig,
    merge_layers,
    validate_model,
)
from ts_scaffolder.engine import Artifact, ArtifactBundle, EngineError
from ts_scaffolder.events import BuildErrorDetail, BuildEvent
from ts_scaffolder.pipeline import PipelineDescription


# ---------------------------------------------------------------------------
# Fake engine
# ---------------------------------------------------------------------------


class FakeWatchSession:
    """Replays a fixed list of events, then raises *error* if one is set."""

    def __init__(
        self, events: Iterable[BuildEvent], error: BuildErrorDetail | None = None
    ) -> None:
        self.events = list(events)
        self.error = error
        self.yielded: list[BuildEvent] = []
        self.close_calls = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            if self.close_calls:
                return
            self.yielded.append(event)
            yield event
        if self.error is not None:
            raise EngineError(self.error)

    async def close(self) -> None:
        self.close_calls += 1


class FakeEngine:
    """In-memory ``BundleEngine`` that never spawns Node."""

    name = "fake"

    def __init__(
        self,
        *,
        events: Iterable[BuildEvent] = (),
        artifacts: Iterable[Artifact] | None = None,
        error: BuildErrorDetail | None = None,
        version: str = "9.9.9",
    ) -> None:
        self.events = list(events)
        self.artifacts = list(artifacts) if artifacts is not None else None
        self.error = error
        self._version = version
        self.bundled: list[PipelineDescription] = []
        self.sessions: list[FakeWatchSession] = []

    async def version(self) -> str:
        return self._version

    async def bundle(self, pipeline: PipelineDescription) -> ArtifactBundle:
        self.bundled.append(pipeline)
        if self.error is not None:
            raise EngineError(self.error)
        artifacts = self.artifacts
        if artifacts is None:
            artifacts = [
                Artifact(file_name=pipeline.output.file.name, content=b"console.log(1);\n")
            ]
        return ArtifactBundle(pipeline.output.file.parent, artifacts)

    def watch(self, pipeline: PipelineDescription) -> FakeWatchSession:
        session = FakeWatchSession(self.events, self.error)
        self.sessions.append(session)
        return session


@pytest.fixture
def make_engine() -> type[FakeEngine]:
    """The ``FakeEngine`` class, for tests that script events or failures."""
    return FakeEngine


@pytest.fixture
def fake_engine() -> FakeEngine:
    """A fake engine with no events and a single default artifact."""
    return FakeEngine()


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Empty directory to scaffold a project into (auto-cleanup)."""
    project_dir = tmp_path / "new-project"
    project_dir.mkdir()
    yield project_dir


@pytest.fixture
def write_settings() -> Callable[[Path, dict[str, Any]], Path]:
    """Return a helper that writes ``ts-scaffolder.json`` into a directory."""

    def _write(directory: Path, settings: dict[str, Any]) -> Path:
        path = directory / SETTINGS_FILE_NAME
        path.write_text(json.dumps(settings, indent=2), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def project_dir(tmp_path: Path, write_settings) -> Path:
    """A TypeScript project with an empty settings file and an entry module."""
    directory = tmp_path / "test-project"
    (directory / "src").mkdir(parents=True)
    (directory / "src" / "index.ts").write_text("export const x = 1;\n", encoding="utf-8")
    (directory / "src" / "template.html").write_text("<html></html>\n", encoding="utf-8")
    write_settings(directory, {})
    yield directory


# ---------------------------------------------------------------------------
# Configurations
# ---------------------------------------------------------------------------


@pytest.fixture
def make_config() -> Callable[..., ResolvedConfig]:
    """Return a factory building a ``ResolvedConfig`` from settings-shaped data.

    Usage::

        config = make_config({"watch": True, "output": {"isWebapp": True}})
    """

    def _make(settings: dict[str, Any] | None = None) -> ResolvedConfig:
        merged = merge_layers(BUILD_FIELDS, settings=settings or {})
        return validate_model(ResolvedConfig, merged)

    return _make


@pytest.fixture
def default_config(make_config) -> ResolvedConfig:
    """The configuration produced by defaults alone."""
    return make_config()
