"""Rollup-backed bundling engine.

Rollup runs under Node, so this engine renders a small ES module runner from a
Jinja2 template, drops it into ``node_modules/.cache/ts-scaffolder/`` of the
project (Node then resolves rollup and its plugins from the project's own
``node_modules``) and talks to it over stdout, one JSON object per line::

    {"code": "BUNDLE_START"}
    {"code": "ARTIFACT", "fileName": "bundle.min.js", "encoding": "utf-8", "source": "..."}
    {"code": "BUNDLE_END", "duration": 812}

Lines that are not JSON messages are rollup or plugin chatter and are echoed.
"""

from __future__ import annotations

import asyncio
import base64
import json
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape
from rich.markup import escape

from ..events import (
    BuildErrorDetail,
    BuildEvent,
    BundleEndEvent,
    BundleStartEvent,
    CompleteEvent,
    EndEvent,
    ErrorEvent,
    FatalEvent,
    StartEvent,
)
from ..pipeline import PipelineDescription
from ..utils import console, run_command
from .base import Artifact, ArtifactBundle, EngineError

_TEMPLATE_DIR = Path(__file__).parent / "templates"

RUNNER_DIR = Path("node_modules") / ".cache" / "ts-scaffolder"
RUNNER_TEMPLATE = "runner.mjs.j2"

# Bundles travel as single JSON lines, well past asyncio's 64 KiB default.
_STREAM_LIMIT = 64 * 1024 * 1024

TextHandler = Callable[[str], None]


def _echo(line: str) -> None:
    console.print(f"[dim]{escape(line)}[/dim]")


# ---------------------------------------------------------------------------
# Message decoding
# ---------------------------------------------------------------------------


def error_detail_from(payload: Any) -> BuildErrorDetail:
    """Convert the runner's ``error`` payload into a ``BuildErrorDetail``."""
    if not isinstance(payload, dict):
        return BuildErrorDetail(message=str(payload or "unknown rollup error"))
    return BuildErrorDetail(
        message=str(payload.get("message") or "unknown rollup error"),
        stage=payload.get("plugin") or None,
        module=payload.get("id") or None,
        frame=payload.get("frame") or None,
    )


def event_from_message(message: dict[str, Any]) -> BuildEvent | None:
    """Map a runner watch message to a ``BuildEvent``.

    Returns ``None`` for codes that are not lifecycle events.
    """
    code = message.get("code")
    if code == "START":
        return StartEvent()
    if code == "BUNDLE_START":
        return BundleStartEvent()
    if code == "BUNDLE_END":
        return BundleEndEvent(duration_ms=float(message.get("duration") or 0))
    if code == "END":
        return CompleteEvent()
    if code == "ERROR":
        return ErrorEvent(detail=error_detail_from(message.get("error")))
    if code == "FATAL":
        return FatalEvent(detail=error_detail_from(message.get("error")))
    return None


def artifact_from_message(message: dict[str, Any]) -> Artifact:
    source = message.get("source") or ""
    if message.get("encoding") == "base64":
        content = base64.b64decode(source)
    else:
        content = str(source).encode("utf-8")
    return Artifact(file_name=str(message["fileName"]), content=content)


async def read_messages(
    stream: asyncio.StreamReader, on_text: TextHandler = _echo
) -> AsyncIterator[dict[str, Any]]:
    """Yield JSON messages from *stream*, passing other lines to *on_text*."""
    while True:
        line_bytes = await stream.readline()
        if not line_bytes:
            return
        line = line_bytes.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line:
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            on_text(line)
            continue
        if isinstance(message, dict) and "code" in message:
            yield message
        else:
            on_text(line)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class RollupEngine:
    """Bundling engine that drives rollup through a generated Node runner."""

    name = "rollup"

    def __init__(
        self,
        cwd: str | Path | None = None,
        node: str = "node",
        on_text: TextHandler = _echo,
    ) -> None:
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self.node = node
        self.on_text = on_text
        self.env = Environment(
            loader=FileSystemLoader(str(_TEMPLATE_DIR)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    # -- Runner script -----------------------------------------------------

    def render_runner(self, pipeline: PipelineDescription, mode: str) -> str:
        """Render the Node runner for *pipeline* in ``generate`` or ``watch`` mode."""
        template = self.env.get_template(RUNNER_TEMPLATE)
        return template.render(
            mode=mode,
            kinds=set(pipeline.stage_kinds),
            pipeline_json=pipeline.model_dump_json(indent=2),
        )

    async def write_runner(self, pipeline: PipelineDescription, mode: str) -> Path:
        path = self.cwd / RUNNER_DIR / f"runner-{mode}.mjs"
        content = self.render_runner(pipeline, mode)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        return path

    async def spawn(self, runner: Path) -> asyncio.subprocess.Process:
        """Start ``node <runner>`` with stdout piped and stderr inherited."""
        try:
            return await asyncio.create_subprocess_exec(
                self.node,
                str(runner),
                cwd=str(self.cwd),
                stdout=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except FileNotFoundError as exc:
            raise EngineError(
                BuildErrorDetail(message=f"'{self.node}' executable not found. Is Node.js installed?")
            ) from exc

    # -- BundleEngine API --------------------------------------------------

    async def version(self) -> str:
        """Return the rollup version installed in the project, or ``unknown``."""
        try:
            returncode, stdout, _ = await run_command(
                [
                    self.node,
                    "--input-type=module",
                    "-e",
                    'import { VERSION } from "rollup"; console.log(VERSION);',
                ],
                cwd=self.cwd,
            )
        except FileNotFoundError:
            return "unknown"
        if returncode != 0 or not stdout:
            return "unknown"
        return stdout.splitlines()[-1].strip()

    async def bundle(self, pipeline: PipelineDescription) -> ArtifactBundle:
        """Run one build and collect its artifacts in memory.

        Raises:
            EngineError: If rollup reports an error or the runner fails.
        """
        runner = await self.write_runner(pipeline, "generate")
        process = await self.spawn(runner)
        assert process.stdout is not None  # guaranteed by PIPE

        artifacts: list[Artifact] = []
        error: BuildErrorDetail | None = None
        async for message in read_messages(process.stdout, self.on_text):
            code = message["code"]
            if code == "ARTIFACT":
                artifacts.append(artifact_from_message(message))
            elif code == "ERROR":
                error = error_detail_from(message.get("error"))

        returncode = await process.wait()
        if error is not None:
            raise EngineError(error)
        if returncode != 0:
            raise EngineError(
                BuildErrorDetail(message=f"rollup runner exited with code {returncode}")
            )
        return ArtifactBundle(pipeline.output.file.parent, artifacts)

    def watch(self, pipeline: PipelineDescription) -> RollupWatchSession:
        return RollupWatchSession(self, pipeline)


class RollupWatchSession:
    """A running ``rollup.watch`` exposed as an async iterator of events."""

    def __init__(self, engine: RollupEngine, pipeline: PipelineDescription) -> None:
        self.engine = engine
        self.pipeline = pipeline
        self._process: asyncio.subprocess.Process | None = None
        self._iterator: AsyncIterator[BuildEvent] | None = None
        self._closed = False

    def __aiter__(self) -> AsyncIterator[BuildEvent]:
        if self._iterator is None:
            self._iterator = self._events()
        return self._iterator

    async def _events(self) -> AsyncIterator[BuildEvent]:
        runner = await self.engine.write_runner(self.pipeline, "watch")
        self._process = await self.engine.spawn(runner)
        assert self._process.stdout is not None  # guaranteed by PIPE

        messages = read_messages(self._process.stdout, self.engine.on_text)
        async with aclosing(messages):
            async for message in messages:
                event = event_from_message(message)
                if event is None:
                    continue
                yield event
                if event.kind == "fatal":
                    return

        returncode = await self._process.wait()
        if self._closed or returncode == 0:
            yield EndEvent()
        else:
            yield FatalEvent(
                detail=BuildErrorDetail(
                    message=f"rollup watcher exited unexpectedly with code {returncode}"
                )
            )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        process = self._process
        if process is not None and process.returncode is None:
            process.terminate()
            await process.wait()
        if self._iterator is not None:
            await self._iterator.aclose()  # type: ignore[attr-defined]
