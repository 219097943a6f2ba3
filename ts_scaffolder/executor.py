"""Build execution: output preparation, one-shot builds and watch sessions.

Watch sessions follow a small state machine::

    IDLE -> STARTING -> WATCHING <-> REBUILDING
                 any -> TERMINATED   (fatal event, end event, shutdown)

A failed rebuild (``error`` event) is recorded as a ``WatchCycleError``,
reported, and the machine goes back to ``WATCHING``. A ``fatal`` event closes
the session and raises ``WatchFatalError``.
"""

from __future__ import annotations

import asyncio
import shutil
from enum import Enum
from pathlib import Path

from .config import ResolvedConfig
from .engine.base import BundleEngine, EngineError
from .errors import BuildStageError, CleanupError, WatchCycleError, WatchFatalError
from .events import BuildEvent, ErrorEvent, FatalEvent
from .pipeline import PipelineDescription
from .reporter import StatusReporter


class WatchState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    WATCHING = "watching"
    REBUILDING = "rebuilding"
    TERMINATED = "terminated"


_NEXT_STATE: dict[str, WatchState] = {
    "start": WatchState.WATCHING,
    "bundle-start": WatchState.REBUILDING,
    "bundle-end": WatchState.WATCHING,
    "complete": WatchState.WATCHING,
    "error": WatchState.WATCHING,
    "fatal": WatchState.TERMINATED,
    "end": WatchState.TERMINATED,
}


def next_watch_state(state: WatchState, event: BuildEvent) -> WatchState:
    """Return the state after *event*. ``TERMINATED`` is absorbing."""
    if state is WatchState.TERMINATED:
        return state
    return _NEXT_STATE[event.kind]


# ---------------------------------------------------------------------------
# Output preparation
# ---------------------------------------------------------------------------


async def prepare_output_folder(folder: str | Path, cwd: str | Path) -> bool:
    """Empty a relative output folder before a one-shot build.

    Absolute folders are never touched. A relative folder that resolves to
    *cwd* itself or one of its parents is refused.

    Returns:
        ``True`` if the folder was cleared and recreated.

    Raises:
        CleanupError: If the folder is unsafe to delete or deletion fails.
    """
    if Path(folder).is_absolute():
        return False

    base = Path(cwd).resolve()
    target = base / folder
    resolved = target.resolve()
    if resolved == base or resolved in base.parents:
        raise CleanupError(
            f"refusing to clear output folder '{folder}': it contains the project directory"
        )

    await asyncio.to_thread(_recreate_folder, target)
    return True


def _recreate_folder(target: Path) -> None:
    # A symlinked folder loses the link only, never the directory it points to.
    try:
        if target.is_symlink():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CleanupError(f"could not clear output folder {target}: {exc}") from exc


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class BuildExecutor:
    """Runs an assembled pipeline once or as a watch session.

    Attributes:
        state: Current watch state (stays ``IDLE`` for one-shot builds).
        transitions: Every state the watch session went through, in order.
        cycle_errors: Recoverable rebuild failures seen during the session.
    """

    _EVENT_HANDLERS: dict[str, str] = {
        "start": "_on_progress",
        "bundle-start": "_on_progress",
        "bundle-end": "_on_progress",
        "complete": "_on_progress",
        "error": "_on_error",
        "fatal": "_on_fatal",
        "end": "_on_progress",
    }

    def __init__(
        self,
        config: ResolvedConfig,
        engine: BundleEngine,
        *,
        cwd: str | Path | None = None,
        reporter: StatusReporter | None = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self.reporter = reporter or StatusReporter()
        self.state = WatchState.IDLE
        self.transitions: list[WatchState] = [self.state]
        self.cycle_errors: list[WatchCycleError] = []

    async def execute(self, pipeline: PipelineDescription) -> None:
        """Run *pipeline* in the mode the config asks for.

        Raises:
            CleanupError: The output folder could not be prepared.
            BuildStageError: A one-shot build failed.
            WatchFatalError: The watch session failed.
        """
        if self.config.watch:
            await self._run_watch(pipeline)
        else:
            await prepare_output_folder(self.config.output.folder, self.cwd)
            await self._run_batch(pipeline)

    # -- One-shot ----------------------------------------------------------

    async def _run_batch(self, pipeline: PipelineDescription) -> list[Path]:
        try:
            result = await self.engine.bundle(pipeline)
            written = await result.write()
        except EngineError as exc:
            raise BuildStageError(exc.detail.message, stage=exc.detail.stage) from exc
        self.reporter.written(written)
        return written

    # -- Watch -------------------------------------------------------------

    def _set_state(self, state: WatchState) -> None:
        if state is not self.state:
            self.state = state
            self.transitions.append(state)

    async def _run_watch(self, pipeline: PipelineDescription) -> None:
        session = self.engine.watch(pipeline)
        self._set_state(WatchState.STARTING)
        try:
            async for event in session:
                self.reporter.event(event)
                self._set_state(next_watch_state(self.state, event))
                getattr(self, self._EVENT_HANDLERS[event.kind])(event)
                if self.state is WatchState.TERMINATED:
                    break
        except EngineError as exc:
            raise WatchFatalError(str(exc.detail)) from exc
        finally:
            self._set_state(WatchState.TERMINATED)
            await session.close()

    def _on_progress(self, event: BuildEvent) -> None:
        pass

    def _on_error(self, event: ErrorEvent) -> None:
        self.cycle_errors.append(WatchCycleError(str(event.detail), detail=event.detail))

    def _on_fatal(self, event: FatalEvent) -> None:
        raise WatchFatalError(str(event.detail))
