"""Console status reporting for the build driver."""

from __future__ import annotations

import json
from pathlib import Path

from rich.markup import escape

from .config import ComputedPaths, ResolvedConfig
from .events import BuildEvent
from .pipeline import PipelineDescription
from .utils import console, format_duration, print_summary_table

_PREFIX = r"\[[green]rollup[/green]]"


class StatusReporter:
    """Prints the startup banner and one line per watch event."""

    def banner(
        self,
        config: ResolvedConfig,
        pipeline: PipelineDescription,
        engine_version: str,
    ) -> None:
        rows = {
            "Rollup version": engine_version,
            "Mode": config.mode,
            "Output folder": config.output.folder,
            "Stages": " -> ".join(pipeline.stage_kinds),
        }
        env_stage = pipeline.get_stage("env-replace")
        if env_stage is not None:
            injected = {
                key: value
                for key, value in env_stage.values.items()
                if key != "process.env.NODE_ENV"
            }
            rows["Injected envvars"] = json.dumps(injected)
        console.print()
        print_summary_table(rows)

    def debug(self, config: ResolvedConfig, paths: ComputedPaths) -> None:
        console.print("[bold]config:[/bold]")
        console.print_json(config.model_dump_json(by_alias=True))
        console.print("[bold]computedOptions:[/bold]")
        console.print_json(paths.model_dump_json())

    def written(self, paths: list[Path]) -> None:
        for path in paths:
            console.print(f"{_PREFIX} wrote [yellow]{escape(str(path))}[/yellow]")

    def event(self, event: BuildEvent) -> None:
        kind = event.kind
        if kind == "start":
            console.print(f"{_PREFIX} Starting watcher...")
        elif kind == "bundle-start":
            console.print(f"{_PREFIX} Starting bundling process...")
        elif kind == "bundle-end":
            console.print(f"{_PREFIX} Bundle process ended")
            console.print(
                f"{_PREFIX} [yellow]Took {format_duration(event.duration_ms / 1000)}[/yellow]"
            )
        elif kind == "complete":
            console.print(f"{_PREFIX} [dim]Waiting for changes...[/dim]")
        elif kind == "error":
            console.print(f"{_PREFIX} [red]Rollup error[/red] {escape(str(event.detail))}")
            if event.detail.frame:
                console.print(f"[dim]{escape(event.detail.frame)}[/dim]")
        elif kind == "fatal":
            console.print(f"{_PREFIX} [red]Fatal rollup error[/red] {escape(str(event.detail))}")
        elif kind == "end":
            console.print(f"{_PREFIX} Goodbye")
