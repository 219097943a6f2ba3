"""Pipeline assembly: from a resolved config to a declarative bundle description.

The bundling engine never sees ``ResolvedConfig``. It receives a
``PipelineDescription`` built here by ``assemble``, a pure function that
evaluates one decision table:

1. Mode. Watch builds write the unminified bundle with an inline source map
   and never minify. One-shot builds minify iff ``output.minify`` and then
   write ``<bundle>.min.js``.
2. Base stages, always and in this order: resolve, shim, transpile.
3. Minify, after the base stages, only when (1) says so.
4. Webapp targets append env-replace and html-template.
5. Webapp targets in watch mode finally append live-reload.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .config import ComputedPaths, ResolvedConfig

STATIC_FOLDER = "static"
STATIC_ROUTE = "/static"
HTML_TARGET = "index.html"


# ---------------------------------------------------------------------------
# Stage descriptors
# ---------------------------------------------------------------------------


class _Stage(BaseModel):
    model_config = ConfigDict(frozen=True)


class ResolveStage(_Stage):
    """Locate modules in ``node_modules`` using the listed package fields."""

    kind: Literal["resolve"] = "resolve"
    main_fields: tuple[str, ...] = ("module", "jsnext:main", "main")


class ShimStage(_Stage):
    """Convert CommonJS dependencies into ES modules."""

    kind: Literal["shim"] = "shim"
    include: tuple[str, ...] = ("node_modules/**",)
    extensions: tuple[str, ...] = (".js",)


class TranspileStage(_Stage):
    """Compile TypeScript sources."""

    kind: Literal["transpile"] = "transpile"
    compiler: str = "typescript"


class MinifyStage(_Stage):
    """Minify the final transpiled code."""

    kind: Literal["minify"] = "minify"


class EnvReplaceStage(_Stage):
    """Substitute ``process.env.*`` references with literal values.

    The table is stored as ordered ``(reference, literal)`` pairs and exposed
    read-only through ``values``.
    """

    kind: Literal["env-replace"] = "env-replace"
    pairs: tuple[tuple[str, str], ...] = ()

    @property
    def values(self) -> Mapping[str, str]:
        return MappingProxyType(dict(self.pairs))


class HtmlTemplateStage(_Stage):
    """Render the HTML template next to the bundle."""

    kind: Literal["html-template"] = "html-template"
    template: Path
    target: str = HTML_TARGET


class StaticRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    route: str
    folder: Path


class LiveReloadStage(_Stage):
    """Serve the output folder and reload the browser on rebuilds."""

    kind: Literal["live-reload"] = "live-reload"
    server: Path
    static_routes: tuple[StaticRoute, ...] = ()


Stage = Annotated[
    Union[
        ResolveStage,
        ShimStage,
        TranspileStage,
        MinifyStage,
        EnvReplaceStage,
        HtmlTemplateStage,
        LiveReloadStage,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Pipeline description
# ---------------------------------------------------------------------------


class OutputDescriptor(BaseModel):
    """Where and how the bundle is written."""

    model_config = ConfigDict(frozen=True)

    file: Path
    name: str
    format: Literal["umd"] = "umd"
    sourcemap: Literal["inline"] | None = None
    banner: str | None = None


class PipelineDescription(BaseModel):
    """Ordered stages plus a single output, handed to the bundling engine."""

    model_config = ConfigDict(frozen=True)

    entry: Path
    stages: tuple[Stage, ...]
    output: OutputDescriptor

    @property
    def stage_kinds(self) -> list[str]:
        """Stage kinds in execution order."""
        return [stage.kind for stage in self.stages]

    def has_stage(self, kind: str) -> bool:
        return kind in self.stage_kinds

    def get_stage(self, kind: str) -> Stage | None:
        """Return the first stage of *kind*, or ``None``."""
        for stage in self.stages:
            if stage.kind == kind:
                return stage
        return None


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def collect_webapp_env(prefix: str, environ: Mapping[str, str]) -> dict[str, str]:
    """Build the ``process.env.NAME`` -> JSON literal table for a webapp.

    Every variable whose name starts with *prefix* is exported. Values are
    JSON-encoded so the engine can splice them in as string literals.
    """
    return {
        f"process.env.{name}": json.dumps(environ[name])
        for name in sorted(environ)
        if name.startswith(prefix)
    }


def assemble(
    config: ResolvedConfig,
    paths: ComputedPaths,
    environ: Mapping[str, str] | None = None,
) -> PipelineDescription:
    """Assemble the pipeline for *config*.

    Args:
        config: The resolved configuration snapshot.
        paths: Paths computed from *config*.
        environ: Environment captured for webapp substitution; defaults to
            ``os.environ``.

    Returns:
        A fresh, immutable ``PipelineDescription``. Calling this twice with the
        same inputs yields equal descriptions.
    """
    env = environ if environ is not None else os.environ

    minify = not config.watch and config.output.minify
    if config.watch:
        destination = paths.bundle_path
    elif minify:
        destination = paths.minified_bundle_path
    else:
        destination = paths.bundle_path

    stages: list[Stage] = [ResolveStage(), ShimStage(), TranspileStage()]

    if minify:
        stages.append(MinifyStage())

    if config.output.is_webapp:
        replacements = collect_webapp_env(config.input.env_prefix, env)
        replacements["process.env.NODE_ENV"] = json.dumps(
            "development" if config.watch else "production"
        )
        stages.append(EnvReplaceStage(pairs=tuple(replacements.items())))
        stages.append(HtmlTemplateStage(template=paths.html_template_path))

        if config.watch:
            stages.append(
                LiveReloadStage(
                    server=paths.output_folder,
                    static_routes=(
                        StaticRoute(route=STATIC_ROUTE, folder=Path(STATIC_FOLDER)),
                    ),
                )
            )

    output = OutputDescriptor(
        file=destination,
        name=config.output.umd_name,
        sourcemap="inline" if config.watch else None,
        banner=config.output.banner or None,
    )
    return PipelineDescription(entry=paths.entry_path, stages=tuple(stages), output=output)
