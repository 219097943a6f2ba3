"""Project scaffolding orchestrator.

Copies the ``template/`` tree into the target project: ``*.j2`` files are
rendered with the scaffold configuration and written without the suffix,
everything else is copied byte for byte. Afterwards ``package.json`` gets
``start``/``build`` scripts pointing at the build driver, and non-webapp
projects get ``@types/node`` installed.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr

from ..config import ConfigField, merge_layers, validate_model
from ..utils import console, load_json, print_success, run_command, save_json
from .crawler import DEFAULT_MAX_DEPTH, crawl_folder
from .templates import TemplateRenderer

TEMPLATE_DIR = Path(__file__).parent / "template"
RENDERED_SUFFIXES: tuple[str, ...] = (".j2",)
MANIFEST_NAME = "package.json"
FALLBACK_NODE_VERSION = "lts/*"

START_SCRIPT = "ts-scaffolder-scripts --watch"
BUILD_SCRIPT = "ts-scaffolder-scripts"


class ScaffoldError(Exception):
    """Raised when the project cannot be scaffolded."""


class ScaffoldConflictError(ScaffoldError):
    """A verbatim template file would overwrite an existing file."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


INIT_FIELDS: tuple[ConfigField, ...] = (
    ConfigField(
        "isWebapp", bool, False, "is this project a webapp or not?",
        flag="--iswebapp", env="ISWEBAPP",
    ),
    ConfigField(
        "umdName", str, "myApp", "umd module name",
        flag="--umdname", env="UMDNAME",
    ),
    ConfigField("nodeVersion", str, "", "current node version for .nvmrc"),
)


class ScaffoldConfig(BaseModel):
    """Values available to the project templates."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_webapp: StrictBool = Field(alias="isWebapp")
    umd_name: StrictStr = Field(alias="umdName")
    node_version: StrictStr = Field(alias="nodeVersion")

    def template_context(self) -> dict[str, Any]:
        """Context handed to Jinja2, keyed by the camelCase setting names."""
        return self.model_dump(by_alias=True)


async def detect_node_version() -> str:
    """Return the installed Node.js version without the leading ``v``.

    Falls back to ``lts/*`` (understood by nvm) when ``node`` is unavailable.
    """
    try:
        returncode, stdout, _ = await run_command(["node", "--version"])
    except FileNotFoundError:
        return FALLBACK_NODE_VERSION
    if returncode != 0 or not stdout:
        return FALLBACK_NODE_VERSION
    return stdout.strip().lstrip("v")


async def resolve_scaffold_config(
    cli: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ScaffoldConfig:
    """Merge defaults, environment and CLI values for the scaffolder."""
    merged = merge_layers(INIT_FIELDS, environ=environ, cli=cli)
    if not merged["nodeVersion"]:
        merged["nodeVersion"] = await detect_node_version()
    return validate_model(ScaffoldConfig, merged)


# ---------------------------------------------------------------------------
# Scaffolder
# ---------------------------------------------------------------------------


class ProjectScaffolder:
    """Writes the project template into *target_dir* and wires up scripts."""

    def __init__(
        self,
        config: ScaffoldConfig,
        target_dir: str | Path,
        template_dir: str | Path | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.config = config
        self.target_dir = Path(target_dir)
        self.template_dir = Path(template_dir) if template_dir is not None else TEMPLATE_DIR
        self.max_depth = max_depth
        self.renderer = TemplateRenderer(self.template_dir)
        self.context = config.template_context()

    # -- Public API --------------------------------------------------------

    async def run(self) -> int:
        """Scaffold files, patch the manifest and install typings.

        Returns:
            The number of files written from the template.
        """
        console.print("Scaffolding files...")
        file_count = await self.scaffold_files()
        console.print(f"Scaffolded {file_count} files.")

        console.print(f"Patching {MANIFEST_NAME} scripts...")
        await self.patch_manifest()
        console.print(f"Patched {MANIFEST_NAME} scripts.")

        if not self.config.is_webapp:
            console.print("Installing @types/node...")
            await self.install_node_types()
            console.print("Installed @types/node.")

        print_success("Project ready. Run `npm start` to begin.")
        return file_count

    async def scaffold_files(self) -> int:
        """Copy or render every template entry into the target directory."""
        return await crawl_folder(
            self.template_dir, self._handle_entry, max_depth=self.max_depth
        )

    async def patch_manifest(self) -> dict[str, Any]:
        """Point ``scripts.start`` and ``scripts.build`` at the build driver.

        Raises:
            ScaffoldError: If ``package.json`` is missing or not a JSON object.
        """
        manifest_path = self.target_dir / MANIFEST_NAME
        try:
            manifest = await asyncio.to_thread(load_json, manifest_path)
        except FileNotFoundError as exc:
            raise ScaffoldError(
                f"{MANIFEST_NAME} not found in {self.target_dir}. Run `npm init` first."
            ) from exc
        except ValueError as exc:
            raise ScaffoldError(f"could not parse {MANIFEST_NAME}: {exc}") from exc

        if not isinstance(manifest, dict):
            raise ScaffoldError(f"{MANIFEST_NAME} must contain a JSON object")

        scripts = manifest.get("scripts")
        if not isinstance(scripts, dict):
            scripts = {}
            manifest["scripts"] = scripts
        scripts["start"] = START_SCRIPT
        scripts["build"] = BUILD_SCRIPT

        await save_json(manifest, manifest_path)
        return manifest

    async def install_node_types(self) -> None:
        """Run ``npm i -D @types/node`` in the target directory."""
        try:
            returncode, _, stderr = await run_command(
                ["npm", "i", "-D", "@types/node"], cwd=self.target_dir
            )
        except FileNotFoundError as exc:
            raise ScaffoldError("npm executable not found. Is Node.js installed?") from exc
        if returncode != 0:
            raise ScaffoldError(f"npm i -D @types/node failed (exit {returncode}): {stderr}")

    # -- Per-entry handling ------------------------------------------------

    async def _handle_entry(self, is_dir: bool, full_path: Path, rel_path: Path) -> None:
        target = self.target_dir / rel_path
        if is_dir:
            await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)
        elif full_path.suffix in RENDERED_SUFFIXES:
            await self.renderer.render_to_file(
                rel_path, target.with_name(target.stem), self.context
            )
        else:
            await asyncio.to_thread(_copy_exclusive, full_path, target)


def _copy_exclusive(source: Path, target: Path) -> None:
    """Copy *source* to *target*, failing if *target* already exists."""
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        with source.open("rb") as src, target.open("xb") as dst:
            shutil.copyfileobj(src, dst)
    except FileExistsError as exc:
        raise ScaffoldConflictError(f"refusing to overwrite existing file {target}") from exc
    shutil.copymode(source, target)
