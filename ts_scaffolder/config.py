"""Layered configuration for the build driver.

Sources are merged in increasing priority:

1. built-in defaults from the field table below,
2. the required ``ts-scaffolder.json`` settings file,
3. environment variables (the optional ``.env`` file is copied into the
   environment first, so it can supply them),
4. command-line flags.

Every field is declared once in a ``ConfigField`` table that carries its CLI
flag, environment variable and default. The same generic loader also serves
the scaffolder's much smaller table. The merged values are validated by
frozen Pydantic models with strict field types, so a resolved config can be passed around but
never changed.
"""

from __future__ import annotations

import argparse
import io
import json
import os
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv.parser import parse_stream
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError

from .errors import (
    ConfigLoadError,
    ConfigMissingError,
    ConfigValidationError,
    SettingsParseError,
)
from .utils import load_json, print_warning

SETTINGS_FILE_NAME = "ts-scaffolder.json"
ENV_FILE_NAME = ".env"
ENTRY_MODULE = "index.ts"

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off"})


# ---------------------------------------------------------------------------
# Declarative field table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfigField:
    """One configuration value and where it may come from."""

    path: str
    kind: type
    default: Any
    doc: str
    flag: str | None = None
    env: str | None = None

    @property
    def dest(self) -> str:
        """argparse destination name for this field."""
        return self.path.replace(".", "__")


BUILD_FIELDS: tuple[ConfigField, ...] = (
    ConfigField("watch", bool, False, "enable watch mode", flag="--watch", env="WATCH"),
    ConfigField("debug", bool, False, "enable debug mode", flag="--debug", env="DEBUG"),
    ConfigField(
        "input.folder", str, "src", "source folder",
        flag="--input-folder", env="INPUT_FOLDER",
    ),
    ConfigField(
        "input.envPrefix", str, "WEBAPP_ENV_",
        "webapp only: inject envvars with this prefix into bundle",
        flag="--input-envprefix", env="INPUT_ENVPREFIX",
    ),
    ConfigField(
        "input.htmlTemplate", str, "template.html",
        "webapp only: path of html template relative to input.folder",
        flag="--input-htmltemplate", env="INPUT_HTMLTEMPLATE",
    ),
    ConfigField(
        "output.bundle", str, "bundle", "bundle filename without .js",
        flag="--output-bundle", env="OUTPUT_BUNDLE",
    ),
    ConfigField(
        "output.folder", str, "dist", "output folder",
        flag="--output-folder", env="OUTPUT_FOLDER",
    ),
    ConfigField(
        "output.umdName", str, "myApp", "umd module name",
        flag="--output-umdname", env="OUTPUT_UMDNAME",
    ),
    ConfigField(
        "output.minify", bool, True,
        "set this to false to disable minified production builds",
        flag="--output-minify", env="OUTPUT_MINIFY",
    ),
    ConfigField(
        "output.banner", str, "/* Bundled with rollup and <3! */",
        "prefix bundle with this string",
        flag="--output-banner", env="OUTPUT_BANNER",
    ),
    ConfigField(
        "output.isWebapp", bool, False, "is this project a webapp or not?",
        flag="--output-iswebapp", env="OUTPUT_ISWEBAPP",
    ),
)


# ---------------------------------------------------------------------------
# Resolved models
# ---------------------------------------------------------------------------


class InputConfig(BaseModel):
    """Where sources live and what a webapp build reads from them."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    folder: StrictStr
    env_prefix: StrictStr = Field(alias="envPrefix")
    html_template: StrictStr = Field(alias="htmlTemplate")


class OutputConfig(BaseModel):
    """Shape and destination of the produced bundle."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    bundle: StrictStr
    folder: StrictStr
    umd_name: StrictStr = Field(alias="umdName")
    minify: StrictBool
    banner: StrictStr
    is_webapp: StrictBool = Field(alias="isWebapp")


class ResolvedConfig(BaseModel):
    """Immutable snapshot of the merged build configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    watch: StrictBool
    debug: StrictBool
    input: InputConfig
    output: OutputConfig

    @property
    def mode(self) -> str:
        """Human readable mode, e.g. ``build-node`` or ``watch-webapp``."""
        run = "watch" if self.watch else "build"
        target = "webapp" if self.output.is_webapp else "node"
        return f"{run}-{target}"


class ComputedPaths(BaseModel):
    """Absolute paths derived once from a ``ResolvedConfig``."""

    model_config = ConfigDict(frozen=True)

    output_folder: Path
    bundle_path: Path
    minified_bundle_path: Path
    html_template_path: Path
    entry_path: Path


def compute_paths(config: ResolvedConfig, cwd: str | Path | None = None) -> ComputedPaths:
    """Resolve the bundle, minified bundle, template and entry paths.

    Relative folders are taken relative to *cwd* (default: the process working
    directory). The ``.js`` / ``.min.js`` suffixes are appended to the bundle
    name as-is, so ``my.app`` becomes ``my.app.js``.
    """
    base = Path(cwd) if cwd is not None else Path.cwd()
    output_folder = (base / config.output.folder).resolve()
    input_folder = (base / config.input.folder).resolve()
    bundle_base = output_folder / config.output.bundle
    return ComputedPaths(
        output_folder=output_folder,
        bundle_path=Path(f"{bundle_base}.js"),
        minified_bundle_path=Path(f"{bundle_base}.min.js"),
        html_template_path=(input_folder / config.input.html_template).resolve(),
        entry_path=input_folder / ENTRY_MODULE,
    )


# ---------------------------------------------------------------------------
# File sources
# ---------------------------------------------------------------------------


def load_env_file(path: str | Path, environ: MutableMapping[str, str]) -> dict[str, str]:
    """Copy ``KEY=VALUE`` lines from *path* into *environ*.

    A missing file is not an error and leaves *environ* untouched. Values from
    the file replace existing variables of the same name.

    Returns:
        The variables that were applied.

    Raises:
        ConfigLoadError: If the file exists but cannot be read or contains a
            line that is not a valid assignment.
    """
    env_path = Path(path)
    if not env_path.exists():
        return {}

    try:
        text = env_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"could not load {env_path.name} file: {exc}") from exc

    applied: dict[str, str] = {}
    for binding in parse_stream(io.StringIO(text)):
        if binding.error:
            raise ConfigLoadError(
                f"could not load {env_path.name} file: invalid line "
                f"{binding.original.line}: {binding.original.string.strip()!r}"
            )
        if binding.key is None or binding.value is None:
            continue
        applied[binding.key] = binding.value

    environ.update(applied)
    return applied


def load_settings_file(path: str | Path) -> dict[str, Any]:
    """Read the project settings file.

    Raises:
        ConfigMissingError: If the file does not exist.
        SettingsParseError: If it is not valid JSON or not a JSON object.
    """
    settings_path = Path(path)
    try:
        data = load_json(settings_path)
    except FileNotFoundError as exc:
        raise ConfigMissingError(
            f"could not load {settings_path.name} - did you delete it?"
        ) from exc
    except json.JSONDecodeError as exc:
        raise SettingsParseError(
            f"could not parse {settings_path.name}: {exc.msg} "
            f"(line {exc.lineno}, column {exc.colno})"
        ) from exc

    if not isinstance(data, dict):
        raise SettingsParseError(
            f"{settings_path.name} must contain a JSON object, got {type(data).__name__}"
        )
    return data


# ---------------------------------------------------------------------------
# Generic layering
# ---------------------------------------------------------------------------


def add_field_arguments(parser: argparse.ArgumentParser, fields: Iterable[ConfigField]) -> None:
    """Register one CLI flag per field that declares one.

    Boolean fields accept ``--flag`` and ``--no-flag``. Every flag defaults to
    ``None`` so that an absent flag never overrides a lower layer.
    """
    for item in fields:
        if item.flag is None:
            continue
        if item.kind is bool:
            parser.add_argument(
                item.flag,
                dest=item.dest,
                action=argparse.BooleanOptionalAction,
                default=None,
                help=item.doc,
            )
        else:
            parser.add_argument(
                item.flag,
                dest=item.dest,
                default=None,
                metavar=item.path.rsplit(".", 1)[-1].upper(),
                help=f"{item.doc} (default: {item.default!r})",
            )


def cli_values(namespace: argparse.Namespace, fields: Iterable[ConfigField]) -> dict[str, Any]:
    """Collect the flags that were actually given, keyed by dotted field path."""
    values: dict[str, Any] = {}
    for item in fields:
        value = getattr(namespace, item.dest, None)
        if value is not None:
            values[item.path] = value
    return values


def merge_layers(
    fields: Iterable[ConfigField],
    *,
    settings: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    cli: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge defaults, settings, environment and CLI values into a nested dict.

    Environment strings are coerced to the field's kind. Settings values are
    passed through unchanged and type-checked later by the model.
    """
    settings = settings or {}
    environ = environ if environ is not None else {}
    cli = cli or {}

    merged: dict[str, Any] = {}
    for item in fields:
        value = item.default
        found, from_settings = _lookup(settings, item.path)
        if found:
            value = from_settings
        if item.env and item.env in environ:
            value = _coerce_env(item, environ[item.env])
        if item.path in cli:
            value = cli[item.path]
        _assign(merged, item.path, value)
    return merged


def unknown_settings_keys(
    settings: Mapping[str, Any], fields: Iterable[ConfigField]
) -> list[str]:
    """Return dotted keys in *settings* that no field declares."""
    known = {item.path for item in fields}
    sections = {path.rsplit(".", 1)[0] for path in known if "." in path}
    unknown: list[str] = []
    for key, value in settings.items():
        if key in sections and isinstance(value, Mapping):
            unknown.extend(
                f"{key}.{sub}" for sub in value if f"{key}.{sub}" not in known
            )
        elif key not in known and key not in sections:
            unknown.append(key)
    return sorted(unknown)


def validate_model(model: type[BaseModel], data: Mapping[str, Any]) -> Any:
    """Validate *data* against *model*, mapping failures to ``ConfigValidationError``."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "<root>"
        raise ConfigValidationError(field, first["msg"]) from exc


def _lookup(data: Mapping[str, Any], path: str) -> tuple[bool, Any]:
    node: Any = data
    parts = path.split(".")
    for index, part in enumerate(parts):
        if not isinstance(node, Mapping):
            parent = ".".join(parts[:index])
            raise ConfigValidationError(parent, "expected an object")
        if part not in node:
            return False, None
        node = node[part]
    return True, node


def _assign(data: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node = data
    for part in parents:
        node = node.setdefault(part, {})
    node[leaf] = value


def _coerce_env(item: ConfigField, raw: str) -> Any:
    if item.kind is bool:
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ConfigValidationError(
            item.path, f"expected a boolean in ${item.env}, got {raw!r}"
        )
    return raw


# ---------------------------------------------------------------------------
# Build driver entry point
# ---------------------------------------------------------------------------


def resolve_config(
    cli: Mapping[str, Any] | None = None,
    *,
    cwd: str | Path | None = None,
    environ: MutableMapping[str, str] | None = None,
) -> ResolvedConfig:
    """Produce the build driver's ``ResolvedConfig``.

    Args:
        cli: Flag values keyed by dotted field path (see ``cli_values``).
        cwd: Project directory holding ``.env`` and ``ts-scaffolder.json``.
        environ: Environment mapping; defaults to ``os.environ``. The ``.env``
            layer is written into it.

    Raises:
        ConfigLoadError: ``.env`` exists but is unreadable.
        ConfigMissingError: ``ts-scaffolder.json`` is missing.
        SettingsParseError: ``ts-scaffolder.json`` is malformed.
        ConfigValidationError: A merged value has the wrong type.
    """
    base = Path(cwd) if cwd is not None else Path.cwd()
    env = environ if environ is not None else os.environ

    load_env_file(base / ENV_FILE_NAME, env)
    settings = load_settings_file(base / SETTINGS_FILE_NAME)

    for key in unknown_settings_keys(settings, BUILD_FIELDS):
        print_warning(f"{SETTINGS_FILE_NAME}: ignoring unknown setting '{key}'")

    merged = merge_layers(BUILD_FIELDS, settings=settings, environ=env, cli=cli)
    return validate_model(ResolvedConfig, merged)
