"""Command line entry points.

``ts-scaffolder-scripts`` builds (or watches) the project in the current
directory::

    ts-scaffolder-scripts                  # one-shot production build
    ts-scaffolder-scripts --watch          # rebuild on change
    ts-scaffolder-scripts --output-iswebapp --no-output-minify

``ts-scaffolder-init`` scaffolds a new project into the current directory::

    ts-scaffolder-init --iswebapp --umdname myApp

Both return the process exit code documented in ``ts_scaffolder.errors``.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Callable, MutableMapping, Sequence
from pathlib import Path

from rich.markup import escape

from . import __version__
from .config import (
    BUILD_FIELDS,
    ResolvedConfig,
    add_field_arguments,
    cli_values,
    compute_paths,
    resolve_config,
)
from .engine import BundleEngine, RollupEngine
from .errors import EXIT_INTERRUPTED, EXIT_OK, EXIT_UNCAUGHT, BuildDriverError
from .executor import BuildExecutor
from .pipeline import assemble
from .reporter import StatusReporter
from .scaffolder import INIT_FIELDS, ProjectScaffolder, ScaffoldError, resolve_scaffold_config
from .utils import console, print_error

EngineFactory = Callable[..., BundleEngine]


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ts-scaffolder-scripts",
        description="Build or watch a TypeScript project with rollup",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Every option can also be set in ts-scaffolder.json or through the\n"
            "environment (e.g. OUTPUT_FOLDER=build). Flags win over both.\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    add_field_arguments(parser, BUILD_FIELDS)
    return parser


def build_init_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ts-scaffolder-init",
        description="Scaffold a TypeScript project into the current directory",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    add_field_arguments(parser, INIT_FIELDS)
    return parser


# ---------------------------------------------------------------------------
# Build driver
# ---------------------------------------------------------------------------


async def _build(
    config: ResolvedConfig,
    *,
    cwd: Path,
    environ: MutableMapping[str, str],
    engine: BundleEngine,
    reporter: StatusReporter,
) -> None:
    paths = compute_paths(config, cwd)
    if config.debug:
        reporter.debug(config, paths)

    pipeline = assemble(config, paths, environ)
    reporter.banner(config, pipeline, await engine.version())

    executor = BuildExecutor(config, engine, cwd=cwd, reporter=reporter)
    await executor.execute(pipeline)


def run(
    argv: Sequence[str] | None = None,
    *,
    cwd: str | Path | None = None,
    environ: MutableMapping[str, str] | None = None,
    engine_factory: EngineFactory = RollupEngine,
) -> int:
    """Run the build driver and return its exit code."""
    args = build_parser().parse_args(argv)
    base = Path(cwd) if cwd is not None else Path.cwd()
    env = environ if environ is not None else os.environ
    reporter = StatusReporter()

    try:
        config = resolve_config(cli_values(args, BUILD_FIELDS), cwd=base, environ=env)
        engine = engine_factory(cwd=base)
        asyncio.run(_build(config, cwd=base, environ=env, engine=engine, reporter=reporter))
    except BuildDriverError as exc:
        print_error(escape(str(exc)))
        print_error("exiting")
        return exc.exit_code
    except KeyboardInterrupt:
        console.print()
        print_error("interrupted, exiting")
        return EXIT_INTERRUPTED
    except Exception:
        print_error("UNCAUGHT ERROR!")
        console.print_exception()
        print_error("exiting")
        return EXIT_UNCAUGHT
    return EXIT_OK


def main() -> None:
    """Console script entry point for ``ts-scaffolder-scripts``."""
    sys.exit(run())


# ---------------------------------------------------------------------------
# Scaffolder
# ---------------------------------------------------------------------------


async def _scaffold(
    cli: dict[str, object], *, cwd: Path, environ: MutableMapping[str, str]
) -> int:
    config = await resolve_scaffold_config(cli, environ)
    return await ProjectScaffolder(config, cwd).run()


def run_init(
    argv: Sequence[str] | None = None,
    *,
    cwd: str | Path | None = None,
    environ: MutableMapping[str, str] | None = None,
) -> int:
    """Run the project scaffolder and return its exit code."""
    args = build_init_parser().parse_args(argv)
    base = Path(cwd) if cwd is not None else Path.cwd()
    env = environ if environ is not None else os.environ

    try:
        asyncio.run(_scaffold(cli_values(args, INIT_FIELDS), cwd=base, environ=env))
    except (ScaffoldError, BuildDriverError) as exc:
        print_error(f"UNCAUGHT ERROR! {escape(str(exc))}")
        print_error("exiting!")
        return EXIT_UNCAUGHT
    except KeyboardInterrupt:
        console.print()
        print_error("interrupted, exiting")
        return EXIT_INTERRUPTED
    except Exception:
        print_error("UNCAUGHT ERROR!")
        console.print_exception()
        print_error("exiting!")
        return EXIT_UNCAUGHT
    return EXIT_OK


def init_main() -> None:
    """Console script entry point for ``ts-scaffolder-init``."""
    sys.exit(run_init())


if __name__ == "__main__":
    main()
