"""Project scaffolder: template crawling, rendering and manifest patching.

Quick usage::

    from ts_scaffolder.scaffolder import ProjectScaffolder, resolve_scaffold_config

    config = await resolve_scaffold_config({"umdName": "myLib"})
    await ProjectScaffolder(config, project_dir).run()
"""

from ts_scaffolder.scaffolder.crawler import DEFAULT_MAX_DEPTH, crawl_folder
from ts_scaffolder.scaffolder.generator import (
    INIT_FIELDS,
    ProjectScaffolder,
    ScaffoldConfig,
    ScaffoldConflictError,
    ScaffoldError,
    detect_node_version,
    resolve_scaffold_config,
)
from ts_scaffolder.scaffolder.templates import TemplateRenderer

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "INIT_FIELDS",
    "ProjectScaffolder",
    "ScaffoldConfig",
    "ScaffoldConflictError",
    "ScaffoldError",
    "TemplateRenderer",
    "crawl_folder",
    "detect_node_version",
    "resolve_scaffold_config",
]
