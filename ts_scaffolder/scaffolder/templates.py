"""Jinja2 template rendering for project scaffolding.

Loads templates from the scaffolder's ``template/`` tree (or any other
directory) and renders them with the scaffold configuration as context.
"""

from __future__ import annotations

import asyncio
from pathlib import Path, PurePath
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "template"


class TemplateRenderer:
    """Renders Jinja2 templates found under a template directory.

    Template names are paths relative to that directory, always written with
    forward slashes (``src/index.ts.j2``).
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_path: str | PurePath, context: dict[str, Any]) -> str:
        """Render a single template with the provided context."""
        name = PurePath(template_path).as_posix()
        template = self.env.get_template(name)
        return template.render(**context)

    async def render_to_file(
        self,
        template_path: str | PurePath,
        output_path: str | Path,
        context: dict[str, Any],
    ) -> Path:
        """Render a template and write the result to *output_path*.

        Parent directories are created automatically. Existing files are
        overwritten.
        """
        content = self.render(template_path, context)
        out = Path(output_path)
        await asyncio.to_thread(_write_file, out, content)
        return out


def _write_file(path: Path, content: str) -> None:
    """Synchronous helper: create parent dirs and write content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
