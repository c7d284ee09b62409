"""Template rendering and template-tree copying.

Templates live under ``abcli/templates/``.  Each top-level directory there is
named after the task that uses it (``serviceNew/``, ``apiNew/``...) and holds
a file tree that is recreated in the working directory:

* path segments may contain ``[key]`` placeholders filled from the data,
* files ending in ``.j2`` are rendered with Jinja2 and lose the suffix,
* every other file is copied as-is,
* files that already exist are never overwritten.

Files directly under the template root whose names start with ``_`` are
*snippets*: small fragments with ``[key]`` placeholders appended to or patched
into existing files.
"""

from __future__ import annotations

import asyncio
import shutil
import stat
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateError as JinjaTemplateError
from jinja2 import select_autoescape

from abcli.pipeline import AbCliError
from abcli.utils import camel_case, kebab_case, log_verbose, pascal_case, string_render

# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"

_SKIP_FILES = frozenset({".DS_Store"})


class TemplateError(AbCliError):
    """A template is missing or failed to render."""


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders and copies the scaffolding templates.

    Args:
        template_dir: Root of the template tree.  Defaults to the templates
            shipped inside the package.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["kebab_case"] = kebab_case
        self.env.filters["pascal_case"] = pascal_case
        self.env.filters["camel_case"] = camel_case

    # -- Single template rendering -----------------------------------------

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render one Jinja2 template relative to the template directory."""
        try:
            template = self.env.get_template(template_path)
            return template.render(**context)
        except JinjaTemplateError as exc:
            raise TemplateError(f"Unable to render template {template_path}: {exc}") from exc

    def render_snippet(self, name: str, data: dict[str, Any]) -> str:
        """Return snippet *name* with its ``[key]`` placeholders filled.

        Raises:
            TemplateError: If the snippet file does not exist.
        """
        path = self.template_dir / name
        if not path.is_file():
            raise TemplateError(f"template [{path}] does not exist.")
        return string_render(path.read_text(encoding="utf-8"), data)

    # -- Tree copying (async) ----------------------------------------------

    async def copy_tree(
        self,
        template_name: str,
        data: dict[str, Any] | None = None,
        dest_dir: str | Path | None = None,
    ) -> list[Path]:
        """Recreate the template tree *template_name* under *dest_dir*.

        Args:
            template_name: Directory under the template root, e.g. ``"serviceNew"``.
            data: Values for ``[key]`` path placeholders and Jinja2 variables.
            dest_dir: Where the tree is recreated (default: working directory).

        Returns:
            Paths of the files that were created.  Existing files are skipped.

        Raises:
            TemplateError: If *template_name* is empty or missing.
        """
        if not template_name:
            raise TemplateError("template directory must be specified!")
        source = self.template_dir / template_name
        if not source.is_dir():
            raise TemplateError(f"template directory [{source}] does not exist.")

        return await asyncio.to_thread(
            self._copy_tree_sync, source, dict(data or {}), Path(dest_dir or Path.cwd())
        )

    def _copy_tree_sync(self, source: Path, data: dict[str, Any], dest: Path) -> list[Path]:
        created: list[Path] = []
        for entry in sorted(source.rglob("*")):
            if entry.name in _SKIP_FILES:
                continue
            rel = entry.relative_to(source)
            target = dest / Path(*(string_render(part, data) for part in rel.parts))
            if entry.suffix == ".j2":
                target = target.with_suffix("")

            if entry.is_dir():
                if target.exists():
                    log_verbose(f"... exists:{target}")
                else:
                    target.mkdir(parents=True)
                    log_verbose(f"... created:{target}")
                continue

            if target.exists():
                log_verbose(f"... exists:{target}")
                continue

            target.parent.mkdir(parents=True, exist_ok=True)
            if entry.suffix == ".j2":
                template_key = entry.relative_to(self.template_dir).as_posix()
                target.write_text(self.render(template_key, data), encoding="utf-8")
                log_verbose(f"... created:{target}")
            else:
                shutil.copyfile(entry, target)
                log_verbose(f"... copied:{target}")

            mode = entry.stat().st_mode
            if target.suffix == ".sh" and mode & 0o111:
                target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            created.append(target)
        return created
