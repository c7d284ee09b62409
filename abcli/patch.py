"""Tagged text insertion into existing files.

A patch locates the first line of a file that contains a *tag* and inserts a
block of text right after it (or right before it, for closing-brace anchors).
The whole file is then written back in one atomic replace.

Patches are not idempotent: applying the same patch twice inserts the block
twice.  Callers apply each patch once per file.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from abcli.pipeline import AbCliError
from abcli.render import TemplateRenderer
from abcli.utils import print_step, read_text_exact, string_render, write_atomic


class PatchError(AbCliError):
    """A patch could not be applied to its target file."""

    def __init__(self, message: str, file: str | Path) -> None:
        self.file = Path(file)
        super().__init__(message)


class TagNotFoundError(PatchError):
    """The tag does not occur in the target file."""

    def __init__(self, file: str | Path, tag: str) -> None:
        self.tag = tag
        super().__init__(f"tag not found in {file}: {tag!r}", file)


class PatchDescriptor(BaseModel):
    """One insertion.

    Attributes:
        file: Target file.
        tag: Text identifying the anchor line.
        template: Snippet name rendered with *data* (see ``TemplateRenderer``).
        replace: Literal text to insert, used when *template* is not given.
        data: ``[key]`` placeholder values.
        log: Message printed after the patch.  ``None`` prints
            ``patched: <file>``; an empty string prints nothing.
        position: Insert ``"after"`` (default) or ``"before"`` the anchor line.
    """

    file: Path
    tag: str = Field(min_length=1)
    template: str | None = None
    replace: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    log: str | None = None
    position: Literal["after", "before"] = "after"

    @model_validator(mode="after")
    def _needs_content(self) -> "PatchDescriptor":
        if self.template is None and self.replace is None:
            raise ValueError("a patch needs either a template or a replace text")
        return self


Renderer = Callable[[str, dict[str, Any]], str]


def insert_at_tag(
    contents: str, tag: str, block: str, position: str = "after"
) -> str | None:
    """Return *contents* with *block* inserted at the first line holding *tag*.

    The inserted block always ends with a newline.  Returns ``None`` when no
    line contains *tag*.
    """
    lines = contents.splitlines(keepends=True)
    for index, line in enumerate(lines):
        if tag not in line:
            continue
        if block and not block.endswith(("\n", "\r")):
            block += "\n"
        if position == "before":
            lines.insert(index, block)
        else:
            if not line.endswith(("\n", "\r")):
                lines[index] = line + "\n"
            lines.insert(index + 1, block)
        return "".join(lines)
    return None


def apply_patch(
    patch: PatchDescriptor,
    renderer: Renderer | None = None,
    template_dir: str | Path | None = None,
) -> Path:
    """Apply one patch synchronously.

    Template patches are rendered with *renderer*, or else with the snippets
    under *template_dir* (the shipped templates when ``None``).

    Raises:
        PatchError: The file cannot be read or written.
        TagNotFoundError: The tag is absent; the file is left untouched.
    """
    if patch.template is not None:
        if renderer is None:
            renderer = TemplateRenderer(template_dir).render_snippet
        block = renderer(patch.template, patch.data)
    else:
        block = string_render(patch.replace or "", patch.data)

    try:
        contents = read_text_exact(patch.file)
    except OSError as exc:
        raise PatchError(f"file ({patch.file}) not accessible. ({exc})", patch.file) from exc

    patched = insert_at_tag(contents, patch.tag, block, patch.position)
    if patched is None:
        raise TagNotFoundError(patch.file, patch.tag)

    try:
        write_atomic(patch.file, patched)
    except OSError as exc:
        raise PatchError(f"unable to write {patch.file}: {exc}", patch.file) from exc

    if patch.log is None:
        print_step(f"patched: {patch.file}")
    elif patch.log:
        print_step(patch.log)
    return patch.file


async def apply_patches(
    patches: Iterable[PatchDescriptor | Mapping[str, Any]],
    renderer: Renderer | None = None,
    template_dir: str | Path | None = None,
) -> list[Path]:
    """Apply *patches* in order, stopping at the first failure.

    Patches written before the failure stay on disk.

    Args:
        patches: Descriptors, or plain mappings validated into descriptors.
        renderer: ``(template, data) -> text`` used for ``template`` patches.
        template_dir: Snippet root used when no *renderer* is given.

    Returns:
        The patched files, in application order.
    """
    patched: list[Path] = []
    for item in patches:
        patch = item if isinstance(item, PatchDescriptor) else PatchDescriptor.model_validate(item)
        patched.append(await asyncio.to_thread(apply_patch, patch, renderer, template_dir))
    return patched


def append_to_file(path: str | Path, text: str) -> Path:
    """Append *text* to an existing file with a whole-file atomic rewrite.

    Raises:
        PatchError: The file does not exist or cannot be written.
    """
    target = Path(path)
    try:
        contents = read_text_exact(target)
        write_atomic(target, contents + text)
    except OSError as exc:
        raise PatchError(f"unable to update {target}: {exc}", target) from exc
    return target
