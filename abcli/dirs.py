"""Directory-state matching and discovery of the runtime root.

A *rule set* maps a path fragment (relative to the directory being checked) to
whether it must exist (``True``) or must not exist (``False``).  The root of
an ab_runtime installation is the nearest ancestor matching ``ROOT_RULES``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from abcli.config import ROOT_RULES
from abcli.pipeline import AbCliError
from abcli.utils import log_verbose

# Directories under developer/ that are not services.
IGNORED_SERVICES = frozenset({"api_sails", "ab_platform_web"})


class RootNotFoundError(AbCliError):
    """No ancestor of the working directory looks like the runtime root."""

    def __init__(self, start: Path, limit: int) -> None:
        self.start = start
        self.limit = limit
        super().__init__(
            f"Unable to move to ab_runtime root directory (searched {limit} "
            f"levels up from {start}). Run this command from inside your "
            "AppBuilder runtime directory."
        )


def dir_looks_like(rules: Mapping[str, bool], path: str | Path | None = None) -> bool:
    """Return ``True`` when every rule holds for *path*.

    Args:
        rules: ``{fragment: must_exist}`` pairs.  An empty rule set matches
            any directory.
        path: Directory to check; defaults to the working directory.
    """
    base = Path(path) if path is not None else Path.cwd()
    for fragment, must_exist in rules.items():
        if (base / fragment).exists() != bool(must_exist):
            return False
    return True


def dir_looks_like_root(
    path: str | Path | None = None, rules: Mapping[str, bool] | None = None
) -> bool:
    return dir_looks_like(ROOT_RULES if rules is None else rules, path)


def find_root(
    start: str | Path | None = None,
    limit: int = 20,
    rules: Mapping[str, bool] | None = None,
) -> Path | None:
    """Walk upward from *start* looking for the runtime root.

    *start* itself and at most ``limit - 1`` ancestors are checked.  The walk
    also stops at the filesystem root.

    Returns:
        The matching directory, or ``None``.
    """
    current = Path(start).resolve() if start is not None else Path.cwd()
    for _ in range(limit):
        if dir_looks_like_root(current, rules):
            return current
        if current.parent == current:
            break
        current = current.parent
    return None


def dir_move_to_root(
    start: str | Path | None = None,
    limit: int = 20,
    rules: Mapping[str, bool] | None = None,
) -> bool:
    """``chdir`` to the runtime root if one is found within *limit* hops.

    The working directory is left untouched when no root is found.
    """
    root = find_root(start, limit, rules)
    if root is None:
        return False
    if root != Path.cwd():
        log_verbose(f"moving to root: {root}")
        os.chdir(root)
    return True


def ensure_root(
    start: str | Path | None = None,
    limit: int = 20,
    rules: Mapping[str, bool] | None = None,
) -> Path:
    """Move to the runtime root or raise ``RootNotFoundError``."""
    origin = Path(start).resolve() if start is not None else Path.cwd()
    if not dir_move_to_root(origin, limit, rules):
        raise RootNotFoundError(origin, limit)
    return Path.cwd()


def find_all_services(root: str | Path | None = None) -> list[str]:
    """List the service directories under ``developer/``, sorted by name."""
    base = Path(root) if root is not None else Path.cwd()
    developer = base / "developer"
    if not developer.is_dir():
        return []
    return sorted(
        entry.name
        for entry in developer.iterdir()
        if entry.is_dir()
        and not entry.name.startswith(".")
        and entry.name not in IGNORED_SERVICES
    )
