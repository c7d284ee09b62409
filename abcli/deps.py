"""Check for the external programs a command shells out to."""

from __future__ import annotations

import shutil
from collections.abc import Iterable

from abcli.pipeline import AbCliError
from abcli.utils import log_verbose


class DependencyMissingError(AbCliError):
    """One or more required executables are not on ``PATH``."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            "Missing required program(s): "
            + ", ".join(missing)
            + ". Install them and make sure they are on your PATH."
        )


def find_missing(names: Iterable[str], path: str | None = None) -> list[str]:
    """Return the subset of *names* that cannot be resolved, in input order."""
    missing: list[str] = []
    for name in names:
        location = shutil.which(name, path=path)
        if location is None:
            missing.append(name)
        else:
            log_verbose(f"found {name}: {location}")
    return missing


def check_dependencies(names: Iterable[str], path: str | None = None) -> None:
    """Raise ``DependencyMissingError`` listing every unresolvable name.

    Args:
        names: Executable names, e.g. ``("docker", "git")``.
        path: Search path overriding ``PATH`` (mainly for tests).
    """
    missing = find_missing(names, path=path)
    if missing:
        raise DependencyMissingError(missing)
