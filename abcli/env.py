"""Reading and updating the ``.env`` file of the working directory."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import dotenv_values, set_key


def env_path(path: str | Path | None = None) -> Path:
    return Path(path) if path is not None else Path.cwd() / ".env"


def read_environment(path: str | Path | None = None) -> dict[str, str]:
    """Return the variables in the ``.env`` file; an absent file yields ``{}``."""
    target = env_path(path)
    if not target.is_file():
        return {}
    return {key: value for key, value in dotenv_values(target).items() if value is not None}


def write_environment(values: Mapping[str, Any], path: str | Path | None = None) -> Path:
    """Add or update *values* in the ``.env`` file.

    Keys not mentioned in *values* are kept as they are.  ``None`` values are
    skipped and booleans are written as ``true``/``false``.
    """
    target = env_path(path)
    target.touch(exist_ok=True)
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        set_key(target, key, str(value), quote_mode="never")
    return target
