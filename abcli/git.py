"""Async git helpers used by the scaffolding tasks."""

from __future__ import annotations

import asyncio
from pathlib import Path

from abcli.pipeline import AbCliError
from abcli.utils import log_verbose

PLATFORM_SERVICE_REPO = "https://github.com/appdevdesigns/appbuilder_platform_service.git"
PLATFORM_MOBILE_REPO = "https://github.com/appdevdesigns/appbuilder_platform_mobile.git"


class GitError(AbCliError):
    """Raised when a git command fails."""

    def __init__(self, message: str, command: str = "", stderr: str = "") -> None:
        self.command = command
        self.stderr = stderr
        super().__init__(message)


async def run_git(
    *args: str,
    cwd: str | Path | None = None,
    timeout: float | None = None,
) -> tuple[str, str]:
    """Run a git command asynchronously and return (stdout, stderr).

    Raises GitError if git is missing, the command times out or exits non-zero.
    """
    cmd = ["git", *args]
    cmd_str = " ".join(cmd)
    log_verbose(f"$ {cmd_str}" + (f"  (in {cwd})" if cwd else ""))

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
    except OSError as exc:
        raise GitError(f"Unable to run git: {exc}", command=cmd_str) from exc

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise GitError(
            f"Git command timed out after {timeout}s: {cmd_str}",
            command=cmd_str,
        ) from None

    stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
    stderr = stderr_bytes.decode("utf-8", errors="replace").strip()

    if process.returncode != 0:
        raise GitError(
            f"Git command failed (exit {process.returncode}): {cmd_str}\n{stderr}",
            command=cmd_str,
            stderr=stderr,
        )

    return stdout, stderr


async def git_init(path: str | Path) -> None:
    await run_git("init", cwd=path)


async def submodule_add(parent: str | Path, url: str, name: str) -> Path:
    """Add *url* as submodule *name* of the repository at *parent*.

    The submodule's own submodules are initialised and updated as well.

    Returns:
        Path of the new submodule checkout.
    """
    parent = Path(parent)
    await run_git("submodule", "add", url, name, cwd=parent)
    checkout = parent / name
    await run_git("submodule", "init", cwd=checkout)
    await run_git("submodule", "update", cwd=checkout)
    return checkout


async def clone(url: str, dest: str | Path, cwd: str | Path | None = None) -> None:
    await run_git("clone", url, str(dest), cwd=cwd)


async def pull(repo: str | Path, recurse_submodules: bool = True) -> str:
    """``git pull`` in *repo* and return git's output."""
    args = ["pull"]
    if recurse_submodules:
        args.append("--recurse-submodules")
    stdout, _ = await run_git(*args, cwd=repo)
    return stdout
