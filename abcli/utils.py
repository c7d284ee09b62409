"""Shared utility functions for abcli.

Provides async command execution, Rich-based console reporting, string
helpers for placeholder rendering and name casing, whole-file atomic writes,
and HTTP health polling.
"""

from __future__ import annotations

import asyncio
import os
import re
import socket
import tempfile
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import httpx
from rich.console import Console
from rich.markup import escape

console = Console()

_verbose = False


def set_verbose(enabled: bool) -> None:
    """Turn echoing of verbose progress messages on or off."""
    global _verbose
    _verbose = enabled


def is_verbose() -> bool:
    return _verbose


# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


async def run_command(
    cmd: str | list[str],
    cwd: str | Path | None = None,
    timeout: float | None = None,
    capture: bool = True,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """Run a command asynchronously.

    Args:
        cmd: Shell command string or list of arguments.
        cwd: Working directory for the child process.
        timeout: Maximum wall-clock seconds before the process is killed.
            ``None`` waits for as long as the command runs.
        capture: Whether to capture stdout/stderr (if ``False`` they inherit
            the parent's streams).
        env: Optional extra environment variables merged on top of ``os.environ``.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.  If *capture* is ``False``
        the stdout/stderr strings will be empty.  A binary that cannot be
        found is reported as return code 127.
    """
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}

    stdout_pipe = asyncio.subprocess.PIPE if capture else None
    stderr_pipe = asyncio.subprocess.PIPE if capture else None
    display = cmd if isinstance(cmd, str) else " ".join(cmd)
    log_verbose(f"$ {display}")

    try:
        if isinstance(cmd, list):
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=stdout_pipe,
                stderr=stderr_pipe,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
            )
        else:
            process = await asyncio.create_subprocess_shell(
                cmd,
                stdout=stdout_pipe,
                stderr=stderr_pipe,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
            )
    except FileNotFoundError as exc:
        return (127, "", f"Command not found: {display} ({exc})")

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return (-1, "", f"Command timed out after {timeout}s: {display}")

    stdout_str = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, stdout_str, stderr_str)


# ---------------------------------------------------------------------------
# String helpers
# ---------------------------------------------------------------------------


def string_render(
    template: str,
    data: Mapping[str, Any],
    tag_open: str = "[",
    tag_close: str = "]",
) -> str:
    """Fill ``[key]`` placeholders in *template* with values from *data*.

    Every occurrence of every key is replaced; placeholders without a matching
    key are left untouched.

    Examples::

        string_render("/module/[name]/[id]", {"name": "myModule", "id": 1})
            -> "/module/myModule/1"
    """
    for key, value in data.items():
        if value is None:
            continue
        template = template.replace(f"{tag_open}{key}{tag_close}", str(value))
    return template


def kebab_case(value: str) -> str:
    """Convert ``someThing``, ``Some Thing`` or ``some_thing`` to ``some-thing``.

    Examples::

        kebab_case("scaleImage")   -> "scale-image"
        kebab_case("Upload File")  -> "upload-file"
        kebab_case("__find_all__") -> "find-all"
    """
    s1 = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", value.strip())
    s2 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1-\2", s1)
    return re.sub(r"[^a-zA-Z0-9]+", "-", s2).strip("-").lower()


def pascal_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def camel_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = pascal_case(value)
    return pascal[:1].lower() + pascal[1:]


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def read_text_exact(path: str | Path) -> str:
    """Read a UTF-8 file without translating line endings."""
    with open(path, encoding="utf-8", newline="") as fh:
        return fh.read()


def write_atomic(path: str | Path, content: str) -> Path:
    """Replace *path* with *content* in a single rename.

    The content is written to a temporary file in the same directory and then
    moved over the target, so readers see either the old or the new file.
    The target's permission bits are preserved when it already exists.
    """
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
        if target.exists():
            os.chmod(tmp_name, target.stat().st_mode & 0o7777)
        else:
            umask = os.umask(0)
            os.umask(umask)
            os.chmod(tmp_name, 0o666 & ~umask)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return target


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{escape(message)}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{escape(message)}[/bold yellow]")


def print_step(message: str) -> None:
    """Print a progress line such as ``... booting up config-compose.yml``."""
    console.print(escape(message))


def print_plain(text: str) -> None:
    """Print text verbatim (no markup, no highlighting)."""
    console.print(text, markup=False, highlight=False)


def print_command_table(descriptions: Mapping[str, str]) -> None:
    """Print ``name: description`` lines with names padded to a common width."""
    if not descriptions:
        return
    width = max(len(name) for name in descriptions) + 1
    for name, description in descriptions.items():
        console.print(
            f"    [bold]{escape(name.ljust(width))}[/bold]: {escape(description)}",
            highlight=False,
        )


def log_verbose(message: str, pad: str = "    ") -> None:
    """Print a dimmed message only when verbose output is enabled."""
    if not _verbose:
        return
    for line in message.splitlines():
        if line:
            console.print(f"[dim]{escape(pad + line)}[/dim]")


# ---------------------------------------------------------------------------
# Port probing
# ---------------------------------------------------------------------------


async def port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    """Return ``True`` when something accepts TCP connections on *port*."""
    loop = asyncio.get_running_loop()

    def _connect() -> bool:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        try:
            return sock.connect_ex((host, port)) == 0
        finally:
            sock.close()

    return await loop.run_in_executor(None, _connect)


# ---------------------------------------------------------------------------
# Health-check polling
# ---------------------------------------------------------------------------


async def wait_for_health(
    url: str,
    timeout: int = 60,
    interval: int = 2,
) -> bool:
    """Poll a URL until it responds with HTTP 200 or *timeout* elapses.

    Used to wait until a freshly deployed stack's API answers requests.

    Args:
        url: Fully-qualified URL (e.g. ``http://localhost:1337/``).
        timeout: Maximum seconds to wait.
        interval: Seconds between attempts.

    Returns:
        ``True`` if a 200 response was received within the timeout window,
        ``False`` otherwise.
    """
    deadline = time.monotonic() + timeout

    async with httpx.AsyncClient(timeout=httpx.Timeout(5.0, connect=3.0)) as client:
        while time.monotonic() < deadline:
            try:
                response = await client.get(url)
                if response.status_code == 200:
                    return True
            except (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError):
                pass

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(interval, remaining))

    return False
