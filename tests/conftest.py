"""Shared pytest fixtures for the abcli test suite.

Provides reusable fixtures for:
- A fake ab_runtime root directory (with services under developer/)
- Options bags bound to a default Config
- Mocked ``run_command`` for docker/git invocations
- Small helper scripts run as real subprocesses
"""

from __future__ import annotations

import sys
import textwrap
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from abcli.config import ROOT_RULES, Config
from abcli.options import Options
from abcli.stack import StackWatcher
from abcli.utils import set_verbose


# ---------------------------------------------------------------------------
# Global state
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_globals():
    """Every test starts quiet and with no active watcher sessions."""
    set_verbose(False)
    StackWatcher._active.clear()
    yield
    set_verbose(False)
    StackWatcher._active.clear()


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------


def make_runtime_root(path: Path) -> Path:
    """Create the files and directories that identify an ab_runtime root."""
    path.mkdir(parents=True, exist_ok=True)
    for fragment in ROOT_RULES:
        if fragment.endswith(".yml"):
            (path / fragment).write_text("version: '3.2'\nservices:\n", encoding="utf-8")
        else:
            (path / fragment).mkdir(exist_ok=True)
    return path


@pytest.fixture
def make_root():
    """Factory creating a runtime root at a given path."""
    return make_runtime_root


@pytest.fixture
def runtime_root(tmp_path: Path) -> Path:
    """A runtime root with two services and the ignored api_sails directory."""
    root = make_runtime_root(tmp_path / "ab_runtime")
    developer = root / "developer"
    for name in ("file_processor", "api_sails", "notification_email"):
        (developer / name).mkdir(parents=True)
    return root


@pytest.fixture
def in_runtime_root(runtime_root: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the test with the runtime root as working directory."""
    monkeypatch.chdir(runtime_root)
    return runtime_root


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def make_options(config: Config):
    """Factory for Options bags sharing the test's Config."""

    def _make(values=None, positional=None) -> Options:
        return Options(values, positional, config=config)

    return _make


# ---------------------------------------------------------------------------
# Subprocess helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_docker():
    """Patch ``run_command`` in docker_ops; every command succeeds silently.

    Usage::

        def test_something(mock_docker):
            mock_docker.return_value = (0, "ab\\n", "")
    """
    with patch("abcli.docker_ops.run_command", new_callable=AsyncMock) as mocked:
        mocked.return_value = (0, "", "")
        yield mocked


@pytest.fixture
def python_script(tmp_path: Path):
    """Write a Python script and return the argv that runs it."""

    def _make(source: str, name: str = "script.py") -> list[str]:
        script = tmp_path / name
        script.write_text(textwrap.dedent(source), encoding="utf-8")
        return [sys.executable, "-u", str(script)]

    return _make
