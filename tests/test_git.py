"""Tests for the async git helpers (abcli.git) against real repositories."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from abcli.git import GitError, clone, git_init, pull, run_git

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

IDENTITY = ("-c", "user.name=ab", "-c", "user.email=ab@example.com")


async def commit(repo: Path, message: str) -> None:
    await run_git(*IDENTITY, "commit", "--allow-empty", "-m", message, cwd=repo)


class TestRunGit:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_git_init(self, tmp_path: Path):
        await git_init(tmp_path)
        assert (tmp_path / ".git").is_dir()

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_failure_raises(self, tmp_path: Path):
        with pytest.raises(GitError) as excinfo:
            await run_git("log", cwd=tmp_path)
        assert excinfo.value.command == "git log"
        assert excinfo.value.stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_working_directory(self, tmp_path: Path):
        with pytest.raises(GitError):
            await run_git("status", cwd=tmp_path / "missing")


class TestCloneAndPull:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_pull_picks_up_new_commits(self, tmp_path: Path):
        origin = tmp_path / "origin"
        origin.mkdir()
        await git_init(origin)
        await commit(origin, "first")

        await clone(str(origin), "work", cwd=tmp_path)
        work = tmp_path / "work"
        assert (work / ".git").is_dir()

        await commit(origin, "second")
        await pull(work, recurse_submodules=False)

        log, _ = await run_git("log", "--format=%s", cwd=work)
        assert log.splitlines() == ["second", "first"]
