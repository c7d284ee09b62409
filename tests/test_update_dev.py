"""Tests for ``ab update dev`` (abcli.tasks.update_dev)."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from abcli.pipeline import AbCliError
from abcli.tasks.update_dev import UpdateDevTask, find_local_repos


class TestFindLocalRepos:
    @pytest.mark.unit
    def test_expands_plugins(self, tmp_path: Path):
        for name in ("web", "api_sails", "plugins/ab_plugin_b", "plugins/ab_plugin_a"):
            (tmp_path / name).mkdir(parents=True)
        (tmp_path / "README.md").write_text("", encoding="utf-8")
        (tmp_path / "plugins" / "notes.txt").write_text("", encoding="utf-8")

        repos = find_local_repos(tmp_path)

        assert [p.relative_to(tmp_path).as_posix() for p in repos] == [
            "api_sails",
            "plugins/ab_plugin_a",
            "plugins/ab_plugin_b",
            "web",
        ]


class TestUpdateDev:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_pulls_every_repo(self, in_runtime_root: Path, make_options):
        with patch("abcli.commands.base.check_dependencies"), patch(
            "abcli.tasks.update_dev.pull", new_callable=AsyncMock, return_value="Already up to date."
        ) as pull, patch("abcli.tasks.update_dev.print_plain"), patch("abcli.tasks.update_dev.console"):
            await UpdateDevTask().run(make_options())

        developer = in_runtime_root.resolve() / "developer"
        assert [c.args[0] for c in pull.await_args_list] == [
            developer / "api_sails",
            developer / "file_processor",
            developer / "notification_email",
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_developer_folder(self, tmp_path: Path, make_options, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(AbCliError, match="Could not find the path"):
            await UpdateDevTask().check_folder(make_options())
