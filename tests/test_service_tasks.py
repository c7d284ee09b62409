"""Tests for the service scaffolding tasks: service new, service handler, api new.

Docker, git and npm are mocked; templates are rendered into a temporary
runtime root.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from abcli.pipeline import AbCliError
from abcli.stack import StackBusyError, StackWatcher
from abcli.tasks.api_new import ApiNewTask
from abcli.tasks.service_handler import AB_PACKAGES, ServiceHandlerTask
from abcli.tasks.service_new import ServiceNewTask

APP_JS = """const path = require("path");
const ABService = AB.service;

class FileProcessor extends ABService {
  shutdown() {
    super.shutdown();
  }

  run() {
  }
}
"""


@pytest.fixture
def no_dependency_check():
    with patch("abcli.commands.base.check_dependencies") as checked:
        yield checked


@pytest.fixture
def compose_files(in_runtime_root: Path) -> Path:
    for name in ("docker-compose.yml", "docker-compose.dev.yml", "source.docker-compose.dev.yml"):
        (in_runtime_root / name).write_text("version: '3.2'\nservices:\n", encoding="utf-8")
    return in_runtime_root


# ---------------------------------------------------------------------------
# service new
# ---------------------------------------------------------------------------


class TestServiceNew:
    @pytest.fixture
    def git_and_npm(self):
        with patch("abcli.tasks.service_new.git_init", new_callable=AsyncMock) as git_init, patch(
            "abcli.tasks.service_new.npm_install", new_callable=AsyncMock
        ) as npm_install, patch(
            "abcli.tasks.service_new.submodule_add", new_callable=AsyncMock
        ) as submodule_add:
            yield git_init, npm_install, submodule_add

    def options(self, make_options, **overrides):
        values = {
            "description": "Process uploaded files",
            "author": "Coding Monkey",
            "serviceSharedFiles": False,
            "shouldInstallAPI": False,
            "useABObjects": False,
        }
        values.update(overrides)
        return make_options(values, positional=["image_processor"])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scaffolds_service(self, compose_files, make_options, no_dependency_check, git_and_npm):
        git_init, npm_install, submodule_add = git_and_npm

        await ServiceNewTask().run(self.options(make_options))

        service = compose_files.resolve() / "developer" / "image_processor"
        app = (service / "app.js").read_text(encoding="utf-8")
        assert "class ImageProcessor extends ABService" in app
        assert (service / "package.json").is_file()
        assert (service / "handlers").is_dir()
        git_init.assert_awaited_once_with(service)
        npm_install.assert_awaited_once_with(service)
        submodule_add.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_compose_entries(self, compose_files, make_options, no_dependency_check, git_and_npm):
        await ServiceNewTask().run(self.options(make_options))

        prod = (compose_files / "docker-compose.yml").read_text(encoding="utf-8")
        assert "  image_processor:\n    image: digiserve/ab-image-processor:master\n" in prod
        assert prod.rstrip().endswith("#/image_processor")
        assert "./data" not in prod
        assert (compose_files / "source.docker-compose.yml").read_text(encoding="utf-8") == prod

        dev = (compose_files / "docker-compose.dev.yml").read_text(encoding="utf-8")
        assert "source: ./developer/image_processor" in dev
        assert "(Micro) Service: Process uploaded files" in dev

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_shared_files_volume(self, compose_files, make_options, no_dependency_check, git_and_npm):
        await ServiceNewTask().run(self.options(make_options, serviceSharedFiles=True))

        prod = (compose_files / "docker-compose.yml").read_text(encoding="utf-8")
        assert "      # - type: bind\n      #   source: ./data\n      #   target: /data\n" in prod
        dev = (compose_files / "docker-compose.dev.yml").read_text(encoding="utf-8")
        assert "      - type: bind\n        source: ./data\n        target: /data\n  #/image_processor" in dev

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ab_platform_submodule(self, compose_files, make_options, no_dependency_check, git_and_npm):
        _, _, submodule_add = git_and_npm
        await ServiceNewTask().run(self.options(make_options, useABObjects=True))
        service = compose_files.resolve() / "developer" / "image_processor"
        assert submodule_add.await_args.args[0] == service
        assert submodule_add.await_args.args[2] == "AppBuilder"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_initial_api(self, compose_files, make_options, no_dependency_check, git_and_npm):
        with patch("abcli.tasks.service_new.api_new") as api_new:
            api_new.run = AsyncMock()
            await ServiceNewTask().run(self.options(make_options, shouldInstallAPI=True, useABObjects=True))

        (child,) = api_new.run.await_args.args
        assert child["service"] == "image_processor"
        assert child["useABObjects"] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_requires_name(self, make_options, in_runtime_root):
        task = ServiceNewTask()
        with patch.object(task, "help"), patch("abcli.commands.base.print_error"):
            with pytest.raises(AbCliError):
                await task.run(make_options())


# ---------------------------------------------------------------------------
# service handler
# ---------------------------------------------------------------------------


class TestServiceHandler:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_plain_handler(self, in_runtime_root, make_options, no_dependency_check):
        options = make_options({"useABObjects": False}, positional=["file_processor", "scale", "file.scale"])
        with patch("abcli.tasks.service_handler.npm_install", new_callable=AsyncMock) as npm_install:
            await ServiceHandlerTask().run(options)

        handler = in_runtime_root / "developer" / "file_processor" / "handlers" / "scale.js"
        text = handler.read_text(encoding="utf-8")
        assert 'key: "file.scale"' in text
        npm_install.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ab_objects_handler(self, in_runtime_root, make_options, no_dependency_check):
        options = make_options({"useABObjects": True}, positional=["file_processor", "scale"])
        with patch("abcli.tasks.service_handler.npm_install", new_callable=AsyncMock) as npm_install, patch(
            "abcli.tasks.service_handler.submodule_add", new_callable=AsyncMock
        ) as submodule_add, patch("abcli.prompts._prompt", return_value="file_processor.scale"):
            await ServiceHandlerTask().run(options)

        service = in_runtime_root.resolve() / "developer" / "file_processor"
        assert options["key"] == "file_processor.scale"
        assert (service / "handlers" / "scale.js").is_file()
        submodule_add.assert_awaited_once()
        npm_install.assert_awaited_once_with(service, AB_PACKAGES)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_existing_submodule_kept(self, in_runtime_root, make_options, no_dependency_check):
        (in_runtime_root / "developer" / "file_processor" / "AppBuilder").mkdir()
        options = make_options({"useABObjects": True}, positional=["file_processor", "scale", "k"])
        with patch("abcli.tasks.service_handler.npm_install", new_callable=AsyncMock), patch(
            "abcli.tasks.service_handler.submodule_add", new_callable=AsyncMock
        ) as submodule_add:
            await ServiceHandlerTask().run(options)
        submodule_add.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_services(self, tmp_path, make_root, make_options, monkeypatch, no_dependency_check):
        monkeypatch.chdir(make_root(tmp_path / "empty"))
        task = ServiceHandlerTask()
        with patch.object(task, "help"), patch("abcli.commands.base.print_error"):
            with pytest.raises(AbCliError):
                await task.run(make_options())


# ---------------------------------------------------------------------------
# api new
# ---------------------------------------------------------------------------


@pytest.fixture
def api_root(in_runtime_root: Path) -> Path:
    routes = in_runtime_root / "developer" / "config" / "config"
    routes.mkdir(parents=True)
    (routes / "routes.js").write_text("module.exports = {\n};\n", encoding="utf-8")
    (in_runtime_root / "developer" / "file_processor" / "app.js").write_text(APP_JS, encoding="utf-8")
    return in_runtime_root


def api_options(make_options, *positional, **values):
    return make_options(values, positional=list(positional))


class TestApiNew:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_parse_args(self, make_options):
        options = api_options(make_options, "file_processor", "scaleImage", "all", "file/scale", "file.scale")
        await ApiNewTask().parse_args(options)
        assert options["action"] == "scale-image"
        assert options["verb"] == ""
        assert options["route"] == "/file/scale"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_routes_grouped_per_service(self, api_root, make_options):
        task = ApiNewTask()
        await task.patch_routes(
            api_options(make_options, service="file_processor", action="scale", verb="post", route="/file/scale")
        )
        await task.patch_routes(
            api_options(make_options, service="file_processor", action="crop", verb="", route="/file/crop")
        )

        routes = (api_root / "developer" / "config" / "config" / "routes.js").read_text(encoding="utf-8")
        assert routes == (
            "module.exports = {\n"
            "   // file_processor routes:\n"
            '   "/file/crop": "file_processor/crop",\n'
            '   "post /file/scale": "file_processor/scale",\n'
            "};\n"
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_service_app_wiring(self, api_root, make_options):
        await ApiNewTask().patch_service_app(
            api_options(make_options, service="file_processor", action="scale-image", key="file.scale")
        )

        app = (api_root / "developer" / "file_processor" / "app.js").read_text(encoding="utf-8")
        lines = app.splitlines()
        assert lines[2] == 'const scaleImageHandler = require(path.join(__dirname, "handlers", "scale-image.js"));'
        assert lines[3] == "scaleImageHandler.init({ config });"
        assert lines[lines.index("  shutdown() {") + 1] == '    serviceResponder.off("file.scale", scaleImageHandler.fn);'
        assert lines[lines.index("  run() {") + 1] == '    serviceResponder.on("file.scale", scaleImageHandler.fn);'

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_full_run(self, api_root, make_options, no_dependency_check):
        options = api_options(
            make_options, "file_processor", "scale", "get", "/file/scale", "file.scale", useABObjects=False
        )
        task = ApiNewTask()
        with patch.object(task, "persist_new_route", new_callable=AsyncMock) as persist, patch(
            "abcli.tasks.service_handler.npm_install", new_callable=AsyncMock
        ):
            await task.run(options)

        root = api_root.resolve()
        assert (root / "developer" / "file_processor" / "handlers" / "scale.js").is_file()
        assert (root / "developer" / "api_sails" / "api" / "controllers" / "file_processor" / "scale.js").is_file()
        assert '"get /file/scale": "file_processor/scale",' in (
            root / "developer" / "config" / "config" / "routes.js"
        ).read_text(encoding="utf-8")
        persist.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_persist_without_stack_reference(self, in_runtime_root, make_options):
        with patch("abcli.tasks.api_new.print_warning"), patch("abcli.tasks.api_new.print_plain"):
            with pytest.raises(AbCliError, match="unknown Stack reference"):
                await ApiNewTask().persist_new_route(make_options())

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_persist_redeploys_config_stack(self, in_runtime_root, make_options):
        (in_runtime_root / "ab_system_monitor.sh").write_text("", encoding="utf-8")
        with patch("abcli.tasks.api_new.stack_rm", new_callable=AsyncMock) as stack_rm, patch(
            "abcli.tasks.api_new.stack_deploy", new_callable=AsyncMock
        ) as stack_deploy, patch.object(StackWatcher, "follow", new_callable=AsyncMock) as follow:
            await ApiNewTask().persist_new_route(make_options())

        assert [c.args[0] for c in stack_rm.await_args_list] == ["ab", "ab"]
        assert stack_deploy.await_args.args == ("ab", ["config-compose.yml"])
        assert follow.await_args.args[1] == ["docker", "service", "logs", "--follow", "ab_config"]
        assert not StackWatcher.is_active("ab")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_persist_refused_while_stack_watched(self, in_runtime_root, make_options):
        (in_runtime_root / "ab_system_monitor.sh").write_text("", encoding="utf-8")
        with patch("abcli.tasks.api_new.stack_rm", new_callable=AsyncMock) as stack_rm:
            async with StackWatcher.session("ab"):
                with pytest.raises(StackBusyError):
                    await ApiNewTask().persist_new_route(make_options())
        stack_rm.assert_not_awaited()
