"""``ab service new``: scaffold a new micro service under ``developer/``."""

from __future__ import annotations

import asyncio
from pathlib import Path

from abcli.commands.base import Command
from abcli.docker_ops import npm_install
from abcli.git import PLATFORM_SERVICE_REPO, git_init, submodule_add
from abcli.options import Options
from abcli.patch import append_to_file
from abcli.prompts import Question, ask
from abcli.render import TemplateRenderer
from abcli.tasks.api_new import api_new
from abcli.utils import pascal_case, print_step, string_render

SHARING_MARKER = "  #/[serviceName]"

# Compose files that receive the new service's entry, and the snippet for each.
COMPOSE_TARGETS = (
    ("docker-compose.yml", "_service.dockercompose.yml"),
    ("source.docker-compose.yml", "_service.dockercompose.yml"),
    ("docker-compose.dev.yml", "_service.dockercompose.dev.yml"),
    ("source.docker-compose.dev.yml", "_service.dockercompose.dev.yml"),
)

_PROD_SHARING = """      # - type: bind
      #   source: ./data
      #   target: /data
  #/[serviceName]
"""

_DEV_SHARING = """      - type: bind
        source: ./data
        target: /data
  #/[serviceName]
"""


class ServiceNewTask(Command):
    name = "serviceNew"
    description_short = "create a new service in developer/ directory."
    usage = """
  usage: $ ab service new [name]

  create a new service in [root]/developer/[name]

  Options:
    [name] the name of the service to create.

    --description        : a short description of the service
    --author             : the name of the author
    --serviceSharedFiles : the service needs access to the shared /data directory
    --shouldInstallAPI   : create an initial API endpoint for this service
    --useABObjects       : the service works with instances of ABObjects
"""
    dependencies = ("docker", "git")

    def steps(self):
        return [
            self.parse_args,
            self.check_dependencies,
            self.move_to_root,
            self.questions,
            self.copy_template_files,
            self.create_initial_api,
            self.insert_compose_entries,
            self.install_git_dependencies,
            self.install_ab_platform,
        ]

    async def parse_args(self, options: Options) -> None:
        options.shift_into(["name"])
        self.require(options, "name")

    async def questions(self, options: Options) -> None:
        await ask(
            [
                Question("description", "Describe this service", default="A cool micro service."),
                Question("author", "Enter your name (name of the author)", default="Coding Monkey"),
                Question(
                    "serviceSharedFiles",
                    "Does this service need access to shared files?",
                    kind="confirm",
                    default=False,
                ),
                Question(
                    "shouldInstallAPI",
                    "Create an initial API endpoint for this service?",
                    kind="confirm",
                    default=False,
                ),
                Question(
                    "useABObjects",
                    "Will this service work with instances of ABObjects?",
                    kind="confirm",
                    default=False,
                ),
            ],
            options,
        )

    async def copy_template_files(self, options: Options) -> None:
        name = options["name"]
        options["serviceName"] = name
        options["containerName"] = name.replace("_", "-")
        options["className"] = pascal_case(name)
        renderer = TemplateRenderer(options.config.templates_dir)
        await renderer.copy_tree("serviceNew", options.as_dict())

    async def create_initial_api(self, options: Options) -> None:
        if options.flag("shouldInstallAPI"):
            await api_new.run(
                options.derive({"service": options["name"], "useABObjects": options.get("useABObjects")})
            )

    def compose_entry(self, options: Options, snippet: str) -> str:
        renderer = TemplateRenderer(options.config.templates_dir)
        raw = renderer.render_snippet(snippet, {})
        if options.flag("serviceSharedFiles"):
            sharing = _DEV_SHARING if snippet.endswith(".dev.yml") else _PROD_SHARING
            raw = raw.replace(SHARING_MARKER, sharing.rstrip("\n"))
        return string_render(raw, options.as_dict())

    async def insert_compose_entries(self, options: Options) -> None:
        for target, snippet in COMPOSE_TARGETS:
            entry = self.compose_entry(options, snippet)
            await asyncio.to_thread(append_to_file, Path.cwd() / target, entry)
            print_step(f"... added {options['name']} to {target}")

    async def install_git_dependencies(self, options: Options) -> None:
        service_dir = Path.cwd() / "developer" / options["name"]
        await git_init(service_dir)
        print_step("... npm install (this takes a while)")
        await npm_install(service_dir)

    async def install_ab_platform(self, options: Options) -> None:
        if options.flag("useABObjects"):
            service_dir = Path.cwd() / "developer" / options["name"]
            await submodule_add(service_dir, PLATFORM_SERVICE_REPO, "AppBuilder")


service_new = ServiceNewTask()
