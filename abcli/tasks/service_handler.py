"""``ab service handler``: add a request handler to an existing service."""

from __future__ import annotations

from pathlib import Path

from abcli.commands.base import Command
from abcli.dirs import find_all_services
from abcli.docker_ops import npm_install
from abcli.git import PLATFORM_SERVICE_REPO, submodule_add
from abcli.options import Options
from abcli.prompts import Question, ask, not_empty
from abcli.render import TemplateRenderer
from abcli.utils import print_step

AB_PACKAGES = ["knex", "moment", "objection", "xml-js"]


class ServiceHandlerTask(Command):
    name = "serviceHandler"
    description_short = "create a new handler for a service."
    usage = """
  usage: $ ab service handler [service] [action] [key]

  create a new handler in [root]/developer/[service]/handlers/[action].js

  Options:
    [service] the name of the service this handler is for.
    [action]  the action name of the handler
    [key]     the cote reference key for this handler.
              default: [service].[action]

    --useABObjects : this service handler uses ABObject instances
"""
    dependencies = ("docker", "git")

    def steps(self):
        return [
            self.parse_args,
            self.check_dependencies,
            self.move_to_root,
            self.find_all_services,
            self.questions,
            self.copy_template_files,
            self.install_ab_submodule,
            self.npm_install_packages,
        ]

    async def parse_args(self, options: Options) -> None:
        options.shift_into(["service", "action", "key"])

    async def find_all_services(self, options: Options) -> None:
        options["allServices"] = find_all_services()
        if not options.get("service") and not options["allServices"]:
            raise self.usage_error("no services found in developer/")

    async def questions(self, options: Options) -> None:
        services = options["allServices"]
        await ask(
            [
                Question(
                    name="service",
                    message="Which service is this for",
                    kind="list",
                    choices=services,
                    default=services[0] if services else None,
                ),
                Question(
                    name="action",
                    message="Enter the action name",
                    validate=lambda value: not_empty(value) is True
                    or "enter a valid action key (create, upload, etc...)",
                ),
                Question(
                    name="key",
                    message="Enter the service key",
                    default=lambda o: f"{o['service']}.{o['action']}",
                ),
                Question(
                    name="useABObjects",
                    message="Will this service work with instances of ABObjects?",
                    kind="confirm",
                    default=False,
                ),
            ],
            options,
        )

    async def copy_template_files(self, options: Options) -> None:
        template = "serviceHandlerAB" if options.flag("useABObjects") else "serviceHandler"
        renderer = TemplateRenderer(options.config.templates_dir)
        await renderer.copy_tree(template, options.as_dict())

    def service_dir(self, options: Options) -> Path:
        return Path.cwd() / "developer" / options["service"]

    async def install_ab_submodule(self, options: Options) -> None:
        if not options.flag("useABObjects"):
            return
        service_dir = self.service_dir(options)
        if (service_dir / "AppBuilder").exists():
            return
        print_step("... adding AppBuilder platform submodule")
        await submodule_add(service_dir, PLATFORM_SERVICE_REPO, "AppBuilder")

    async def npm_install_packages(self, options: Options) -> None:
        if not options.flag("useABObjects"):
            return
        print_step("... npm install " + " ".join(AB_PACKAGES))
        await npm_install(self.service_dir(options), AB_PACKAGES)


service_handler = ServiceHandlerTask()
