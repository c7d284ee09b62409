"""``ab api new``: add an API route and its service handler."""

from __future__ import annotations

import re
from pathlib import Path

from abcli.commands.base import Command
from abcli.dirs import find_all_services
from abcli.docker_ops import stack_deploy, stack_rm
from abcli.options import Options
from abcli.patch import PatchDescriptor, apply_patches
from abcli.pipeline import AbCliError
from abcli.prompts import Question, ask
from abcli.render import TemplateRenderer
from abcli.stack import StackWatcher, config_init_detector
from abcli.tasks.service_handler import service_handler
from abcli.utils import camel_case, kebab_case, print_plain, print_step, print_warning, read_text_exact

VERBS = ["get", "post", "put", "delete", "all"]


def _route_filter(value: str) -> str:
    value = value or ""
    return value if value.startswith("/") else f"/{value}"


class ApiNewTask(Command):
    name = "apiNew"
    description_short = "create a new API endpoint for a service."
    usage = """
  usage: $ ab api new [service] [action] [verb] [route] [key]

  create a new API end point for a micro service.

  Options:
    [service] (optional) the name of the micro service.
    [action]  (optional) the name of the action for this service. (use Kebab Case)
    [verb]    (optional) the http verb of this route [get,post,put,delete,all]
    [route]   (optional) the route string (/service/action/:param1)
    [key]     (optional) the service key (file.upload, image.scale, etc... )

  examples:

    $ ab api new image_processor scale
        - creates developer/image_processor/handlers/scale.js
        - adds the route  /image_processor/scale  to developer/config/config/routes.js
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
            self.create_service_handler,
            self.patch_routes,
            self.patch_service_app,
            self.persist_new_route,
        ]

    async def parse_args(self, options: Options) -> None:
        options.shift_into(
            ["service", "action", "verb", "route", "key"],
            {"action": kebab_case, "route": _route_filter},
        )
        if options.get("verb") == "all":
            options["verb"] = ""

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
                    message="Enter the action name (using Kebab case)",
                    filter=lambda value: kebab_case(value or ""),
                    validate=lambda value: value not in ("", "use-kebab-case")
                    or "enter a valid action key (create, upload, etc...)",
                ),
                Question(
                    name="verb",
                    message="What http verb for this api",
                    kind="list",
                    choices=VERBS,
                    default="all",
                    filter=lambda value: "" if value == "all" else value,
                ),
                Question(
                    name="route",
                    message="Enter the route definition",
                    default=lambda o: f"/{o.get('service') or 'service'}/{o.get('action') or 'action'}",
                    filter=_route_filter,
                ),
                Question(
                    name="key",
                    message="Enter the service key",
                    default=lambda o: f"{o['service']}.{o['action']}",
                ),
            ],
            options,
        )

    async def copy_template_files(self, options: Options) -> None:
        renderer = TemplateRenderer(options.config.templates_dir)
        await renderer.copy_tree("apiNew", options.as_dict())

    async def create_service_handler(self, options: Options) -> None:
        values = {key: options[key] for key in ("service", "action", "key")}
        if "useABObjects" in options:
            values["useABObjects"] = options["useABObjects"]
        await service_handler.run(options.derive(values))

    async def patch_routes(self, options: Options) -> None:
        path_routes = Path.cwd() / "developer" / "config" / "config" / "routes.js"
        service = options["service"]
        verb = options.get("verb") or ""
        entry = f'"{verb}{" " if verb else ""}{options["route"]}": "{service}/{options["action"]}",'

        contents = read_text_exact(path_routes) if path_routes.is_file() else ""
        match = re.search(rf"//\s*{re.escape(service)}\s*routes:", contents)
        if match:
            patch = PatchDescriptor(file=path_routes, tag=match.group(0), replace=f"   {entry}", log="")
        else:
            patch = PatchDescriptor(
                file=path_routes,
                tag="};",
                replace=f"   // {service} routes:\n   {entry}",
                position="before",
                log="",
            )
        await apply_patches([patch], template_dir=options.config.templates_dir)

    async def patch_service_app(self, options: Options) -> None:
        path_app = Path.cwd() / "developer" / options["service"] / "app.js"
        action = options["action"]
        handler = f"{camel_case(action)}Handler"
        key = options["key"]
        await apply_patches(
            [
                PatchDescriptor(
                    file=path_app,
                    tag="const ABService = AB.service;",
                    replace=(
                        f'const {handler} = require(path.join(__dirname, "handlers", "{action}.js"));\n'
                        f"{handler}.init({{ config }});"
                    ),
                    log="",
                ),
                PatchDescriptor(
                    file=path_app,
                    tag="shutdown() {",
                    replace=f'    serviceResponder.off("{key}", {handler}.fn);',
                    log="",
                ),
                PatchDescriptor(
                    file=path_app,
                    tag="run() {",
                    replace=f'    serviceResponder.on("{key}", {handler}.fn);',
                    log="",
                ),
            ],
            template_dir=options.config.templates_dir,
        )

    async def persist_new_route(self, options: Options) -> None:
        """Redeploy the config stack so the config volume picks up the new route."""
        monitors = sorted(Path.cwd().glob("*_system_monitor*"))
        if not monitors:
            print_plain("")
            print_warning("WARN: could not determine current stack reference.")
            print_warning("WARN: to persist the changes to the route, you'll need to ")
            print_warning("WARN: docker stack deploy -c config-compose.yml [stack]")
            raise AbCliError("unknown Stack reference")

        settings = options.config.stack
        stack = monitors[0].name.split("_")[0]
        async with StackWatcher.session(stack):
            await stack_rm(stack)
            try:
                print_step(f"... updating config volume for stack {stack}")
                await stack_deploy(
                    stack,
                    [settings.config_compose_file],
                    retries=settings.deploy_retries,
                    interval=settings.deploy_retry_interval,
                )
                watcher = StackWatcher(timeout=settings.watch_timeout, terminate_grace=settings.terminate_grace)
                await watcher.follow(
                    stack,
                    ["docker", "service", "logs", "--follow", f"{stack}_config"],
                    config_init_detector(),
                )
            finally:
                await stack_rm(stack)


api_new = ApiNewTask()
