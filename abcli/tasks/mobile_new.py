"""``ab mobile new``: create a Cordova based mobile app project.

Cordova, yarn and the platform SDKs run inside the ``ab-mobile-env`` image,
so only docker and git are needed on the host.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from abcli.commands.base import Command
from abcli.git import PLATFORM_MOBILE_REPO, clone
from abcli.options import Options
from abcli.patch import PatchDescriptor, apply_patches
from abcli.pipeline import AbCliError
from abcli.prompts import Question, ask, not_empty
from abcli.render import TemplateRenderer
from abcli.utils import print_error, print_step, run_command

MOBILE_IMAGE = "skipdaddy/ab-mobile-env:develop"

PLATFORMS = ("android", "ios", "browser")

PLUGINS = [
    "cordova-plugin-statusbar",
    "cordova-plugin-whitelist",
    "cordova-plugin-code-push",
    "cordova-plugin-qrscanner",
    "cordova-plugin-deeplinks",
    "onesignal-cordova-plugin",
    "cordova-android-support-gradle-release",
    "cordova-android-play-services-gradle-release",
    "cordova-plugin-camera",
    "cordova-plugin-network-information",
    "cordova-plugin-ios-disableshaketoedit",
    "cordova-plugin-add-swift-support",
    "cordova-plugin-calendar",
    "https://github.com/Countly/countly-sdk-js.git",
]

NODE_MODULES = [
    "@babel/core",
    "@babel/preset-env",
    "async",
    "babel-loader",
    "crypto-js",
    "es6-promise",
    "eventemitter2",
    "express",
    "framework7",
    "highcharts",
    "html2canvas",
    "jquery",
    "lodash",
    "moment",
    "shake.js",
    "uuid",
    "webix",
    "webpack",
]

NODE_DEV_MODULES = [
    "webpack-cli",
    "eslint",
    "eslint-plugin-prettier",
    "prettier",
    "eslint-config-prettier",
]

# (node_modules source, destination under www/)
VENDOR_FILES = [
    ("es6-promise/dist/es6-promise.min.js", "js/es6-promise.js"),
    ("framework7/js/framework7.bundle.min.js", "js/framework7.bundle.min.js"),
    ("framework7/css/framework7.bundle.min.css", "css/framework7.bundle.min.css"),
    ("highcharts/highcharts.js", "js/highcharts/highcharts.js"),
    ("highcharts/highcharts-more.js", "js/highcharts/highcharts-more.js"),
    ("highcharts/modules/solid-gauge.js", "js/highcharts/modules/solid-gauge.js"),
    ("jquery/dist/jquery.min.js", "js/jquery.min.js"),
    ("lodash/lodash.min.js", "js/lodash.js"),
    ("moment/moment.js", "js/moment.js"),
    ("webix/webix.min.js", "js/webix.js"),
]

PACKAGE_SCRIPTS = """    "build": "webpack --mode=development",
    "watch": "webpack --mode=development --watch --progress",
    "devserver": "node www/webserver.js","""


def parse_platforms(value) -> list[str]:
    if value is None or value is True:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [p.strip().lower() for p in value if p and p.strip()]


def _valid_platforms(value: list[str]) -> bool | str:
    unknown = [p for p in value if p not in PLATFORMS]
    return True if not unknown else f"unknown platform(s): {', '.join(unknown)}"


async def docker_mobile(*args: str) -> None:
    """Run a command in the mobile build image with the working directory mounted."""
    cmd = [
        "docker",
        "run",
        "--rm",
        "--mount",
        f"type=bind,source={Path.cwd()},target=/app",
        "-w",
        "/app",
        MOBILE_IMAGE,
        *args,
    ]
    rc, _, _ = await run_command(cmd, capture=False)
    if rc != 0:
        raise AbCliError(f"command failed (exit {rc}): {' '.join(args)}")


class MobileNewTask(Command):
    name = "mobileNew"
    description_short = "create a new mobile app project."
    usage = """
  usage: $ ab mobile new [appName] [options]

  create a new mobile app development directory.

  Options:
    [appName] the name of the Mobile App.

  [options] :
    --dest          : (optional) path to the directory to install in
                      [default] = current dir
    --appID         : (optional) default application id (org.orgName.appName)
                      for this application.
    --platforms     : (optional) A list of platforms to install.
                      valid entries: [ android, ios, browser ]
                      ex: --platforms "android,ios,browser"
    --noSentry      : (optional) skip installing Sentry.io
    --sentryDSN [dsnString] : (optional) install Sentry.io and use [dsnString]
                      for Sentry.init()
    --countlyURL    : (optional) the countly url of your web app.
    --countlyAppKey : (optional) the countly App_Key of your app.
"""
    dependencies = ("docker", "git")

    def steps(self):
        return [
            self.parse_args,
            self.check_dependencies,
            self.questions,
            self.move_to_install_directory,
            self.create_directory,
            self.move_to_project_directory,
            self.install_plugins,
            self.install_plugin_sentry,
            self.install_platforms,
            self.install_node_modules,
            self.modify_files,
            self.remove_files,
            self.copy_templates,
            self.git_checkout_mobile_platform,
        ]

    async def parse_args(self, options: Options) -> None:
        if "platforms" in options:
            options["platforms"] = parse_platforms(options["platforms"])
        options.shift_into(["appName"])
        self.require(options, "appName")

    async def questions(self, options: Options) -> None:
        no_app_id = lambda o: o.get("appID") is None  # noqa: E731
        await ask(
            [
                Question(
                    "orgName",
                    "What is your organization name (no spaces)",
                    validate=lambda v: not_empty(v) is True or "enter a name here.",
                    when=lambda o: no_app_id(o) and o.get("orgName") is None,
                ),
                Question(
                    "orgType",
                    "What is your organization/company domain (com, org, io, etc...)",
                    validate=lambda v: not_empty(v) is True or "enter a domain here.",
                    when=lambda o: no_app_id(o) and o.get("orgType") is None,
                ),
                Question(
                    "appID",
                    "What should the appID be",
                    default=lambda o: f"{o.get('orgType')}.{o.get('orgName')}.{o['appName']}",
                    validate=lambda v: (
                        "that is just an example, enter your own"
                        if v == f"com.yourOrg.{options['appName']}"
                        else not_empty(v) is True
                        or f"enter a valid entry like: com.yourOrg.{options['appName']}"
                    ),
                ),
                Question(
                    "platforms",
                    "Which platforms should be included (comma separated: android,ios,browser)",
                    default="android,ios",
                    filter=parse_platforms,
                    validate=_valid_platforms,
                ),
                Question(
                    "codepushKeyIOS",
                    "Enter the CodePush Key for iOS",
                    default="",
                    when=lambda o: "ios" in o["platforms"] and o.get("codepushKeyIOS") is None,
                ),
                Question(
                    "codepushKeyAndroid",
                    "Enter the CodePush Key for Android",
                    default="",
                    when=lambda o: "android" in o["platforms"] and o.get("codepushKeyAndroid") is None,
                ),
                Question("networkType", "What type of networking strategy", kind="list", choices=["rest", "relay"], default="relay"),
                Question(
                    "networkCoreURL",
                    "Enter the url to the AppBuilder server",
                    default="http://localhost:1337",
                    when=lambda o: o["networkType"] == "rest" and o.get("networkCoreURL") is None,
                ),
                Question(
                    "networkRelayURL",
                    "Enter the url to the Relay server",
                    default="http://localhost:1337",
                    when=lambda o: o["networkType"] == "relay" and o.get("networkRelayURL") is None,
                ),
                Question(
                    "installSentry",
                    "Do you want to install Sentry.io (for debugging crashes)?",
                    kind="confirm",
                    default=True,
                    when=lambda o: o.get("noSentry") is None and o.get("sentryDSN") is None,
                ),
                Question(
                    "sentryDSN",
                    "Enter your Sentry.dsn parameter (https://....@sentry.io/....)",
                    when=lambda o: bool(o.get("installSentry")) and o.get("sentryDSN") is None,
                ),
            ],
            options,
        )
        if options.flag("noSentry"):
            options["installSentry"] = False
        elif options.get("sentryDSN"):
            options["installSentry"] = True

    async def move_to_install_directory(self, options: Options) -> None:
        options["originalCwd"] = Path.cwd()
        dest = options.get("dest")
        if not dest:
            return
        try:
            os.chdir(dest)
        except OSError as exc:
            print_error(f"  !! ENOTFOUND: unknown directory : {dest}")
            raise AbCliError(f"ENOTFOUND: unknown directory : {dest}", handled=True) from exc

    async def create_directory(self, options: Options) -> None:
        if Path(options["appName"]).exists():
            raise AbCliError(f"directory {Path.cwd() / options['appName']} already exists")
        await docker_mobile("cordova", "create", options["appName"], options["appID"], options["appName"])

    async def move_to_project_directory(self, options: Options) -> None:
        os.chdir(options["appName"])
        options["projectDir"] = Path.cwd()

    async def install_plugins(self, options: Options) -> None:
        print_step("... installing cordova plugins")
        await docker_mobile("cordova", "plugin", "add", *PLUGINS)

    async def install_plugin_sentry(self, options: Options) -> None:
        if options.flag("installSentry"):
            await docker_mobile("cordova", "plugin", "add", "sentry-cordova")

    async def install_platforms(self, options: Options) -> None:
        if options["platforms"]:
            await docker_mobile("cordova", "platform", "add", *options["platforms"])

    async def install_node_modules(self, options: Options) -> None:
        if options["platforms"]:
            print_step("... installing node modules")
            await docker_mobile("yarn", "add", *NODE_MODULES)
            await docker_mobile("yarn", "add", "-D", *NODE_DEV_MODULES)

        node_dir = Path.cwd() / "node_modules"
        www = Path.cwd() / "www"
        for source, dest in VENDOR_FILES:
            origin = node_dir / source
            if not origin.is_file():
                continue
            target = www / dest
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(origin, target)

    async def modify_files(self, options: Options) -> None:
        await apply_patches(
            [
                PatchDescriptor(
                    file=Path.cwd() / "package.json",
                    tag='"scripts": {',
                    replace=PACKAGE_SCRIPTS,
                    log="step: adding additional package.json scripts",
                )
            ],
            template_dir=options.config.templates_dir,
        )

    async def remove_files(self, options: Options) -> None:
        for unwanted in (Path("www") / "index.html", Path("www") / "css" / "index.css"):
            (Path.cwd() / unwanted).unlink(missing_ok=True)

    async def copy_templates(self, options: Options) -> None:
        renderer = TemplateRenderer(options.config.templates_dir)
        await renderer.copy_tree("mobileNew", options.as_dict())

    async def git_checkout_mobile_platform(self, options: Options) -> None:
        lib = Path.cwd() / "www" / "lib"
        lib.mkdir(parents=True, exist_ok=True)
        print_step("... cloning appbuilder_platform_mobile")
        await clone(PLATFORM_MOBILE_REPO, "platform", cwd=lib)


mobile_new = MobileNewTask()
