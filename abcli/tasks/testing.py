"""``ab test setup|waitBoot|down|add``: manage test stacks and e2e suites.

Every test stack name is prefixed (``ab test setup ci`` works on ``test_ci``)
so tests never touch a development stack.  ``ab test add`` clones e2e test
suites into the runtime's cypress folder.
"""

from __future__ import annotations

from pathlib import Path

from abcli.commands.base import Command
from abcli.docker_ops import (
    config_init,
    db_init,
    stack_deploy,
    stack_exists,
    stack_rm,
    volume_exists,
    wait_stack_closed,
)
from abcli.git import GitError, clone
from abcli.options import Options
from abcli.pipeline import AbCliError
from abcli.prompts import Question, ask, not_empty, split_choices
from abcli.utils import print_step, wait_for_health


class StackTask(Command):
    """A test task taking the stack name as its only argument."""

    dependencies = ("docker",)

    async def parse_stack(self, options: Options) -> None:
        options.shift_into(["stack"])
        self.require(options, "stack")
        prefix = options.config.test.stack_prefix
        options["stack"] = f"{prefix}{options['stack']}"


class SetupTask(StackTask):
    name = "testSetup"
    description_short = "prepare the volumes for a test stack."
    usage = """
  usage: $ ab test setup [stack]

  prepare our environment for running tests.

  Options:
    [stack] the name of the docker stack we are referencing.
"""

    def steps(self):
        return [
            self.parse_stack,
            self.check_dependencies,
            self.check_existing_volume,
            self.generate_test_configs,
            self.create_missing_volume,
            self.remove_setup_stack,
            self.wait_closed,
        ]

    async def check_existing_volume(self, options: Options) -> None:
        if await volume_exists(f"{options['stack']}_mysql_data"):
            print_step(f"a test data volume [{options['stack']}] has already been created.")
            options["volumeExists"] = True

    async def generate_test_configs(self, options: Options) -> None:
        if options.get("volumeExists"):
            return
        print_step("Generate Test Configs")
        await config_init(
            options.derive({"stack": options["stack"], "dbVolume": "keep", "nginxEnable": True})
        )

    async def create_missing_volume(self, options: Options) -> None:
        if options.get("volumeExists"):
            return
        print_step("Create Test Volume")
        await db_init(
            options.derive(
                {
                    "stack": options["stack"],
                    "dbVolume": "keep",
                    "keepRunning": True,
                    "hidePorts": True,
                }
            )
        )

    async def remove_setup_stack(self, options: Options) -> None:
        if options.get("volumeExists"):
            return
        print_step("Remove Setup Stack")
        await stack_rm(options["stack"])

    async def wait_closed(self, options: Options) -> None:
        if options.get("volumeExists"):
            return
        await wait_stack_closed(options["stack"], options.config.stack.close_poll_interval)


class WaitBootTask(StackTask):
    name = "testWaitBoot"
    description_short = "wait until a test stack's API answers."
    usage = """
  usage: $ ab test waitBoot [stack]

  busy wait until our testing port is responsive

  Options:
    [stack] the name of the docker stack we are referencing.
"""

    def steps(self):
        return [
            self.parse_stack,
            self.check_dependencies,
            self.check_stack,
            self.deploy_stack,
            self.wait_api,
        ]

    async def check_stack(self, options: Options) -> None:
        options["needDeploy"] = not await stack_exists(options["stack"])

    async def deploy_stack(self, options: Options) -> None:
        if not options["needDeploy"]:
            return
        settings = options.config.stack
        print_step(f"... deploying {options['stack']}")
        await stack_deploy(
            options["stack"],
            list(options.config.test.compose_files),
            retries=settings.deploy_retries,
            interval=settings.deploy_retry_interval,
        )

    async def wait_api(self, options: Options) -> None:
        test = options.config.test
        url = f"http://127.0.0.1:{test.api_port}/"
        print_step(f"... waiting for {url}")
        if not await wait_for_health(url, timeout=test.boot_timeout, interval=test.boot_interval):
            raise AbCliError(f"{options['stack']}: API did not answer at {url} within {test.boot_timeout}s")
        print_step("... API is up")


class DownTask(StackTask):
    name = "testDown"
    description_short = "bring down a test stack."
    usage = """
  usage: $ ab test down [stack]

  issue the command to bring down our testing stack

  Options:
    [stack] the name of the docker stack we are referencing.
"""

    def steps(self):
        return [self.parse_stack, self.check_dependencies, self.stack_rm]

    async def stack_rm(self, options: Options) -> None:
        await stack_rm(options["stack"])


TEST_REPO_URL = "https://{token}github.com/digi-serve/{name}.git"
TESTS_DIR = Path("test", "e2e", "cypress", "integration")

# e2e suites that can be cloned, and their display labels.
TEST_SUITES = {
    "kitchensink_app": "Kitchen Sink",
    "cars_app": "CARS",
    "well_app": "Well Database",
    "ns_app": "NS",
}
PRIVATE_SUITES = ("ns_app",)


class AddTestsTask(Command):
    name = "testAdd"
    description_short = "clone e2e test suites into test/e2e/cypress/integration."
    usage = """
  usage: $ ab test add

  clones test repositories into test/e2e/cypress/integration

  Options:
    --tests : comma separated list of suites to clone
              (kitchensink_app, cars_app, well_app, ns_app)
    --token : github personal access token, needed for private suites
"""
    dependencies = ("git",)

    def steps(self):
        return [
            self.parse_args,
            self.check_dependencies,
            self.check_folder,
            self.check_existing,
            self.questions,
            self.clone_repos,
        ]

    async def parse_args(self, options: Options) -> None:
        if options.get("tests") is not None:
            options["tests"] = split_choices(options["tests"])
            unknown = [name for name in options["tests"] if name not in TEST_SUITES]
            if unknown:
                raise self.usage_error(f"unknown test suite: {', '.join(unknown)}")

    async def check_folder(self, options: Options) -> None:
        print_step("Check the tests folder exists")
        tests_dir = Path.cwd() / TESTS_DIR
        if not tests_dir.is_dir():
            raise AbCliError(f"Could not find the path {tests_dir}")
        options["testsDir"] = tests_dir

    async def check_existing(self, options: Options) -> None:
        installed = [name for name in TEST_SUITES if (options["testsDir"] / name).exists()]
        for name in installed:
            print_step(f"... {TEST_SUITES[name]} already installed")
        options["installedTests"] = installed

    async def questions(self, options: Options) -> None:
        available = [name for name in TEST_SUITES if name not in options["installedTests"]]
        if not available and options.get("tests") is None:
            print_step("... all test suites are already installed")
            options["tests"] = []
            return
        await ask(
            [
                Question("tests", "Which tests do you want to add?", kind="checkbox", choices=available),
                Question(
                    "token",
                    "A github personal access token is required to clone private repos.",
                    kind="password",
                    validate=not_empty,
                    when=lambda o: o.get("token") is None
                    and any(name in PRIVATE_SUITES for name in o["tests"]),
                ),
            ],
            options,
        )

    async def clone_repos(self, options: Options) -> None:
        tests = [name for name in options["tests"] if name not in options["installedTests"]]
        token = f"{options['token']}@" if options.get("token") else ""
        for count, name in enumerate(tests, start=1):
            print_step(f"... git clone {name} {count}/{len(tests)}")
            url = TEST_REPO_URL.format(token=token, name=name)
            try:
                await clone(url, name, cwd=options["testsDir"])
            except GitError as exc:
                message = str(exc).replace(token, "") if token else str(exc)
                raise AbCliError(f"could not clone {name}: {message}") from None


test_setup = SetupTask()
test_wait_boot = WaitBootTask()
test_down = DownTask()
test_add = AddTestsTask()
