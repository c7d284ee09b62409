"""Base classes for top-level commands and their sub-tasks."""

from __future__ import annotations

from collections.abc import Mapping

from abcli.deps import check_dependencies
from abcli.dirs import ensure_root
from abcli.options import Options
from abcli.pipeline import Pipeline, Step, UsageError
from abcli.utils import print_error, print_plain


class Command:
    """A named unit of work run as a pipeline of async steps.

    Subclasses set the descriptive attributes and return their steps from
    ``steps()``.  Sub-tasks (``service new``, ``test setup``...) are commands
    too; they are just not registered at the top level.

    Attributes:
        name: Name the command is invoked by.
        description_short: One line shown in the command list.
        description_long: Longer description shown above the usage text.
        usage: Help text printed by ``help()``.
        dependencies: Executables that must be on ``PATH`` before any step
            that changes something runs.
    """

    name: str = ""
    description_short: str = ""
    description_long: str = ""
    usage: str = ""
    dependencies: tuple[str, ...] = ()

    def help(self) -> None:
        text = self.usage
        if self.description_long:
            text = f"\n  {self.description_long}\n{text}"
        print_plain(text)

    def steps(self) -> list[Step]:
        raise NotImplementedError

    def wants_help(self, options: Options) -> bool:
        return options.flag("help") or options.flag("h")

    async def run(self, options: Options) -> None:
        """Run the command's pipeline, or print its help when asked to."""
        if self.wants_help(options):
            self.help()
            return
        await Pipeline(self.steps(), name=self.name).run(options)

    def usage_error(self, message: str) -> UsageError:
        """Report *message* with this command's help and return the error to raise."""
        print_error(message)
        self.help()
        return UsageError(message, command=self.name)

    # -- Common steps ------------------------------------------------------

    async def check_dependencies(self, options: Options) -> None:
        check_dependencies(self.dependencies)

    async def move_to_root(self, options: Options) -> None:
        root = options.config.root
        options["root"] = ensure_root(limit=root.hop_limit, rules=root.rules)

    def require(self, options: Options, key: str, label: str | None = None) -> None:
        if not options.get(key):
            raise self.usage_error(f"missing required param: [{label or key}]")


class TaskCommand(Command):
    """A top-level command whose first argument selects a sub-task.

    ``ab service new foo`` runs ``ServiceCommand``, which shifts ``new`` off the
    positional arguments, checks dependencies and runs the ``new`` task with
    the remaining arguments.
    """

    tasks: Mapping[str, Command] = {}

    def wants_help(self, options: Options) -> bool:
        # With an operation given, the sub-task prints its own help.
        return super().wants_help(options) and not options.positional

    def steps(self) -> list[Step]:
        return [self.parse_operation, self.check_dependencies, self.choose_task]

    async def check_dependencies(self, options: Options) -> None:
        # Help for a sub-task needs none of its tools.
        if not Command.wants_help(self, options):
            await super().check_dependencies(options)

    async def parse_operation(self, options: Options) -> None:
        operation = options.shift()
        if not operation:
            raise self.usage_error(f"{self.name}: an operation is required")
        options["operation"] = operation

    async def choose_task(self, options: Options) -> None:
        operation = options["operation"]
        task = self.tasks.get(operation.lower())
        if task is None:
            raise self.usage_error(f"{self.name}: unknown operation: {operation}")
        await task.run(options.derive())
