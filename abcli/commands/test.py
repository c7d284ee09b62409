"""``ab test``: manage the stacks used for unit/e2e test runs."""

from __future__ import annotations

from abcli.commands.base import TaskCommand
from abcli.tasks.testing import test_add, test_down, test_setup, test_wait_boot


class TestCommand(TaskCommand):
    __test__ = False

    name = "test"
    description_short = "manage running unit/e2e tests"
    usage = """
  usage: $ ab test [operation]

  [operation]s :
    add       : $ ab test add
    down      : $ ab test down [stack]
    setup     : $ ab test setup [stack]
    waitBoot  : $ ab test waitBoot [stack]

"""
    dependencies = ("docker",)
    tasks = {
        "setup": test_setup,
        "waitboot": test_wait_boot,
        "down": test_down,
        "add": test_add,
    }
