"""``ab update``: update local code."""

from __future__ import annotations

from abcli.commands.base import TaskCommand
from abcli.tasks.update_dev import update_dev


class UpdateCommand(TaskCommand):
    name = "update"
    description_short = "update code"
    usage = """
  usage: $ ab update [operation]

  [operation]s :
    dev      : $ ab update dev

"""
    dependencies = ("docker",)
    tasks = {"dev": update_dev}
