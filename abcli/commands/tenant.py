"""``ab tenant``: manage tenants."""

from __future__ import annotations

from abcli.commands.base import TaskCommand
from abcli.tasks.tenant_add import tenant_add


class TenantCommand(TaskCommand):
    name = "tenant"
    description_short = "manage tenants in our system"
    usage = """
  usage: $ ab tenant [operation]

  [operation]s :
    add      : $ ab tenant add
"""
    dependencies = ("docker",)
    tasks = {"add": tenant_add}
