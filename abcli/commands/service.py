"""``ab service``: manage micro services."""

from __future__ import annotations

from abcli.commands.base import TaskCommand
from abcli.tasks.service_handler import service_handler
from abcli.tasks.service_new import service_new


class ServiceCommand(TaskCommand):
    name = "service"
    description_short = "manage your micro services."
    usage = """
  usage: $ ab service [operation] [options]

  [operation]s :
    new :    $ ab service new [name]
    handler: $ ab service handler [service] [action] [key]


  [options] :
    name:  the name of the service (without the "ab_service_" prefix )

  examples:

    $ ab service new file_processor
        - creates new service in developer/file_processor
        - include new service in docker-compose.dev.yml

"""
    dependencies = ("git", "docker")
    tasks = {"new": service_new, "handler": service_handler}
