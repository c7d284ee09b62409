"""``ab api``: manage service API endpoints."""

from __future__ import annotations

from abcli.commands.base import TaskCommand
from abcli.tasks.api_new import api_new


class ApiCommand(TaskCommand):
    name = "api"
    description_short = "manage your APIs."
    usage = """
  usage: $ ab api [operation] [options]

  [operation]s :
    new :   ab api new [service] [action]


  [options] :
    service:  the name of the service (without the "ab_service_" prefix )
    action:   the name of the api action

    --verb [get,put,post,delete,all] : the HTTP verb to listen for
    --route [route/:with/params] : the route to reference this api

  examples:

    $ ab api new file_processor delete
        - creates a new route in developer/config/config/routes.js
          -- route: /file_processor/delete
        - creates a new service handler:
          -- handler: developer/file_processor/handlers/delete.js

"""
    tasks = {"new": api_new}
