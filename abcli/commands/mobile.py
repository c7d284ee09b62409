"""``ab mobile``: manage mobile app projects."""

from __future__ import annotations

from abcli.commands.base import TaskCommand
from abcli.tasks.mobile_new import mobile_new


class MobileCommand(TaskCommand):
    name = "mobile"
    description_short = "manage your Mobile projects."
    usage = """
  usage: $ ab mobile [operation] [options]

  [operation]s :
    new :   ab mobile new [appName] [--dest /path/to/directory]


  [options] :
    appName:  the name of the mobile app
              (will become the directory it is stored in )

    --dest  : (optional) path to the directory to install in
              [default] = current dir

  examples:

    $ ab mobile new HRProfile
        - creates directory [currentDir]/HRProfile

"""
    tasks = {"new": mobile_new}
