"""Registry of the top-level ``ab`` commands."""

from __future__ import annotations

from collections.abc import Iterable

from abcli.commands.api import ApiCommand
from abcli.commands.base import Command
from abcli.commands.mobile import MobileCommand
from abcli.commands.service import ServiceCommand
from abcli.commands.tenant import TenantCommand
from abcli.commands.test import TestCommand
from abcli.commands.update import UpdateCommand


def build_registry(commands: Iterable[Command]) -> dict[str, Command]:
    """Map each command's name to the command, in the order given.

    A later command with the same name replaces the earlier one.
    """
    registry: dict[str, Command] = {}
    for command in commands:
        registry[command.name] = command
    return registry


COMMANDS: dict[str, Command] = build_registry(
    [
        ApiCommand(),
        MobileCommand(),
        ServiceCommand(),
        TenantCommand(),
        TestCommand(),
        UpdateCommand(),
    ]
)
