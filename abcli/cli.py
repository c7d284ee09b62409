"""``ab`` command line entry point.

The first positional argument selects a command from the registry; everything
else is handed to that command in an ``Options`` bag::

    ab service new file_processor --description "Process uploads"
    ab test setup ci --verbose
"""

from __future__ import annotations

import asyncio
import sys
import traceback
from collections.abc import Mapping, Sequence
from pathlib import Path

from dotenv import load_dotenv
from rich.markup import escape

from abcli.commands.base import Command
from abcli.commands.registry import COMMANDS
from abcli.config import Config
from abcli.options import parse_argv
from abcli.pipeline import AbCliError
from abcli.utils import console, print_command_table, print_error, print_plain, print_success, set_verbose

COMPLETION_MARKER = "done."


def print_help_screen(command: str | None, commands: Mapping[str, Command]) -> None:
    """List the available commands after an unknown (or missing) command."""
    print_plain("")
    if command:
        console.print(f"Unknown command: [bold red]{escape(command)}[/bold red]")
        print_plain("")
    print_plain("Available commands:")
    print_plain("")
    print_command_table({name: cmd.description_short for name, cmd in commands.items()})
    print_plain("")
    console.print(
        "For more info on a specific command type: "
        "[green]ab \\[command][/green] [bold yellow]--help[/bold yellow]"
    )
    print_plain("")


def dispatch(
    argv: Sequence[str],
    commands: Mapping[str, Command] | None = None,
    config: Config | None = None,
) -> int:
    """Run the command named by *argv* and return the process exit status."""
    if commands is None:
        commands = COMMANDS
    if config is None:
        load_dotenv(Path.cwd() / ".env")
        config = Config.from_env()

    options = parse_argv(argv, config)
    set_verbose(options.flag("verbose", config.verbose))

    name = options.shift()
    command = commands.get(name) if name else None
    if command is None:
        print_help_screen(name, commands)
        return 0

    try:
        asyncio.run(command.run(options))
    except KeyboardInterrupt:
        print_error("interrupted")
        return 1
    except AbCliError as exc:
        if not exc.handled:
            print_error(str(exc))
        return 1
    except Exception as exc:
        print_error(f"{name} failed: {exc}")
        console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")
        return 1

    print_success(COMPLETION_MARKER)
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Console-script entry point for ``ab``."""
    sys.exit(dispatch(sys.argv[1:] if argv is None else argv))


if __name__ == "__main__":
    main()
