"""``ab update dev``: pull every repository under ``developer/``."""

from __future__ import annotations

from pathlib import Path

from abcli.commands.base import Command
from abcli.git import pull
from abcli.options import Options
from abcli.pipeline import AbCliError
from abcli.utils import console, print_plain, print_step


def find_local_repos(developer: Path) -> list[Path]:
    """Directories under *developer*, with ``plugins/`` expanded one level."""
    repos: list[Path] = []
    for entry in sorted(developer.iterdir()):
        if not entry.is_dir():
            continue
        if entry.name == "plugins":
            repos.extend(sorted(p for p in entry.iterdir() if p.is_dir()))
        else:
            repos.append(entry)
    return repos


class UpdateDevTask(Command):
    name = "updateDev"
    description_short = "Update code in the developer folder"
    usage = """
  usage: $ ab update dev
"""
    dependencies = ("git",)

    def steps(self):
        return [
            self.check_dependencies,
            self.move_to_root,
            self.check_folder,
            self.check_local_repos,
            self.git_pull,
        ]

    async def check_folder(self, options: Options) -> None:
        print_step("Check the developer folder exists")
        developer = Path.cwd() / "developer"
        if not developer.is_dir():
            raise AbCliError(f"Could not find the path {developer}")
        options["developer"] = developer
        print_step("   ... done")

    async def check_local_repos(self, options: Options) -> None:
        options["repos"] = find_local_repos(options["developer"])

    async def git_pull(self, options: Options) -> None:
        repos = options["repos"]
        total = len(repos)
        for index, repo in enumerate(repos, start=1):
            print_plain("")
            console.print(f"git pull {repo.name} [cyan]{index}/{total}[/cyan]", highlight=False)
            output = await pull(repo)
            if output:
                print_plain(output)


update_dev = UpdateDevTask()
