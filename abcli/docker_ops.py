"""Docker stack, volume and compose operations.

Thin async wrappers around the ``docker`` and ``docker-compose`` CLIs plus the
two stack initialisation routines built on the ``StackWatcher``: preparing
the config volume and creating the database tables.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

from abcli.options import Options, options_pull
from abcli.prompts import Question, ask
from abcli.stack import (
    ReadinessDetector,
    StackDeployError,
    StackWatcher,
    config_init_detector,
    db_init_detector,
)
from abcli.utils import (
    print_plain,
    print_step,
    print_warning,
    read_text_exact,
    run_command,
    write_atomic,
)

_MARIADB_PORTS = re.compile(r"image: mariadb\s*\n\s*ports:\s*\n\s*")


def stack_name(options: Options) -> str:
    return options.get("stack") or options.config.stack.default_stack


# ---------------------------------------------------------------------------
# Stacks
# ---------------------------------------------------------------------------


async def stack_rm(stack: str) -> None:
    """``docker stack rm``; a stack that does not exist is not an error."""
    await run_command(["docker", "stack", "rm", stack])


async def list_stacks() -> list[str]:
    rc, stdout, _ = await run_command(["docker", "stack", "ls", "--format", "{{.Name}}"])
    if rc != 0:
        return []
    return [line.strip() for line in stdout.splitlines() if line.strip()]


async def stack_exists(stack: str) -> bool:
    return stack in await list_stacks()


async def wait_stack_closed(stack: str, interval: float = 1.0) -> None:
    """Poll ``docker stack ls`` until *stack* is gone."""
    while await stack_exists(stack):
        print_step(f"... waiting for stack {stack} to close")
        await asyncio.sleep(interval)


async def stack_deploy(
    stack: str,
    compose_files: list[str],
    retries: int = 30,
    interval: float = 1.0,
) -> None:
    """Deploy *stack*, retrying while its network from a previous run is released.

    Raises:
        StackDeployError: Any other failure, or the retries ran out.
    """
    cmd = ["docker", "stack", "deploy"]
    for compose_file in compose_files:
        cmd += ["-c", compose_file]
    cmd.append(stack)

    attempt = 0
    while True:
        rc, _, stderr = await run_command(cmd)
        if rc == 0:
            return
        if f"network {stack}_default not found" in stderr and attempt < retries:
            attempt += 1
            print_step("    --> network unavailable, retrying ... ")
            await asyncio.sleep(interval)
            continue
        raise StackDeployError(stack, stderr)


async def compose_resolve(compose_file: str, output: str | Path) -> Path:
    """Write ``docker-compose config`` for *compose_file* to *output*.

    This resolves ``.env`` variables into a file ``docker stack deploy`` accepts.
    """
    rc, stdout, stderr = await run_command(["docker-compose", "-f", compose_file, "config"])
    if rc != 0:
        raise StackDeployError(compose_file, stderr)
    target = Path(output)
    await asyncio.to_thread(write_atomic, target, stdout + "\n")
    return target


# ---------------------------------------------------------------------------
# Volumes
# ---------------------------------------------------------------------------


async def volume_exists(volume: str) -> bool:
    rc, stdout, _ = await run_command(["docker", "volume", "ls", "-q"])
    return rc == 0 and volume in stdout.split()


async def volume_rm(volume: str) -> bool:
    """Remove *volume*; return whether docker confirmed the removal."""
    _, stdout, _ = await run_command(["docker", "volume", "rm", volume])
    return volume in stdout


async def populate_nginx_volume(stack: str) -> None:
    """Create and fill the ``<stack>_nginx_etc`` volume from the nginx image."""
    await run_command(["docker", "run", "-v", f"{stack}_nginx_etc:/etc", "nginx", "ls"])


def hide_db_ports(compose_path: str | Path) -> bool:
    """Comment out the published ports of the mariadb service.

    Returns:
        ``True`` when the file was changed.
    """
    path = Path(compose_path)
    contents = read_text_exact(path)
    patched = _MARIADB_PORTS.sub("image: mariadb\n    # ports:\n    #   ", contents)
    if patched == contents:
        return False
    write_atomic(path, patched)
    return True


# ---------------------------------------------------------------------------
# Watched stack runs
# ---------------------------------------------------------------------------


async def docker_stack_watch(
    options: Options,
    detector: ReadinessDetector,
    compose_file: str,
    watcher: StackWatcher | None = None,
) -> None:
    """Deploy *compose_file* as a stack and wait until *detector* is ready.

    The stack name is reserved before any docker command runs, so a stack
    that is already being watched raises ``StackBusyError`` untouched.  Any
    running stack of the same name is then removed.  Unless
    ``options["keepRunning"]`` is set the stack is removed again afterwards,
    whether the watch succeeded or not.
    """
    settings = options.config.stack
    stack = stack_name(options)
    watcher = watcher or StackWatcher(
        timeout=settings.watch_timeout, terminate_grace=settings.terminate_grace
    )

    async with StackWatcher.session(stack):
        print_step(f"... clearing out existing {stack} stacks")
        await stack_rm(stack)

        try:
            print_step(f"... booting up {compose_file}")
            await compose_resolve(compose_file, settings.resolved_compose_file)
            await stack_deploy(
                stack,
                [settings.resolved_compose_file],
                retries=settings.deploy_retries,
                interval=settings.deploy_retry_interval,
            )

            print_step("... watching log entries")
            await watcher.follow(stack, settings.log_command, detector)
        finally:
            if not options.flag("keepRunning"):
                print_step("... shutting down")
                await stack_rm(stack)


async def config_init(
    options: Options,
    compose_file: str | None = None,
    watcher: StackWatcher | None = None,
) -> None:
    """Run the config initialisation stack until the config volume is prepared."""
    if options.flag("nginxEnable"):
        await populate_nginx_volume(stack_name(options))
    await docker_stack_watch(
        options,
        config_init_detector(),
        compose_file or options.config.stack.config_compose_file,
        watcher,
    )


async def db_init(
    options: Options,
    compose_file: str | None = None,
    watcher: StackWatcher | None = None,
) -> bool:
    """Run the database initialisation stack.

    An existing ``<stack>_mysql_data`` volume is kept or removed according to
    ``options["dbVolume"]`` (``"keep"``/``"remove"``); the user is asked when
    neither was given.

    Returns:
        ``True`` when the initialisation ran, ``False`` when it was skipped.
    """
    compose_file = compose_file or options.config.stack.db_compose_file
    volume = f"{stack_name(options)}_mysql_data"

    db_volume = options.get("dbVolume") or options_pull(options, "db").get("volume")
    if await volume_exists(volume):
        if db_volume not in ("keep", "remove"):
            print_plain("")
            print_warning(f"WARN: There is an existing data volume : {volume}")
            print_warning("WARN: This installer wont be able to overwrite the data.")
            await ask(
                [
                    Question(
                        name="dbVolume",
                        message=f"Keep or remove the existing {volume} volume?",
                        kind="list",
                        choices=["keep", "remove"],
                        default="keep",
                        when=lambda _: True,
                    )
                ],
                options,
            )
            db_volume = options["dbVolume"]

        if db_volume == "keep":
            return False
        if not await volume_rm(volume):
            print_warning(
                "WARN: that didn't go as expected.  You might have to manually remove"
                " the volume and try again."
            )
            return False

    if options.flag("hidePorts"):
        await asyncio.to_thread(hide_db_ports, Path.cwd() / compose_file)

    await docker_stack_watch(options, db_init_detector(), compose_file, watcher)
    print_step("... db initialized.")
    return True


# ---------------------------------------------------------------------------
# Containerised tooling
# ---------------------------------------------------------------------------


async def npm_install(
    project_dir: str | Path,
    packages: list[str] | None = None,
    image: str = "node:18",
) -> bool:
    """Run ``npm install`` for *project_dir* inside a throwaway container.

    Returns:
        ``True`` when npm exited cleanly.
    """
    project = Path(project_dir).resolve()
    cmd = ["docker", "run", "--rm", "-v", f"{project}:/app", "-w", "/app", image, "npm", "install"]
    if packages:
        cmd += ["--save", "--force", *packages]
    rc, _, stderr = await run_command(cmd)
    if rc != 0:
        print_warning(f"npm install failed in {project}: {stderr}")
        return False
    return True
