"""Sequential task pipeline.

Every command and sub-task is expressed as an ordered list of async steps that
share one ``Options`` bag.  Steps run one at a time in registration order; the
first step that raises stops the pipeline and the error propagates to the
caller unchanged.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterable

from abcli.options import Options
from abcli.utils import format_duration, log_verbose

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AbCliError(Exception):
    """Base class for every error abcli raises on purpose.

    Attributes:
        message: Human-readable description.
        handled: ``True`` when the error has already been reported to the
            user and the dispatcher must not print it again.
    """

    def __init__(self, message: str, handled: bool = False) -> None:
        self.message = message
        self.handled = handled
        super().__init__(message)


class UsageError(AbCliError):
    """A command was invoked with missing or invalid arguments.

    The command prints its own help before raising this, so it is always
    ``handled``.
    """

    def __init__(self, message: str, command: str | None = None) -> None:
        self.command = command
        super().__init__(message, handled=True)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

Step = Callable[[Options], Awaitable[None]]


def step_name(step: Step) -> str:
    return getattr(step, "__qualname__", None) or getattr(step, "__name__", repr(step))


class Pipeline:
    """An ordered chain of async steps.

    Attributes:
        name: Label used in verbose timing output.
        steps: The steps, in the order they will be awaited.
    """

    def __init__(self, steps: Iterable[Step], name: str = "pipeline") -> None:
        self.name = name
        self.steps: list[Step] = list(steps)

    def __len__(self) -> int:
        return len(self.steps)

    async def run(self, options: Options) -> None:
        """Await every step with *options*; stop at the first failure.

        Args:
            options: The invocation's option bag, shared by all steps.

        Raises:
            Exception: Whatever the failing step raised, unchanged.
        """
        started = time.monotonic()
        for index, step in enumerate(self.steps, start=1):
            log_verbose(f"[{self.name}] step {index}/{len(self.steps)}: {step_name(step)}")
            await step(options)

        log_verbose(
            f"[{self.name}] finished in {format_duration(time.monotonic() - started)}"
        )
