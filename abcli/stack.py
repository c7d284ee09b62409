"""Stack lifecycle watching.

A stack operation (initialising the config volume, creating the database
tables...) is started with ``docker stack deploy`` and then observed through a
log-following subprocess.  The operation is complete once a readiness marker
appears in that subprocess's merged stdout/stderr stream.

Detection is two-phase: an *arming* marker proves the stack reached the stage
we care about, and only after it has been seen does the *terminal* marker
count.  Markers are plain substrings and may be split across chunks.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import enum
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

from abcli.pipeline import AbCliError
from abcli.utils import console, is_verbose, log_verbose, print_step, print_warning

READ_CHUNK = 4096
_OUTPUT_TAIL = 2000

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class StackError(AbCliError):
    """A stack operation failed."""

    def __init__(self, message: str, stack: str) -> None:
        self.stack = stack
        super().__init__(message)


class StackExitedError(StackError):
    """The watched process ended before the stack reported readiness."""

    def __init__(self, stack: str, returncode: int | None, output: str = "") -> None:
        self.returncode = returncode
        self.output = output
        message = f"stack {stack}: log process exited with code {returncode} before the stack was ready"
        if output:
            message += f"\n{output}"
        super().__init__(message, stack)


class StackTimeoutError(StackError):
    """No readiness marker appeared within the timeout."""

    def __init__(self, stack: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"stack {stack}: not ready after {timeout:g}s", stack)


class StackBusyError(StackError):
    """A watcher session is already active for this stack name."""

    def __init__(self, stack: str) -> None:
        super().__init__(f"stack {stack} is already being watched", stack)


class StackDeployError(StackError):
    """``docker stack deploy`` failed."""

    def __init__(self, stack: str, stderr: str) -> None:
        self.stderr = stderr
        super().__init__(f"unable to deploy stack {stack}: {stderr}", stack)


# ---------------------------------------------------------------------------
# Readiness detection
# ---------------------------------------------------------------------------


@runtime_checkable
class ReadinessDetector(Protocol):
    """Decides from streamed output whether a stack is ready."""

    def feed(self, chunk: str) -> bool:
        """Consume the next chunk of output; return ``True`` once ready."""
        ...

    @property
    def is_ready(self) -> bool: ...

    @property
    def is_armed(self) -> bool: ...


class MarkerDetector:
    """Two-phase substring detector.

    The detector becomes *armed* when any of *arm_markers* appears, and
    *ready* when any of *done_markers* appears after the arming marker.
    The end of each chunk is carried over so markers split across chunk
    boundaries are still found.

    Args:
        arm_markers: Substrings that arm the detector.
        done_markers: Substrings that complete it once armed.
        armed_message: Printed when the detector arms.
        ready_message: Printed when the detector becomes ready.
    """

    def __init__(
        self,
        arm_markers: Sequence[str],
        done_markers: Sequence[str],
        armed_message: str | None = None,
        ready_message: str | None = None,
    ) -> None:
        if not arm_markers or not done_markers:
            raise ValueError("MarkerDetector needs at least one arm and one done marker")
        self.arm_markers = tuple(arm_markers)
        self.done_markers = tuple(done_markers)
        self.armed_message = armed_message
        self.ready_message = ready_message
        self._armed = False
        self._ready = False
        self._carry = ""

    @property
    def is_armed(self) -> bool:
        return self._armed

    @property
    def is_ready(self) -> bool:
        return self._ready

    def feed(self, chunk: str) -> bool:
        if self._ready:
            return True

        text = self._carry + chunk
        start = 0

        if not self._armed:
            found = _earliest(text, self.arm_markers)
            if found is None:
                self._carry = _tail(text, self.arm_markers)
                return False
            position, marker = found
            self._armed = True
            start = position + len(marker)
            if self.armed_message:
                print_step(self.armed_message)

        remaining = text[start:]
        if _earliest(remaining, self.done_markers) is not None:
            self._ready = True
            self._carry = ""
            if self.ready_message:
                print_step(self.ready_message)
            return True

        self._carry = _tail(remaining, self.done_markers)
        return False


def _earliest(text: str, markers: Sequence[str]) -> tuple[int, str] | None:
    best: tuple[int, str] | None = None
    for marker in markers:
        position = text.find(marker)
        if position != -1 and (best is None or position < best[0]):
            best = (position, marker)
    return best


def _tail(text: str, markers: Sequence[str]) -> str:
    keep = max(len(m) for m in markers) - 1
    return text[-keep:] if keep > 0 else ""


def config_init_detector() -> MarkerDetector:
    """Detector for the config-volume initialisation stack."""
    return MarkerDetector(
        arm_markers=["copying: "],
        done_markers=["... config preparation complete"],
        ready_message="... init complete (config)",
    )


def db_init_detector() -> MarkerDetector:
    """Detector for the database initialisation stack."""
    return MarkerDetector(
        arm_markers=["initdb.d/01-CreateDBs.sql"],
        done_markers=["mysqld: ready for connections."],
        armed_message="... initializing tables",
        ready_message="... init complete (db)",
    )


# ---------------------------------------------------------------------------
# Watcher session
# ---------------------------------------------------------------------------


class SessionState(enum.Enum):
    STARTING = "starting"
    SCANNING = "scanning"
    ARMED = "armed"
    COMPLETED = "completed"
    EXITED = "exited"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class WatcherSession:
    """One observation of one stack's log process.

    Attributes:
        stack: Stack name.
        detector: Readiness detector fed with the process output.
        process: The log-following subprocess.
        timeout: Seconds to wait for readiness.
        state: Current ``SessionState``.
        bytes_read: Number of output bytes consumed so far.
        output: The most recent output, kept for error reports.
    """

    def __init__(
        self,
        stack: str,
        detector: ReadinessDetector,
        process: asyncio.subprocess.Process,
        timeout: float,
        terminate_grace: float = 5.0,
    ) -> None:
        self.stack = stack
        self.detector = detector
        self.process = process
        self.timeout = timeout
        self.terminate_grace = terminate_grace
        self.state = SessionState.STARTING
        self.bytes_read = 0
        self.output = ""

    async def run(self) -> None:
        """Scan until ready, exit, timeout or cancellation.

        Raises:
            StackTimeoutError: *timeout* elapsed first; the process is terminated.
            StackExitedError: The process ended before readiness.
            asyncio.CancelledError: Propagated after terminating the process.
        """
        self.state = SessionState.SCANNING
        try:
            ready = await asyncio.wait_for(self._scan(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.state = SessionState.TIMED_OUT
            await self.terminate()
            raise StackTimeoutError(self.stack, self.timeout) from None
        except asyncio.CancelledError:
            self.state = SessionState.CANCELLED
            await self.terminate()
            raise

        if ready:
            self.state = SessionState.COMPLETED
            await self.terminate()
            return

        self.state = SessionState.EXITED
        raise StackExitedError(self.stack, self.process.returncode, self.output.strip())

    async def _scan(self) -> bool:
        reader = self.process.stdout
        if reader is None:
            raise StackError(f"stack {self.stack}: log process has no output stream", self.stack)

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await reader.read(READ_CHUNK)
            final = not data
            text = decoder.decode(data, final=final)
            self.bytes_read += len(data)
            if text and self._consume(text):
                return True
            if final:
                await self.process.wait()
                return False

    def _consume(self, text: str) -> bool:
        self.output = (self.output + text)[-_OUTPUT_TAIL:]
        if is_verbose():
            console.print(text, end="", markup=False, highlight=False)
        ready = self.detector.feed(text)
        if self.state is SessionState.SCANNING and self.detector.is_armed:
            self.state = SessionState.ARMED
        return ready

    async def terminate(self) -> None:
        """Ask a still-running process to exit.

        A process that already exited is left alone.  One that ignores the
        terminate request for ``terminate_grace`` seconds is killed.
        """
        if self.process.returncode is not None:
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(self.process.wait(), timeout=self.terminate_grace)
        except asyncio.TimeoutError:
            print_warning(f"log process for {self.stack} ignored terminate; killing it")
            try:
                self.process.kill()
            except ProcessLookupError:
                return
            await self.process.wait()


# ---------------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------------


class StackWatcher:
    """Launches log processes and watches them, one session per stack name."""

    _active: ClassVar[set[str]] = set()

    def __init__(self, timeout: float = 600.0, terminate_grace: float = 5.0) -> None:
        self.timeout = timeout
        self.terminate_grace = terminate_grace

    @classmethod
    def is_active(cls, stack: str) -> bool:
        return stack in cls._active

    @classmethod
    @contextlib.asynccontextmanager
    async def session(cls, stack: str) -> AsyncIterator[None]:
        """Reserve *stack* for the duration of the block.

        Wrap every docker command touching the stack in this block, so a second
        operation on a busy stack fails before it issues any of them.

        Raises:
            StackBusyError: *stack* is already reserved.
        """
        if stack in cls._active:
            raise StackBusyError(stack)
        cls._active.add(stack)
        try:
            yield
        finally:
            cls._active.discard(stack)

    async def watch(
        self,
        stack: str,
        argv: Sequence[str],
        detector: ReadinessDetector,
        timeout: float | None = None,
        cwd: str | Path | None = None,
    ) -> WatcherSession:
        """Reserve *stack*, run *argv* and wait until *detector* reports readiness.

        Args:
            stack: Stack name; only one session per name may be active.
            argv: Command printing the stack's logs, e.g. ``["node", "logs.js"]``.
            detector: Fed with the merged stdout/stderr output.
            timeout: Seconds to wait (defaults to the watcher's timeout).
            cwd: Working directory of the subprocess.

        Returns:
            The completed session.

        Raises:
            StackBusyError: *stack* is already being watched.  Nothing is launched.
            StackError: The subprocess could not be started.
            StackExitedError: The subprocess ended before readiness.
            StackTimeoutError: Readiness did not occur within *timeout*.
        """
        async with self.session(stack):
            return await self.follow(stack, argv, detector, timeout=timeout, cwd=cwd)

    async def follow(
        self,
        stack: str,
        argv: Sequence[str],
        detector: ReadinessDetector,
        timeout: float | None = None,
        cwd: str | Path | None = None,
    ) -> WatcherSession:
        """Like ``watch`` for a caller already holding ``session(stack)``."""
        log_verbose(f"watching {stack}: {' '.join(argv)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(cwd) if cwd else None,
            )
        except OSError as exc:
            raise StackError(
                f"unable to start log process {' '.join(argv)}: {exc}", stack
            ) from exc

        session = WatcherSession(
            stack,
            detector,
            process,
            timeout=self.timeout if timeout is None else timeout,
            terminate_grace=self.terminate_grace,
        )
        await session.run()
        return session
