"""Tests for readiness detection and the stack lifecycle watcher (abcli.stack).

Watcher tests launch real Python subprocesses standing in for the
log-following process of a docker stack.
"""

from __future__ import annotations

import asyncio
import signal
import sys
import time
from unittest.mock import MagicMock, patch

import pytest

from abcli.stack import (
    MarkerDetector,
    ReadinessDetector,
    SessionState,
    StackBusyError,
    StackError,
    StackExitedError,
    StackTimeoutError,
    StackWatcher,
    WatcherSession,
    config_init_detector,
    db_init_detector,
)

ARM = "initdb.d/01-CreateDBs.sql"
DONE = "mysqld: ready for connections."


def detector() -> MarkerDetector:
    return MarkerDetector([ARM], [DONE])


# ---------------------------------------------------------------------------
# MarkerDetector
# ---------------------------------------------------------------------------


class TestMarkerDetector:
    @pytest.mark.unit
    def test_protocol(self):
        assert isinstance(detector(), ReadinessDetector)

    @pytest.mark.unit
    def test_done_before_arm_is_ignored(self):
        d = detector()
        assert d.feed(f"{DONE}\n") is False
        assert not d.is_armed
        assert not d.is_ready

    @pytest.mark.unit
    def test_arm_then_done(self):
        d = detector()
        assert d.feed(f"running {ARM}\n") is False
        assert d.is_armed
        assert d.feed(f"... {DONE}\n") is True
        assert d.is_ready

    @pytest.mark.unit
    def test_both_in_one_chunk(self):
        d = detector()
        assert d.feed(f"{ARM}\nstuff\n{DONE}\n") is True

    @pytest.mark.unit
    def test_done_before_arm_in_same_chunk(self):
        d = detector()
        assert d.feed(f"{DONE}\n{ARM}\n") is False
        assert d.is_armed
        assert not d.is_ready

    @pytest.mark.unit
    def test_markers_split_across_chunks(self):
        d = detector()
        assert d.feed("log: initdb.d/01-Cre") is False
        assert d.feed("ateDBs.sql\nmysqld: rea") is False
        assert d.is_armed
        assert d.feed("dy for connections.\n") is True

    @pytest.mark.unit
    def test_one_character_chunks(self):
        d = detector()
        stream = f"xx {ARM} yy {DONE} zz"
        results = [d.feed(ch) for ch in stream]
        assert results.index(True) == stream.index(DONE) + len(DONE) - 1

    @pytest.mark.unit
    def test_stays_ready(self):
        d = detector()
        d.feed(f"{ARM}{DONE}")
        assert d.feed("anything") is True

    @pytest.mark.unit
    def test_any_of_several_markers(self):
        d = MarkerDetector(["a1", "a2"], ["d1", "d2"])
        assert d.feed("a2 then d1") is True

    @pytest.mark.unit
    def test_requires_markers(self):
        with pytest.raises(ValueError):
            MarkerDetector([], [DONE])

    @pytest.mark.unit
    def test_messages_printed(self):
        with patch("abcli.stack.print_step") as print_step:
            d = db_init_detector()
            d.feed(f"{ARM}\n")
            d.feed(f"{DONE}\n")
        assert [c.args[0] for c in print_step.call_args_list] == [
            "... initializing tables",
            "... init complete (db)",
        ]

    @pytest.mark.unit
    def test_config_detector_markers(self):
        with patch("abcli.stack.print_step"):
            d = config_init_detector()
            assert d.feed("... config preparation complete\n") is False
            assert d.feed("copying: local.js\n... config preparation complete\n") is True


# ---------------------------------------------------------------------------
# StackWatcher
# ---------------------------------------------------------------------------

READY_SCRIPT = f"""
import time
print("booting")
print("{ARM}")
time.sleep(0.1)
print("{DONE}")
time.sleep(30)
"""

EXIT_SCRIPT = f"""
import sys
print("{ARM}")
sys.exit(3)
"""

SILENT_SCRIPT = """
import time
time.sleep(30)
"""


class TestStackWatcher:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_completes_on_marker_and_terminates_process(self, python_script):
        watcher = StackWatcher(timeout=10, terminate_grace=2)
        session = await watcher.watch("ab", python_script(READY_SCRIPT), detector())

        assert session.state is SessionState.COMPLETED
        assert session.process.returncode is not None
        assert "booting" in session.output
        assert not StackWatcher.is_active("ab")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_exit_before_ready(self, python_script):
        watcher = StackWatcher(timeout=10)
        with pytest.raises(StackExitedError) as excinfo:
            await watcher.watch("ab", python_script(EXIT_SCRIPT), detector())
        assert excinfo.value.returncode == 3
        assert excinfo.value.stack == "ab"
        assert not StackWatcher.is_active("ab")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_timeout_fires_not_before_limit(self, python_script):
        watcher = StackWatcher(timeout=30, terminate_grace=2)
        started = time.monotonic()
        with pytest.raises(StackTimeoutError) as excinfo:
            await watcher.watch("ab", python_script(SILENT_SCRIPT), detector(), timeout=0.5)
        assert time.monotonic() - started >= 0.5
        assert excinfo.value.timeout == 0.5
        assert not StackWatcher.is_active("ab")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_second_watch_on_busy_stack(self, python_script):
        watcher = StackWatcher(terminate_grace=2)
        first = asyncio.create_task(
            watcher.watch("ab", python_script(SILENT_SCRIPT), detector(), timeout=1)
        )
        await asyncio.sleep(0)
        assert StackWatcher.is_active("ab")

        with patch("abcli.stack.asyncio.create_subprocess_exec") as spawn:
            with pytest.raises(StackBusyError):
                await watcher.watch("ab", ["never-run"], detector())
            spawn.assert_not_called()

        with pytest.raises(StackTimeoutError):
            await first

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_other_stack_names_are_independent(self):
        StackWatcher._active.add("ab")
        with pytest.raises(StackError) as excinfo:
            await StackWatcher(timeout=1).watch("other", ["definitely-not-a-binary-xyz"], detector())
        assert not isinstance(excinfo.value, StackBusyError)
        assert not StackWatcher.is_active("other")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_session_reserves_name_until_block_exits(self):
        async with StackWatcher.session("ab"):
            assert StackWatcher.is_active("ab")
            with pytest.raises(StackBusyError):
                async with StackWatcher.session("ab"):
                    pass
            assert StackWatcher.is_active("ab")
        assert not StackWatcher.is_active("ab")

        with pytest.raises(RuntimeError):
            async with StackWatcher.session("ab"):
                raise RuntimeError("deploy failed")
        assert not StackWatcher.is_active("ab")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_watch_refused_inside_held_session(self):
        async with StackWatcher.session("ab"):
            with patch("abcli.stack.asyncio.create_subprocess_exec") as spawn:
                with pytest.raises(StackBusyError):
                    await StackWatcher(timeout=1).watch("ab", ["never-run"], detector())
            spawn.assert_not_called()


# ---------------------------------------------------------------------------
# WatcherSession
# ---------------------------------------------------------------------------


async def spawn(argv: list[str]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        *argv, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.STDOUT
    )


class TestWatcherSession:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_cancel_terminates_process(self, python_script):
        process = await spawn(python_script(SILENT_SCRIPT))
        session = WatcherSession("ab", detector(), process, timeout=30, terminate_grace=2)
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.2)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.state is SessionState.CANCELLED
        assert process.returncode is not None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_armed_state_reported(self, python_script):
        process = await spawn(python_script(EXIT_SCRIPT))
        session = WatcherSession("ab", detector(), process, timeout=10)
        with pytest.raises(StackExitedError):
            await session.run()
        assert session.detector.is_armed
        assert session.state is SessionState.EXITED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_exited_process_not_signalled(self):
        process = MagicMock()
        process.returncode = 0
        session = WatcherSession("ab", detector(), process, timeout=1)
        await session.terminate()
        process.terminate.assert_not_called()
        process.kill.assert_not_called()

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    async def test_kill_after_grace(self, python_script):
        argv = python_script(
            """
            import signal, time
            signal.signal(signal.SIGTERM, signal.SIG_IGN)
            print("ignoring")
            time.sleep(30)
            """
        )
        process = await spawn(argv)
        await process.stdout.readline()

        session = WatcherSession("ab", detector(), process, timeout=1, terminate_grace=0.3)
        with patch("abcli.stack.print_warning") as warn:
            await session.terminate()

        warn.assert_called_once()
        assert process.returncode == -signal.SIGKILL
