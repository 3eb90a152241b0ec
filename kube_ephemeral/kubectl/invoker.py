"""Subprocess wrapper for ``kubectl`` calls.

Every client call in the package goes through :class:`ProcessInvoker` so the
controller can be driven by a scripted fake in tests.  The invoker never
interprets the exit code: that is the caller's job.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from typing import IO, Callable, Iterable, List, MutableSequence, Optional, Sequence

from kube_ephemeral.config.models import ClientSettings
from kube_ephemeral.errors import LaunchError, ProcessInterruptedError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Seconds between cancellation checks while a child is running.
WAIT_SLICE: float = 0.1

#: Seconds granted to a terminated child before it is killed.
TERMINATE_GRACE: float = 5.0

#: Trailing lines kept for the result when output is forwarded to a sink.
LIVE_TAIL_LINES: int = 100


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class ProcessResult:
    """Outcome of one client invocation."""

    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Whatever the client said, preferring stdout."""
        return self.stdout or self.stderr


# ---------------------------------------------------------------------------
# Invoker
# ---------------------------------------------------------------------------


def _join_lines(lines: Iterable[str]) -> str:
    return " ".join(line.strip() for line in lines if line.strip())


class ProcessInvoker:
    """Run a command vector and collect its output.

    Parameters
    ----------
    settings:
        Client settings; their :meth:`~ClientSettings.environment` is passed
        to every child.
    wait_slice:
        Granularity of cancellation checks.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        wait_slice: float = WAIT_SLICE,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.wait_slice = wait_slice

    def invoke(
        self,
        command: Sequence[str],
        *,
        stdout_sink: Optional[IO[str]] = None,
        stderr_sink: Optional[IO[str]] = None,
        cancel: Optional[threading.Event] = None,
        on_output: Optional[Callable[[], None]] = None,
    ) -> ProcessResult:
        """Run *command* and block until it exits.

        Without sinks, stdout and stderr are captured and joined with single
        spaces.  With *stdout_sink*, stdout lines are written there as they
        arrive and only the last :data:`LIVE_TAIL_LINES` are kept for the
        result.  stderr lines reach *stderr_sink* live once the first stdout
        line has been seen; before that they are held back and released on
        exit 0 or interruption, so a failed attempt stays silent.
        *on_output* fires once, on the first stdout line.

        Raises
        ------
        LaunchError
            The executable could not be started.
        ProcessInterruptedError
            *cancel* was set (or Ctrl-C arrived) while waiting; the child is
            terminated first.
        """
        cmd = [str(part) for part in command]
        logger.debug("Running: %s", " ".join(cmd))

        if cancel is not None and cancel.is_set():
            raise ProcessInterruptedError(f"Cancelled before running {cmd[0]}")

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=self.settings.environment(),
            )
        except OSError as exc:
            raise LaunchError(cmd, exc.strerror or str(exc)) from exc

        live = stdout_sink is not None
        out_lines: MutableSequence[str] = deque(maxlen=LIVE_TAIL_LINES) if live else []
        err_lines: MutableSequence[str] = deque(maxlen=LIVE_TAIL_LINES) if live else []
        held: List[str] = []
        err_lock = threading.Lock()
        first_line = threading.Event()

        def _release_stderr() -> None:
            # caller holds err_lock
            if stderr_sink is not None and held:
                stderr_sink.writelines(held)
                stderr_sink.flush()
                del held[:]

        def _pump_stdout() -> None:
            assert proc.stdout is not None
            for line in proc.stdout:
                out_lines.append(line.rstrip("\r\n"))
                if stdout_sink is not None:
                    stdout_sink.write(line)
                    stdout_sink.flush()
                if not first_line.is_set():
                    with err_lock:
                        first_line.set()
                        _release_stderr()
                    if on_output is not None:
                        on_output()

        def _pump_stderr() -> None:
            assert proc.stderr is not None
            for line in proc.stderr:
                err_lines.append(line.rstrip("\r\n"))
                if stderr_sink is None:
                    continue
                with err_lock:
                    held.append(line if line.endswith("\n") else line + "\n")
                    if first_line.is_set():
                        _release_stderr()

        readers = [
            threading.Thread(target=_pump_stdout, daemon=True),
            threading.Thread(target=_pump_stderr, daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            returncode = self._wait(proc, cancel)
        except ProcessInterruptedError:
            self._terminate(proc)
            for reader in readers:
                reader.join(timeout=TERMINATE_GRACE)
            with err_lock:
                _release_stderr()
            raise

        for reader in readers:
            reader.join()

        if returncode == 0:
            with err_lock:
                _release_stderr()

        return ProcessResult(
            command=" ".join(cmd),
            returncode=returncode,
            stdout=_join_lines(out_lines),
            stderr=_join_lines(err_lines),
        )

    def _wait(self, proc: subprocess.Popen, cancel: Optional[threading.Event]) -> int:
        try:
            while True:
                if cancel is not None and cancel.is_set():
                    raise ProcessInterruptedError(
                        f"Interrupted while waiting for {proc.args[0]}"
                    )
                try:
                    return proc.wait(timeout=self.wait_slice)
                except subprocess.TimeoutExpired:
                    continue
        except KeyboardInterrupt as exc:
            raise ProcessInterruptedError(
                f"Interrupted while waiting for {proc.args[0]}"
            ) from exc

    @staticmethod
    def _terminate(proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            return
        logger.debug("Terminating pid %d", proc.pid)
        proc.terminate()
        try:
            proc.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
