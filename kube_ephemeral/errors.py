"""Error taxonomy for a lifecycle run.

Everything raised on purpose by the controller derives from
:class:`LifecycleError` so callers can map failures to exit codes in one
place.  Only :class:`ManifestWriteError` is non-fatal: the controller logs it
and carries on with no manifest handle.
"""

from __future__ import annotations

from typing import Optional, Sequence


class LifecycleError(Exception):
    """Base class for lifecycle failures."""


class ManifestWriteError(LifecycleError):
    """The rendered manifest could not be written to disk."""


class LaunchError(LifecycleError):
    """The client executable could not be started."""

    def __init__(self, command: Sequence[str], reason: str) -> None:
        self.command = list(command)
        self.reason = reason
        super().__init__(f"Could not launch {command[0] if command else '?'}: {reason}")


class ProcessInterruptedError(LifecycleError):
    """The run was cancelled while waiting on a client process or a retry sleep."""


class NonZeroExitError(LifecycleError):
    """A client call whose exit code matters returned non-zero."""

    def __init__(
        self,
        action: str,
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.action = action
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        output = stdout or stderr or "(no output)"
        super().__init__(
            f"Kubernetes resources {action} has failed. Exit code {returncode}. "
            f"kubectl output is: {output}"
        )


class ParseError(LifecycleError):
    """Client output did not describe the created resources."""

    def __init__(self, message: str, output: Optional[str] = None) -> None:
        self.output = output
        super().__init__(message)


class NoResourcesCreatedError(LifecycleError):
    """Nothing was created that logs could be streamed from."""


class RetryExhaustedError(LifecycleError):
    """A retry loop hit its configured attempt or duration limit."""

    def __init__(self, what: str, attempts: int, elapsed: float) -> None:
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"Gave up {what} after {attempts} attempt(s) in {elapsed:.1f}s"
        )


class InvalidOptionError(LifecycleError):
    """An execution option could not be interpreted."""
