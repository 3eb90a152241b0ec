"""Fixed-interval retry bookkeeping shared by the log and status loops.

Both loops retry forever by default.  :class:`RetryPolicy` lets a caller cap
the number of attempts or the wall-clock time spent, so a client that never
becomes ready cannot block a run indefinitely.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from kube_ephemeral.errors import ProcessInterruptedError, RetryExhaustedError


@dataclass(frozen=True)
class RetryPolicy:
    """Interval and optional limits for a retry loop."""

    interval: float
    max_attempts: Optional[int] = None
    max_duration: Optional[float] = None


class RetryBudget:
    """Counts attempts against a :class:`RetryPolicy`.

    Call :meth:`attempt` before every try; it raises
    :class:`RetryExhaustedError` once a limit has been passed.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        what: str,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy
        self.what = what
        self._clock = clock
        self._start = clock()
        self.attempts = 0

    @property
    def elapsed(self) -> float:
        return self._clock() - self._start

    def attempt(self) -> int:
        policy = self.policy
        if policy.max_attempts is not None and self.attempts >= policy.max_attempts:
            raise RetryExhaustedError(self.what, self.attempts, self.elapsed)
        if (
            policy.max_duration is not None
            and self.attempts > 0
            and self.elapsed >= policy.max_duration
        ):
            raise RetryExhaustedError(self.what, self.attempts, self.elapsed)
        self.attempts += 1
        return self.attempts


def pause(
    seconds: float,
    cancel: Optional[threading.Event] = None,
    sleep_fn: Any = None,
) -> None:
    """Sleep *seconds*, waking early when *cancel* is set.

    *sleep_fn* replaces the real sleep (tests pass a no-op).

    Raises
    ------
    ProcessInterruptedError
        If *cancel* is set once the pause ends.
    """
    if sleep_fn is not None:
        sleep_fn(seconds)
    elif cancel is not None:
        cancel.wait(seconds)
    else:
        time.sleep(seconds)
    if cancel is not None and cancel.is_set():
        raise ProcessInterruptedError("Interrupted while waiting to retry")
