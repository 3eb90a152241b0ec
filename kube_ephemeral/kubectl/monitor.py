"""Resource state monitor - poll ``kubectl get`` until a status predicate holds.

Used when a run must detect completion explicitly instead of relying on
``kubectl logs -f`` returning.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from kube_ephemeral.config.models import (
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
)
from kube_ephemeral.errors import LaunchError
from kube_ephemeral.kubectl.commands import KubectlCommands
from kube_ephemeral.kubectl.retry import RetryBudget, RetryPolicy, pause
from kube_ephemeral.state.models import ClusterResource

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants & predicates
# ---------------------------------------------------------------------------

STATUS_SUCCEEDED: str = "succeeded"
STATUS_ACTIVE: str = "active"

StatusPredicate = Callable[[str], bool]


def succeeded(status: str) -> bool:
    """True once the status text mentions ``succeeded``."""
    return STATUS_SUCCEEDED in status.lower()


def succeeded_or_active(status: str) -> bool:
    """True once the status text mentions ``succeeded`` or ``active``."""
    text = status.lower()
    return STATUS_SUCCEEDED in text or STATUS_ACTIVE in text


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class WaitResult:
    """Outcome of :meth:`StateWaiter.wait_for_state`."""

    final_status: str
    elapsed_seconds: float
    polls: int
    attached: Optional[bool] = None


# ---------------------------------------------------------------------------
# Waiter
# ---------------------------------------------------------------------------


class StateWaiter:
    """Poll a resource's status on a fixed interval.

    On a status containing ``succeeded`` the waiter gives a concurrently
    running log tailer the chance to attach: it waits on the tailer's
    ``attached`` event for at most *handshake_timeout* seconds.
    """

    def __init__(
        self,
        invoker: Any,
        commands: KubectlCommands,
        *,
        policy: Optional[RetryPolicy] = None,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        _sleep_fn: Any = None,
    ) -> None:
        self.invoker = invoker
        self.commands = commands
        self.policy = policy or RetryPolicy(interval=DEFAULT_POLL_INTERVAL)
        self.handshake_timeout = handshake_timeout
        self._sleep_fn = _sleep_fn

    def get_status(
        self,
        resource: ClusterResource,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[str]:
        """Return the ``{..status}`` text of *resource*, or ``None``.

        ``None`` means the status could not be read this time (client
        missing, resource not visible yet); callers treat it as transient.
        """
        try:
            result = self.invoker.invoke(
                self.commands.get_status(resource), cancel=cancel,
            )
        except LaunchError as exc:
            logger.warning("Status poll of %s failed: %s", resource.reference, exc)
            return None

        if result.returncode != 0:
            logger.warning(
                "get %s failed (rc=%d): %s",
                resource.reference,
                result.returncode,
                result.stderr or result.stdout or "(no output)",
            )
            return None
        return result.stdout

    def wait_for_state(
        self,
        resource: ClusterResource,
        predicate: StatusPredicate = succeeded,
        *,
        cancel: Optional[threading.Event] = None,
        attached: Optional[threading.Event] = None,
    ) -> WaitResult:
        """Block until *predicate* holds for the status of *resource*.

        Raises
        ------
        ProcessInterruptedError
            *cancel* was set during a poll or a sleep.
        RetryExhaustedError
            A configured attempt or duration limit was hit.
        """
        start = time.monotonic()
        budget = RetryBudget(self.policy, f"waiting for {resource.reference}")

        while True:
            polls = budget.attempt()
            status = self.get_status(resource, cancel=cancel)

            if status is not None and predicate(status):
                logger.info(
                    "Resource %s reached an accepted state: %s",
                    resource.reference, status,
                )
                handshake = None
                if succeeded(status) and attached is not None:
                    handshake = self._handshake(resource, attached)
                return WaitResult(
                    final_status=status,
                    elapsed_seconds=time.monotonic() - start,
                    polls=polls,
                    attached=handshake,
                )

            logger.debug(
                "Resource %s not done yet (%.0fs elapsed): %s",
                resource.reference, time.monotonic() - start, status,
            )
            pause(self.policy.interval, cancel, self._sleep_fn)

    def _handshake(self, resource: ClusterResource, attached: threading.Event) -> bool:
        if attached.wait(self.handshake_timeout):
            return True
        logger.warning(
            "Log tailer for %s did not attach within %.1fs.",
            resource.reference, self.handshake_timeout,
        )
        return False
