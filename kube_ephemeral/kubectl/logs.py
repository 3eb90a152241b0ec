"""Log streaming - attach to a workload's output once it is ready.

Resource readiness is not visible from the create call, so ``kubectl logs``
itself is the readiness probe: a non-zero exit (container still creating,
pod not scheduled yet) means "try again in a second".
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import IO, Any, Optional

from kube_ephemeral.config.models import (
    DEFAULT_RETRY_INTERVAL,
    StreamInterruptPolicy,
)
from kube_ephemeral.errors import LaunchError, ProcessInterruptedError
from kube_ephemeral.kubectl.commands import KubectlCommands
from kube_ephemeral.kubectl.retry import RetryBudget, RetryPolicy, pause
from kube_ephemeral.state.models import ClusterResource

logger = logging.getLogger(__name__)


class LogStreamer:
    """Retry ``kubectl logs -f`` until one attempt succeeds.

    Parameters
    ----------
    invoker:
        A :class:`~kube_ephemeral.kubectl.invoker.ProcessInvoker` (or fake).
    commands:
        Command-vector builder.
    policy:
        Retry interval and optional limits; unbounded 1-second retries by
        default.
    on_interrupt:
        Whether an interruption is fatal or means "job finished".
    stdout_sink, stderr_sink:
        Where the workload's output goes; ``sys.stdout``/``sys.stderr``
        (looked up at call time) when omitted.
    _sleep_fn:
        Test hook replacing the real sleep.
    """

    def __init__(
        self,
        invoker: Any,
        commands: KubectlCommands,
        *,
        policy: Optional[RetryPolicy] = None,
        on_interrupt: StreamInterruptPolicy = StreamInterruptPolicy.FATAL,
        stdout_sink: Optional[IO[str]] = None,
        stderr_sink: Optional[IO[str]] = None,
        _sleep_fn: Any = None,
    ) -> None:
        self.invoker = invoker
        self.commands = commands
        self.policy = policy or RetryPolicy(interval=DEFAULT_RETRY_INTERVAL)
        self.on_interrupt = on_interrupt
        self.stdout_sink = stdout_sink
        self.stderr_sink = stderr_sink
        self._sleep_fn = _sleep_fn

    def stream_logs(
        self,
        resource: ClusterResource,
        *,
        cancel: Optional[threading.Event] = None,
        attached: Optional[threading.Event] = None,
    ) -> bool:
        """Block until the logs of *resource* have been streamed.

        Returns ``True`` after a successful attachment, ``False`` when an
        interruption was treated as completion.  *attached* is set as soon
        as the first line of output arrives.

        Raises
        ------
        ProcessInterruptedError
            Interrupted and the policy is ``FATAL``.
        RetryExhaustedError
            A configured attempt or duration limit was hit.
        """
        out = self.stdout_sink if self.stdout_sink is not None else sys.stdout
        err = self.stderr_sink if self.stderr_sink is not None else sys.stderr
        cmd = self.commands.logs(resource)
        budget = RetryBudget(self.policy, f"streaming logs of {resource.reference}")
        on_output = attached.set if attached is not None else None

        logger.debug("Kubectl logs loop started for %s.", resource)
        while True:
            attempt = budget.attempt()
            try:
                result = self.invoker.invoke(
                    cmd,
                    stdout_sink=out,
                    stderr_sink=err,
                    cancel=cancel,
                    on_output=on_output,
                )
            except LaunchError as exc:
                logger.warning(
                    "I/O error when trying to stream logs of %s (attempt %d): %s",
                    resource.reference, attempt, exc,
                )
            except ProcessInterruptedError as exc:
                return self._interrupted(resource, exc)
            else:
                if result.returncode == 0:
                    if attached is not None:
                        attached.set()
                    logger.info(
                        "[End of output from kubernetes resource %s]",
                        resource.reference,
                    )
                    return True
                logger.debug(
                    "Logs of %s not available yet (rc=%d, attempt %d): %s",
                    resource.reference, result.returncode, attempt,
                    result.stderr or "(no output)",
                )

            try:
                pause(self.policy.interval, cancel, self._sleep_fn)
            except ProcessInterruptedError as exc:
                return self._interrupted(resource, exc)

    def _interrupted(
        self, resource: ClusterResource, exc: ProcessInterruptedError,
    ) -> bool:
        if self.on_interrupt is StreamInterruptPolicy.TREAT_AS_COMPLETION:
            logger.info(
                "Log streaming of %s stopped; treating it as completion.",
                resource.reference,
            )
            return False
        logger.warning(
            "Interrupted when trying to stream logs of %s. Stopping log streaming.",
            resource.reference,
        )
        raise exc
