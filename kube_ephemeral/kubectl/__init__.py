"""kubectl invocation, log streaming and status monitoring."""

from kube_ephemeral.kubectl.commands import (
    UNKNOWN_VERSION,
    KubectlCommands,
    client_version,
)
from kube_ephemeral.kubectl.invoker import ProcessInvoker, ProcessResult
from kube_ephemeral.kubectl.logs import LogStreamer
from kube_ephemeral.kubectl.monitor import (
    STATUS_ACTIVE,
    STATUS_SUCCEEDED,
    StateWaiter,
    WaitResult,
    succeeded,
    succeeded_or_active,
)
from kube_ephemeral.kubectl.retry import RetryBudget, RetryPolicy, pause

__all__ = [
    "STATUS_ACTIVE",
    "STATUS_SUCCEEDED",
    "UNKNOWN_VERSION",
    "KubectlCommands",
    "LogStreamer",
    "ProcessInvoker",
    "ProcessResult",
    "RetryBudget",
    "RetryPolicy",
    "StateWaiter",
    "WaitResult",
    "client_version",
    "pause",
    "succeeded",
    "succeeded_or_active",
]
