"""Resource records and the per-run resource registry."""

from kube_ephemeral.state.models import (
    LOG_STREAMABLE_KINDS,
    ClusterResource,
    ExecutionMode,
    LifecycleState,
    is_log_streamable,
)
from kube_ephemeral.state.registry import (
    ResourceRegistry,
    parse_created,
    parse_one,
)

__all__ = [
    "LOG_STREAMABLE_KINDS",
    "ClusterResource",
    "ExecutionMode",
    "LifecycleState",
    "ResourceRegistry",
    "is_log_streamable",
    "parse_created",
    "parse_one",
]
