"""Resource record, execution mode and lifecycle state models.

A :class:`ClusterResource` is what the client reports back after a
successful ``kubectl create``::

    {"kind": "Job", "metadata": {"name": "pi", "namespace": "default"}}

becomes ``ClusterResource(kind="job", name="pi", namespace="default")``.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Kinds ``kubectl logs`` can attach to (compared lower-case).
LOG_STREAMABLE_KINDS: FrozenSet[str] = frozenset({"job", "pod", "deployment"})


# ---------------------------------------------------------------------------
# ExecutionMode
# ---------------------------------------------------------------------------


class ExecutionMode(str, Enum):
    """High-level behaviour selected once per run."""

    CREATE_ONLY = "CREATE_ONLY"
    DELETE_ONLY = "DELETE_ONLY"
    FULL_CYCLE = "FULL_CYCLE"


# ---------------------------------------------------------------------------
# LifecycleState
# ---------------------------------------------------------------------------


class LifecycleState(str, Enum):
    """Controller states.  ``FAILED`` is reachable from any state."""

    IDLE = "IDLE"
    MANIFEST_WRITTEN = "MANIFEST_WRITTEN"
    CREATED = "CREATED"
    STREAMING = "STREAMING"
    DELETED = "DELETED"
    DONE = "DONE"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# ClusterResource
# ---------------------------------------------------------------------------


class ClusterResource(BaseModel):
    """A Kubernetes object created during the current run.

    Attributes:
        kind: Lower-cased resource kind, e.g. ``job``.
        name: ``metadata.name`` as returned by the client.
        namespace: ``metadata.namespace`` as returned by the client.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    name: str
    namespace: str

    @field_validator("kind")
    @classmethod
    def _lower_kind(cls, value: str) -> str:
        return value.lower()

    @property
    def reference(self) -> str:
        """``kind/name`` form accepted by ``kubectl logs`` and ``kubectl get``."""
        return f"{self.kind}/{self.name}"

    def is_log_streamable(self) -> bool:
        """True if ``kubectl logs`` can be run against this kind."""
        return is_log_streamable(self.kind)

    def __str__(self) -> str:
        return f"{self.namespace}/{self.kind}/{self.name}"


def is_log_streamable(kind: str) -> bool:
    """Case-insensitive membership test against :data:`LOG_STREAMABLE_KINDS`."""
    return kind.lower() in LOG_STREAMABLE_KINDS
