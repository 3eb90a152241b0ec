"""Pydantic models for client settings and per-run execution options.

Defines the data structures for:
- :class:`ClientSettings` - where ``kubectl`` lives and which kubeconfig it uses
- :class:`ExecutionOptions` - generic-information switches controlling one run
- :class:`StreamInterruptPolicy` - what an interrupted log stream means
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from kube_ephemeral.state.models import ExecutionMode

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_KUBECTL_COMMAND: str = "/usr/local/bin/kubectl"
DEFAULT_KUBECTL_CONFIG: str = "~/.kube/config"
DEFAULT_KUBECTL_KEY: str = "~/.kube/config/id_rsa"

#: Seconds between ``kubectl logs`` attempts.
DEFAULT_RETRY_INTERVAL: float = 1.0

#: Seconds between ``kubectl get`` status polls.
DEFAULT_POLL_INTERVAL: float = 5.0

#: Upper bound on the wait for the log tailer to attach after success.
DEFAULT_HANDSHAKE_TIMEOUT: float = 3.0


class StreamInterruptPolicy(str, Enum):
    """How an interruption during log streaming is interpreted.

    ``FATAL`` aborts the run: cleanup happens and the interruption is
    surfaced.  ``TREAT_AS_COMPLETION`` reads it as "the job finished, stop
    tailing" and the run continues to the delete step.
    """

    FATAL = "fatal"
    TREAT_AS_COMPLETION = "treat_as_completion"


# ---------------------------------------------------------------------------
# ClientSettings
# ---------------------------------------------------------------------------


class ClientSettings(BaseModel):
    """``kubectl`` location and credentials paths.

    Loaded from YAML by :func:`kube_ephemeral.config.loader.load_client_settings`::

        kubectl:
          command: /usr/local/bin/kubectl
          config: ~/.kube/config
          key: ~/.kube/config/id_rsa
    """

    command: str = Field(default=DEFAULT_KUBECTL_COMMAND)
    config: str = Field(default=DEFAULT_KUBECTL_CONFIG)
    key: str = Field(default=DEFAULT_KUBECTL_KEY)

    @model_validator(mode="before")
    @classmethod
    def _drop_empty(cls, data: Any) -> Any:
        """Null/blank values fall back to the defaults."""
        if isinstance(data, dict):
            return {k: str(v) for k, v in data.items() if v not in (None, "")}
        return data

    @property
    def kubeconfig_path(self) -> Path:
        return Path(self.config).expanduser()

    def environment(self) -> Dict[str, str]:
        """Environment for client subprocesses (``KUBECONFIG`` injected)."""
        env = {**os.environ}
        env["KUBECONFIG"] = str(self.kubeconfig_path)
        return env


# ---------------------------------------------------------------------------
# ExecutionOptions
# ---------------------------------------------------------------------------


def _parse_bool(value: Any) -> bool:
    """Only a case-insensitive ``"true"`` is true, anything else is false."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() == "true"


class ExecutionOptions(BaseModel):
    """Switches read from the task's generic information.

    Absent keys take the defaults below.  Build from a raw string mapping
    with :func:`kube_ephemeral.config.loader.options_from_generic_info`.
    """

    model_config = ConfigDict(frozen=True)

    create_only: bool = False
    delete_only: bool = False
    stream_logs: bool = True
    resource_to_stream: Optional[str] = None
    wait_for_completion: bool = False
    accept_active: bool = False
    on_stream_interrupt: StreamInterruptPolicy = StreamInterruptPolicy.FATAL
    lowercase_names: bool = False
    retry_interval: float = Field(default=DEFAULT_RETRY_INTERVAL, ge=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, ge=0)
    handshake_timeout: float = Field(default=DEFAULT_HANDSHAKE_TIMEOUT, ge=0)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    max_duration: Optional[float] = Field(default=None, gt=0)

    @field_validator(
        "create_only",
        "delete_only",
        "stream_logs",
        "wait_for_completion",
        "accept_active",
        "lowercase_names",
        mode="before",
    )
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        return _parse_bool(value)

    @field_validator(
        "resource_to_stream", "max_attempts", "max_duration", mode="before"
    )
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("on_stream_interrupt", mode="before")
    @classmethod
    def _coerce_policy(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value

    @property
    def mode(self) -> ExecutionMode:
        """Execution mode; ``create_only`` wins when both flags are set."""
        if self.create_only:
            return ExecutionMode.CREATE_ONLY
        if self.delete_only:
            return ExecutionMode.DELETE_ONLY
        return ExecutionMode.FULL_CYCLE
