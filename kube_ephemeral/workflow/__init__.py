"""Lifecycle orchestration (create, stream, wait, delete)."""

from kube_ephemeral.workflow.lifecycle import (
    EXIT_CONFIG,
    EXIT_CREATE_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_NO_RESOURCES,
    EXIT_STREAM_FAILURE,
    EXIT_SUCCESS,
    EXIT_TOOLCHAIN,
    AtexitTerminationHook,
    ExecutionContext,
    LifecycleController,
    exit_code_for,
    install_signal_handlers,
    parse_resource_reference,
    restore_signal_handlers,
    run_lifecycle_workflow,
    select_resource,
)

__all__ = [
    "EXIT_CONFIG",
    "EXIT_CREATE_FAILURE",
    "EXIT_INTERRUPTED",
    "EXIT_NO_RESOURCES",
    "EXIT_STREAM_FAILURE",
    "EXIT_SUCCESS",
    "EXIT_TOOLCHAIN",
    "AtexitTerminationHook",
    "ExecutionContext",
    "LifecycleController",
    "exit_code_for",
    "install_signal_handlers",
    "parse_resource_reference",
    "restore_signal_handlers",
    "run_lifecycle_workflow",
    "select_resource",
]
