"""Lifecycle controller for ephemeral Kubernetes resources.

Implements the per-run state machine::

    IDLE → MANIFEST_WRITTEN → CREATED → (STREAMING)? → DELETED → DONE
                                                     ↘ FAILED (from any state)

Modes:

* ``CREATE_ONLY`` - write manifest, create, leave the resources running.
* ``DELETE_ONLY`` - delete whatever the manifest describes.
* ``FULL_CYCLE``  - create, stream logs and/or wait for completion, delete.

Every exit path funnels through :meth:`LifecycleController.cleanup`, which
is idempotent: the ``kubectl delete`` and the manifest removal happen at
most once per run, however many times it is called.
"""

from __future__ import annotations

import atexit
import functools
import logging
import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Mapping, Optional

from kube_ephemeral.config.loader import flatten_bindings, options_from_generic_info
from kube_ephemeral.config.models import (
    ClientSettings,
    ExecutionOptions,
    StreamInterruptPolicy,
)
from kube_ephemeral.errors import (
    InvalidOptionError,
    LaunchError,
    LifecycleError,
    ManifestWriteError,
    NoResourcesCreatedError,
    NonZeroExitError,
    ProcessInterruptedError,
    RetryExhaustedError,
)
from kube_ephemeral.kubectl.commands import KubectlCommands
from kube_ephemeral.kubectl.invoker import ProcessInvoker
from kube_ephemeral.kubectl.logs import LogStreamer
from kube_ephemeral.kubectl.monitor import StateWaiter, WaitResult, succeeded, succeeded_or_active
from kube_ephemeral.kubectl.retry import RetryPolicy
from kube_ephemeral.render.renderer import (
    manifest_path,
    remove_manifest,
    render,
    write_manifest,
)
from kube_ephemeral.state.models import (
    ClusterResource,
    ExecutionMode,
    LifecycleState,
)
from kube_ephemeral.state.registry import ResourceRegistry, parse_created

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CREATE_FAILURE = 1
EXIT_STREAM_FAILURE = 2
EXIT_NO_RESOURCES = 3
EXIT_TOOLCHAIN = 4
EXIT_CONFIG = 5
EXIT_INTERRUPTED = 130

#: Seconds to wait for the background log tailer to exit once stopped.
TAILER_JOIN_TIMEOUT: float = 10.0


# ---------------------------------------------------------------------------
# Execution context
# ---------------------------------------------------------------------------


@dataclass
class ExecutionContext:
    """Everything one run needs, built at its start and threaded through it.

    Nothing here outlives the run; two runs never share a context.
    """

    run_id: str
    manifest_body: str
    variables: Dict[str, str]
    options: ExecutionOptions
    manifest_path: Path
    manifest_file: Optional[Path] = None
    registry: ResourceRegistry = field(default_factory=ResourceRegistry)
    state: LifecycleState = LifecycleState.IDLE
    history: List[LifecycleState] = field(default_factory=list)
    target: Optional[ClusterResource] = None
    cancel: threading.Event = field(default_factory=threading.Event)
    resources_deleted: bool = False
    wait_result: Optional[WaitResult] = None

    @property
    def mode(self) -> ExecutionMode:
        return self.options.mode

    @classmethod
    def create(
        cls,
        manifest_body: str,
        variables: Mapping[str, str],
        options: ExecutionOptions,
        *,
        work_dir: Optional[Path] = None,
    ) -> "ExecutionContext":
        return cls(
            run_id=datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f"),
            manifest_body=manifest_body,
            variables=dict(variables),
            options=options,
            manifest_path=manifest_path(work_dir),
            history=[LifecycleState.IDLE],
        )


# ---------------------------------------------------------------------------
# Termination hook
# ---------------------------------------------------------------------------


class AtexitTerminationHook:
    """Run cleanup callbacks if the interpreter exits mid-run.

    The controller registers one callback per run and unregisters it when
    the run returns or fails, so cleanup never fires twice.
    """

    def register(self, callback: Callable[[], None]) -> None:
        atexit.register(callback)

    def unregister(self, callback: Callable[[], None]) -> None:
        atexit.unregister(callback)


# ---------------------------------------------------------------------------
# Resource selection
# ---------------------------------------------------------------------------


def parse_resource_reference(reference: str) -> ClusterResource:
    """Parse a ``namespace/kind/name`` override."""
    parts = reference.strip().split("/")
    if len(parts) != 3 or not all(parts):
        raise InvalidOptionError(
            f"RESOURCE_TO_STREAM must be namespace/kind/name, got {reference!r}"
        )
    namespace, kind, name = parts
    return ClusterResource(kind=kind, name=name, namespace=namespace)


def select_resource(
    registry: ResourceRegistry,
    resource_to_stream: Optional[str] = None,
) -> ClusterResource:
    """Pick the resource whose logs (or status) the run follows.

    1. Nothing created → :class:`NoResourcesCreatedError`.
    2. An explicit ``namespace/kind/name`` is used verbatim, unchecked.
    3. Otherwise the only log-streamable resource, or the first one in
       creation order when there are several.
    """
    if len(registry) == 0:
        raise NoResourcesCreatedError(
            "No k8s resources were created; cannot stream logs."
        )

    if resource_to_stream:
        logger.info(
            "User has specified a resource to stream, will stream this one: %s",
            resource_to_stream,
        )
        return parse_resource_reference(resource_to_stream)

    streamable = registry.log_streamable()
    logger.info("Found %d log-streamable resources.", len(streamable))
    if not streamable:
        raise NoResourcesCreatedError(
            f"None of the {len(registry)} created resource(s) is log-streamable."
        )
    if len(streamable) > 1:
        logger.info(
            "No resource to stream specified and %d are streamable; selecting first one: %s",
            len(streamable), streamable[0].reference,
        )
    else:
        logger.info("Selecting the only streamable resource: %s", streamable[0].reference)
    return streamable[0]


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class LifecycleController:
    """Drive one or more runs through the lifecycle state machine.

    Parameters
    ----------
    invoker:
        Client process runner.  Defaults to a real :class:`ProcessInvoker`.
    settings:
        Client settings used to build the default invoker and commands.
    termination_hook:
        Object with ``register(callback)`` / ``unregister(callback)``.
    stdout_sink, stderr_sink:
        Destination of the streamed workload output.
    _sleep_fn:
        Test hook replacing the retry sleeps.
    """

    def __init__(
        self,
        invoker: Any = None,
        *,
        settings: Optional[ClientSettings] = None,
        commands: Optional[KubectlCommands] = None,
        termination_hook: Any = None,
        stdout_sink: Optional[IO[str]] = None,
        stderr_sink: Optional[IO[str]] = None,
        _sleep_fn: Any = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.invoker = invoker if invoker is not None else ProcessInvoker(self.settings)
        self.commands = commands or KubectlCommands(self.settings)
        self.termination_hook = (
            termination_hook if termination_hook is not None else AtexitTerminationHook()
        )
        self.stdout_sink = stdout_sink
        self.stderr_sink = stderr_sink
        self._sleep_fn = _sleep_fn
        self._active: List[ExecutionContext] = []
        # Reentrant: signal handlers call cancel() on the thread that may hold it.
        self._lock = threading.RLock()

    # -- public API ----------------------------------------------------------

    def run(
        self,
        manifest_body: str,
        variables: Mapping[str, str],
        options: Optional[ExecutionOptions] = None,
        *,
        work_dir: Optional[Path] = None,
    ) -> ExecutionContext:
        """Execute one run and return its final context.

        *options* default to those parsed from *variables*.  Fatal errors
        are re-raised after cleanup.
        """
        if options is None:
            options = options_from_generic_info(variables)
        ctx = ExecutionContext.create(
            manifest_body, variables, options, work_dir=work_dir,
        )
        logger.info("Run %s started in %s mode.", ctx.run_id, ctx.mode.value)

        with self._lock:
            self._active.append(ctx)
        on_exit = functools.partial(self.cleanup, ctx)
        self.termination_hook.register(on_exit)
        try:
            if ctx.mode is ExecutionMode.CREATE_ONLY:
                self._run_create_only(ctx)
            elif ctx.mode is ExecutionMode.DELETE_ONLY:
                self._run_delete_only(ctx)
            else:
                self._run_full_cycle(ctx)
        except (Exception, KeyboardInterrupt) as exc:
            logger.error("Run %s failed in state %s: %s", ctx.run_id, ctx.state.value, exc)
            self._transition(ctx, LifecycleState.FAILED)
            self.cleanup(ctx)
            raise
        finally:
            self.termination_hook.unregister(on_exit)
            with self._lock:
                self._active.remove(ctx)

        self._transition(ctx, LifecycleState.DONE)
        return ctx

    def cancel(self) -> None:
        """Interrupt every active run; each one cleans up and fails."""
        with self._lock:
            active = list(self._active)
        for ctx in active:
            logger.warning("Cancelling run %s.", ctx.run_id)
            ctx.cancel.set()

    def cleanup(self, ctx: ExecutionContext) -> None:
        """Delete the run's resources and manifest file; safe to call repeatedly.

        Never raises: failures are logged because this usually runs while
        another error is already propagating.
        """
        if not ctx.resources_deleted:
            ctx.resources_deleted = True
            self._delete_resources(ctx)
        self._discard_manifest(ctx)

    # -- modes ---------------------------------------------------------------

    def _run_create_only(self, ctx: ExecutionContext) -> None:
        self._write_manifest(ctx)
        self._create(ctx)
        self._discard_manifest(ctx)

    def _run_delete_only(self, ctx: ExecutionContext) -> None:
        # kubectl resolves the targets from the manifest, so it has to exist.
        try:
            ctx.manifest_file = write_manifest(
                render(ctx.manifest_body, ctx.variables), ctx.manifest_path,
            )
        except ManifestWriteError as exc:
            logger.error("%s", exc)
        self.cleanup(ctx)
        self._transition(ctx, LifecycleState.DELETED)

    def _run_full_cycle(self, ctx: ExecutionContext) -> None:
        self._write_manifest(ctx)
        self._create(ctx)
        ctx.target = select_resource(ctx.registry, ctx.options.resource_to_stream)
        self._transition(ctx, LifecycleState.STREAMING)
        self._follow(ctx, ctx.target)
        self.cleanup(ctx)
        self._transition(ctx, LifecycleState.DELETED)

    # -- steps ---------------------------------------------------------------

    def _transition(self, ctx: ExecutionContext, state: LifecycleState) -> None:
        logger.info("Run %s: %s -> %s", ctx.run_id, ctx.state.value, state.value)
        ctx.state = state
        ctx.history.append(state)

    def _write_manifest(self, ctx: ExecutionContext) -> None:
        rendered = render(ctx.manifest_body, ctx.variables)
        try:
            ctx.manifest_file = write_manifest(rendered, ctx.manifest_path)
        except ManifestWriteError as exc:
            logger.error("%s", exc)
            return
        self._transition(ctx, LifecycleState.MANIFEST_WRITTEN)

    def _create(self, ctx: ExecutionContext) -> None:
        logger.info("Creating Kubernetes resources from manifest.")
        result = self.invoker.invoke(
            self.commands.create(ctx.manifest_path), cancel=ctx.cancel,
        )
        if result.returncode != 0:
            logger.error("Could not create the K8S resources successfully.")
            logger.error("%s", result.output)
            raise NonZeroExitError(
                "creation", result.returncode, result.stdout, result.stderr,
            )
        ctx.registry.extend(
            parse_created(result.stdout, lowercase_names=ctx.options.lowercase_names)
        )
        self._transition(ctx, LifecycleState.CREATED)

    def _follow(self, ctx: ExecutionContext, target: ClusterResource) -> None:
        """Stream logs and/or wait for completion of *target*."""
        opts = ctx.options
        try:
            if opts.stream_logs and not opts.wait_for_completion:
                self._log_streamer(opts, opts.on_stream_interrupt).stream_logs(
                    target, cancel=ctx.cancel,
                )
            elif opts.stream_logs:
                self._tail_while_waiting(ctx, target)
            else:
                ctx.wait_result = self._state_waiter(opts).wait_for_state(
                    target, self._predicate(opts), cancel=ctx.cancel,
                )
        except ProcessInterruptedError:
            if opts.on_stream_interrupt is StreamInterruptPolicy.TREAT_AS_COMPLETION:
                logger.info("Interrupted while following %s; treating it as completion.", target)
                return
            raise

    def _tail_while_waiting(self, ctx: ExecutionContext, target: ClusterResource) -> None:
        """Tail logs on a background thread while polling status here."""
        opts = ctx.options
        stop = threading.Event()
        attached = threading.Event()
        streamer = self._log_streamer(opts, StreamInterruptPolicy.TREAT_AS_COMPLETION)

        def _tail() -> None:
            try:
                streamer.stream_logs(target, cancel=stop, attached=attached)
            except LifecycleError as exc:
                logger.warning("Log tailer for %s stopped: %s", target.reference, exc)

        tailer = threading.Thread(target=_tail, name=f"logs-{target.name}", daemon=True)
        tailer.start()
        try:
            ctx.wait_result = self._state_waiter(opts).wait_for_state(
                target, self._predicate(opts), cancel=ctx.cancel, attached=attached,
            )
            # Let a tailer that is already attached drain on its own.
            tailer.join(timeout=opts.handshake_timeout)
        finally:
            stop.set()
            tailer.join(timeout=TAILER_JOIN_TIMEOUT)
            if tailer.is_alive():
                logger.warning("Log tailer for %s did not stop in time.", target.reference)

    def _delete_resources(self, ctx: ExecutionContext) -> None:
        try:
            result = self.invoker.invoke(self.commands.delete(ctx.manifest_path))
        except Exception as exc:
            logger.warning(
                "Could not delete/clean kubernetes resources (non-fatal): %s", exc,
            )
            return

        if result.returncode == 0:
            logger.info("Successfully deleted K8S resource: %s", result.stdout)
        elif _is_not_found(result.output):
            logger.info("K8S resources already gone: %s", result.output)
        else:
            logger.warning(
                "kubectl delete failed (rc=%d, non-fatal): %s",
                result.returncode, result.output or "(no output)",
            )
        ctx.registry.clear()

    def _discard_manifest(self, ctx: ExecutionContext) -> None:
        if ctx.manifest_file is not None and remove_manifest(ctx.manifest_file):
            ctx.manifest_file = None

    # -- collaborators -------------------------------------------------------

    @staticmethod
    def _retry_policy(interval: float, opts: ExecutionOptions) -> RetryPolicy:
        return RetryPolicy(
            interval=interval,
            max_attempts=opts.max_attempts,
            max_duration=opts.max_duration,
        )

    @staticmethod
    def _predicate(opts: ExecutionOptions) -> Callable[[str], bool]:
        return succeeded_or_active if opts.accept_active else succeeded

    def _log_streamer(
        self, opts: ExecutionOptions, on_interrupt: StreamInterruptPolicy,
    ) -> LogStreamer:
        return LogStreamer(
            self.invoker,
            self.commands,
            policy=self._retry_policy(opts.retry_interval, opts),
            on_interrupt=on_interrupt,
            stdout_sink=self.stdout_sink,
            stderr_sink=self.stderr_sink,
            _sleep_fn=self._sleep_fn,
        )

    def _state_waiter(self, opts: ExecutionOptions) -> StateWaiter:
        return StateWaiter(
            self.invoker,
            self.commands,
            policy=self._retry_policy(opts.poll_interval, opts),
            handshake_timeout=opts.handshake_timeout,
            _sleep_fn=self._sleep_fn,
        )


def _is_not_found(output: str) -> bool:
    text = output.lower()
    return "notfound" in text or "not found" in text


# ---------------------------------------------------------------------------
# Workflow entry point
# ---------------------------------------------------------------------------


def exit_code_for(exc: BaseException) -> int:
    """Map a run failure to a process exit code."""
    if isinstance(exc, InvalidOptionError):
        return EXIT_CONFIG
    if isinstance(exc, LaunchError):
        return EXIT_TOOLCHAIN
    if isinstance(exc, (ProcessInterruptedError, KeyboardInterrupt)):
        return EXIT_INTERRUPTED
    if isinstance(exc, NoResourcesCreatedError):
        return EXIT_NO_RESOURCES
    if isinstance(exc, RetryExhaustedError):
        return EXIT_STREAM_FAILURE
    return EXIT_CREATE_FAILURE


def install_signal_handlers(controller: LifecycleController) -> Dict[int, Any]:
    """Route SIGTERM/SIGINT to :meth:`LifecycleController.cancel`.

    Returns the previous handlers so the caller can restore them.
    """
    def _handle(signum: int, frame: Any) -> None:
        logger.warning("Received signal %d, cancelling.", signum)
        controller.cancel()

    previous: Dict[int, Any] = {}
    for signum in (signal.SIGTERM, signal.SIGINT):
        previous[signum] = signal.signal(signum, _handle)
    return previous


def restore_signal_handlers(previous: Mapping[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def run_lifecycle_workflow(
    manifest_body: str,
    bindings: Mapping[str, Any],
    *,
    settings: Optional[ClientSettings] = None,
    work_dir: Optional[Path] = None,
    force_mode: Optional[ExecutionMode] = None,
    controller: Optional[LifecycleController] = None,
    handle_signals: bool = False,
) -> int:
    """End-to-end run from raw task bindings.  Returns one of the ``EXIT_*`` codes.

    *bindings* are flattened (see :func:`flatten_bindings`) into the
    variables used both for substitution and for the execution options.
    """
    from kube_ephemeral import ui

    variables = flatten_bindings(bindings)
    try:
        options = options_from_generic_info(variables)
    except InvalidOptionError as exc:
        ui.error_msg(str(exc))
        return EXIT_CONFIG

    if force_mode is ExecutionMode.DELETE_ONLY:
        options = options.model_copy(update={"create_only": False, "delete_only": True})
    elif force_mode is ExecutionMode.CREATE_ONLY:
        options = options.model_copy(update={"create_only": True, "delete_only": False})

    controller = controller or LifecycleController(settings=settings)
    previous = install_signal_handlers(controller) if handle_signals else {}

    ui.mode_banner(options.mode.value)
    try:
        ctx = controller.run(manifest_body, variables, options, work_dir=work_dir)
    except (LifecycleError, KeyboardInterrupt) as exc:
        ui.failure_panel(
            f"{options.mode.value} failed (exit {exit_code_for(exc)})",
            str(exc) or type(exc).__name__,
        )
        return exit_code_for(exc)
    finally:
        restore_signal_handlers(previous)

    if ctx.target is not None:
        ui.detail("followed", str(ctx.target))
    if ctx.wait_result is not None:
        ui.wait_outcome(
            ctx.wait_result.final_status,
            ctx.wait_result.polls,
            ctx.wait_result.elapsed_seconds,
            ctx.wait_result.attached,
        )
    if len(ctx.registry):
        ui.resource_table(
            "Left running",
            [(r.namespace, r.kind, r.name) for r in ctx.registry],
        )
    ui.run_finished(ctx.run_id, [s.value for s in ctx.history])
    return EXIT_SUCCESS
