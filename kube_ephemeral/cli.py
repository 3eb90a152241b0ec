"""CLI entry point for kube-ephemeral, built on typer.

Provides ``run``, ``delete`` and ``version`` commands.

Usage::

    python -m kube_ephemeral --help
    python -m kube_ephemeral run job.yml --var IMAGE=busybox --gi K8S_STREAM_LOGS=true
    python -m kube_ephemeral run job.yml --gi K8S_CREATE_ONLY=true
    python -m kube_ephemeral delete job.yml --var IMAGE=busybox
    python -m kube_ephemeral version
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from kube_ephemeral import __version__, ui
from kube_ephemeral.state.models import ExecutionMode

app = typer.Typer(
    name="kube-ephemeral",
    help=(
        "Create ephemeral Kubernetes resources from a manifest, stream their "
        "logs and delete them again."
    ),
    no_args_is_help=True,
    add_completion=False,
)

#: Binding names used for ``--var`` and ``--gi`` values.
VARIABLES_BINDING = "variables"
GENERIC_INFO_BINDING = "genericInformation"


# ── helpers ──────────────────────────────────────────────────────────────────


def _parse_pairs(pairs: Optional[List[str]], option: str) -> Dict[str, str]:
    """Turn ``["A=1", "B=2"]`` into ``{"A": "1", "B": "2"}``."""
    parsed: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint=option)
        parsed[key] = value
    return parsed


def _collect_bindings(
    vars_file: Optional[Path],
    set_values: Optional[List[str]],
    variables: Optional[List[str]],
    generic_info: Optional[List[str]],
) -> Dict[str, Any]:
    bindings: Dict[str, Any] = {}
    if vars_file is not None:
        loaded = yaml.safe_load(vars_file.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise typer.BadParameter("must contain a YAML mapping", param_hint="--vars-file")
        bindings.update(loaded)

    bindings.update(_parse_pairs(set_values, "--set"))

    for name, pairs, option in (
        (VARIABLES_BINDING, variables, "--var"),
        (GENERIC_INFO_BINDING, generic_info, "--gi"),
    ):
        parsed = _parse_pairs(pairs, option)
        if parsed:
            merged = dict(bindings.get(name) or {})
            merged.update(parsed)
            bindings[name] = merged
    return bindings


def _execute(
    manifest: Path,
    *,
    force_mode: Optional[ExecutionMode],
    vars_file: Optional[Path],
    set_values: Optional[List[str]],
    variables: Optional[List[str]],
    generic_info: Optional[List[str]],
    workdir: Optional[Path],
    config: Optional[Path],
    debug: bool,
) -> int:
    from kube_ephemeral.config.loader import load_client_settings
    from kube_ephemeral.errors import InvalidOptionError
    from kube_ephemeral.workflow.lifecycle import EXIT_CONFIG, run_lifecycle_workflow

    if debug:
        logging.basicConfig(level=logging.DEBUG)

    bindings = _collect_bindings(vars_file, set_values, variables, generic_info)
    try:
        settings = load_client_settings(config)
    except (InvalidOptionError, yaml.YAMLError, ValueError) as exc:
        ui.error_msg(f"Invalid client settings: {exc}")
        return EXIT_CONFIG

    ui.step(f"Manifest {manifest} with kubectl at {settings.command}")
    return run_lifecycle_workflow(
        manifest.read_text(encoding="utf-8"),
        bindings,
        settings=settings,
        work_dir=workdir,
        force_mode=force_mode,
        handle_signals=True,
    )


# ── shared options ───────────────────────────────────────────────────────────

_MANIFEST = typer.Argument(
    ..., exists=True, dir_okay=False, readable=True,
    help="Manifest template with ${name} placeholders.",
)
_VARS_FILE = typer.Option(
    None, "--vars-file", exists=True, dir_okay=False,
    help="YAML mapping of bindings (e.g. variables:, genericInformation:).",
)
_SET = typer.Option(None, "--set", help="Top-level binding KEY=VALUE. Repeatable.")
_VAR = typer.Option(
    None, "--var", help="Task variable KEY=VALUE, exposed as ${variables_KEY}. Repeatable.",
)
_GI = typer.Option(
    None, "--gi",
    help="Generic information KEY=VALUE, e.g. K8S_CREATE_ONLY=true. Repeatable.",
)
_WORKDIR = typer.Option(
    None, "--workdir", file_okay=False,
    help="Directory the manifest file is written to. Default: current directory.",
)
_CONFIG = typer.Option(
    None, "--config",
    help="Client settings YAML. Default: $KUBE_EPHEMERAL_CONFIG or config/kube_ephemeral.yaml.",
)
_DEBUG = typer.Option(False, "--debug", help="Enable debug logging.")


# ── run command ──────────────────────────────────────────────────────────────


@app.command()
def run(
    manifest: Path = _MANIFEST,
    vars_file: Optional[Path] = _VARS_FILE,
    set_values: Optional[List[str]] = _SET,
    variables: Optional[List[str]] = _VAR,
    generic_info: Optional[List[str]] = _GI,
    workdir: Optional[Path] = _WORKDIR,
    config: Optional[Path] = _CONFIG,
    debug: bool = _DEBUG,
) -> None:
    """Create the manifest's resources, follow them, then delete them.

    The mode comes from generic information:

      K8S_CREATE_ONLY=true        create and leave the resources running
      K8S_DELETE_ONLY=true        only delete what the manifest describes
      K8S_STREAM_LOGS=false       wait for completion instead of streaming
      K8S_RESOURCE_TO_STREAM=ns/kind/name   resource to follow
    """
    rc = _execute(
        manifest,
        force_mode=None,
        vars_file=vars_file,
        set_values=set_values,
        variables=variables,
        generic_info=generic_info,
        workdir=workdir,
        config=config,
        debug=debug,
    )
    raise typer.Exit(rc)


# ── delete command ───────────────────────────────────────────────────────────


@app.command()
def delete(
    manifest: Path = _MANIFEST,
    vars_file: Optional[Path] = _VARS_FILE,
    set_values: Optional[List[str]] = _SET,
    variables: Optional[List[str]] = _VAR,
    generic_info: Optional[List[str]] = _GI,
    workdir: Optional[Path] = _WORKDIR,
    config: Optional[Path] = _CONFIG,
    debug: bool = _DEBUG,
) -> None:
    """Delete the resources described by the rendered manifest."""
    rc = _execute(
        manifest,
        force_mode=ExecutionMode.DELETE_ONLY,
        vars_file=vars_file,
        set_values=set_values,
        variables=variables,
        generic_info=generic_info,
        workdir=workdir,
        config=config,
        debug=debug,
    )
    raise typer.Exit(rc)


# ── version command ──────────────────────────────────────────────────────────


@app.command()
def version(
    config: Optional[Path] = _CONFIG,
) -> None:
    """Print the package and kubectl client versions."""
    from kube_ephemeral.config.loader import load_client_settings
    from kube_ephemeral.kubectl.commands import KubectlCommands, client_version
    from kube_ephemeral.kubectl.invoker import ProcessInvoker

    settings = load_client_settings(config)
    kubectl = client_version(ProcessInvoker(settings), KubectlCommands(settings))
    ui.detail("kube-ephemeral", __version__)
    ui.detail("kubectl", kubectl)


# ── Entry point ──────────────────────────────────────────────────────────────


def main() -> int:
    """Run the CLI and return an exit code."""
    try:
        app()
        return 0
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())
