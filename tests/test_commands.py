"""Tests for kube_ephemeral.kubectl.commands."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

from kube_ephemeral.config.models import ClientSettings
from kube_ephemeral.errors import LaunchError
from kube_ephemeral.kubectl.commands import (
    UNKNOWN_VERSION,
    KubectlCommands,
    client_version,
)
from kube_ephemeral.kubectl.invoker import ProcessResult
from kube_ephemeral.state.models import ClusterResource


# ── helpers ──────────────────────────────────────────────────────────

JOB = ClusterResource(kind="job", name="pi", namespace="batch")


def _commands() -> KubectlCommands:
    return KubectlCommands(ClientSettings(command="kubectl"))


def _invoker(stdout: str = "", rc: int = 0):
    inv = MagicMock()
    inv.invoke.return_value = ProcessResult(command="kubectl version", returncode=rc, stdout=stdout)
    return inv


# ── TestKubectlCommands ──────────────────────────────────────────────


class TestKubectlCommands:
    def test_default_binary(self):
        assert KubectlCommands().binary == "/usr/local/bin/kubectl"

    def test_create(self):
        cmd = _commands().create(Path("/w/k8s-manifest.yml"))
        assert cmd == ["kubectl", "create", "-f", "/w/k8s-manifest.yml", "-o", "json"]

    def test_delete(self):
        assert _commands().delete(Path("m.yml")) == ["kubectl", "delete", "-f", "m.yml"]

    def test_logs_follow(self):
        assert _commands().logs(JOB) == ["kubectl", "logs", "job/pi", "-n", "batch", "-f"]

    def test_logs_no_follow(self):
        assert _commands().logs(JOB, follow=False) == ["kubectl", "logs", "job/pi", "-n", "batch"]

    def test_logs_by_name(self):
        assert _commands().logs_by_name("pi") == ["kubectl", "logs", "pi", "-f"]

    def test_get_status(self):
        assert _commands().get_status(JOB) == [
            "kubectl", "get", "job/pi", "-n", "batch", "-o", "jsonpath={..status}",
        ]

    def test_version(self):
        assert _commands().version() == ["kubectl", "version", "--client"]


# ── TestClientVersion ────────────────────────────────────────────────


class TestClientVersion:
    def test_parses_version(self):
        out = "Client Version: v1.29.3 Kustomize Version: v5.0.4-0.20230601165947-6ce0bf390ce3"
        assert client_version(_invoker(out), _commands()) == "1.29.3"

    def test_no_match(self):
        assert client_version(_invoker("garbage"), _commands()) == UNKNOWN_VERSION

    def test_nonzero_exit(self):
        assert client_version(_invoker("v1.2.3", rc=1), _commands()) == UNKNOWN_VERSION

    def test_launch_error(self):
        inv = MagicMock()
        inv.invoke.side_effect = LaunchError(["kubectl"], "No such file or directory")
        assert client_version(inv, _commands()) == "Unknown"
