"""``kubectl`` command vectors.

Arguments are built as literal lists, never as shell strings::

    kubectl create -f k8s-manifest.yml -o json
    kubectl delete -f k8s-manifest.yml
    kubectl logs job/pi -n default -f
    kubectl get job/pi -n default -o jsonpath={..status}
    kubectl version --client
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional

from kube_ephemeral.config.models import ClientSettings
from kube_ephemeral.errors import LaunchError
from kube_ephemeral.state.models import ClusterResource

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CREATE = "create"
DELETE = "delete"
LOGS = "logs"
GET = "get"
VERSION = "version"

FILENAME_SWITCH = "-f"
FOLLOW_SWITCH = "-f"
NAMESPACE_SWITCH = "-n"
OUTPUT_SWITCH = "-o"

JSON_OUTPUT_FORMAT = "json"
STATUS_OUTPUT_FORMAT = "jsonpath={..status}"

UNKNOWN_VERSION = "Unknown"

_VERSION_RE = re.compile(r"\d+\.\d+\.\d+")


class KubectlCommands:
    """Builds command vectors against the configured client binary."""

    def __init__(self, settings: Optional[ClientSettings] = None) -> None:
        self.settings = settings or ClientSettings()

    @property
    def binary(self) -> str:
        return self.settings.command

    def create(self, manifest: Path) -> List[str]:
        return [
            self.binary, CREATE,
            FILENAME_SWITCH, str(manifest),
            OUTPUT_SWITCH, JSON_OUTPUT_FORMAT,
        ]

    def delete(self, manifest: Path) -> List[str]:
        return [self.binary, DELETE, FILENAME_SWITCH, str(manifest)]

    def logs(self, resource: ClusterResource, *, follow: bool = True) -> List[str]:
        cmd = [
            self.binary, LOGS,
            resource.reference,
            NAMESPACE_SWITCH, resource.namespace,
        ]
        if follow:
            cmd.append(FOLLOW_SWITCH)
        return cmd

    def logs_by_name(self, name: str, *, follow: bool = True) -> List[str]:
        """Name-only form, resolved in the client's current namespace."""
        cmd = [self.binary, LOGS, name]
        if follow:
            cmd.append(FOLLOW_SWITCH)
        return cmd

    def get_status(self, resource: ClusterResource) -> List[str]:
        return [
            self.binary, GET,
            resource.reference,
            NAMESPACE_SWITCH, resource.namespace,
            OUTPUT_SWITCH, STATUS_OUTPUT_FORMAT,
        ]

    def version(self) -> List[str]:
        return [self.binary, VERSION, "--client"]


def client_version(invoker, commands: KubectlCommands) -> str:
    """Return the ``x.y.z`` client version, or ``"Unknown"``."""
    try:
        result = invoker.invoke(commands.version())
    except LaunchError as exc:
        logger.debug("Failed to retrieve kubectl client version: %s", exc)
        return UNKNOWN_VERSION

    match = _VERSION_RE.search(result.stdout)
    if result.returncode != 0 or match is None:
        logger.debug("Could not read a version from: %s", result.output)
        return UNKNOWN_VERSION
    logger.info("kubectl client version is: %s", match.group(0))
    return match.group(0)
