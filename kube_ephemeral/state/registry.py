"""Decode ``kubectl create -o json`` output and track created resources.

The client prints one JSON document per created object, or a single
``kind: List`` wrapper whose ``items`` hold the objects.  Both shapes are
accepted, as is a mix of the two.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Iterator, List

from kube_ephemeral.errors import ParseError
from kube_ephemeral.state.models import ClusterResource

logger = logging.getLogger(__name__)

_LIST_KIND = "list"


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _iter_documents(output: str) -> Iterator[Any]:
    """Yield every JSON value in *output* (concatenated or whitespace-separated)."""
    decoder = json.JSONDecoder()
    text = output.strip()
    pos = 0
    while pos < len(text):
        try:
            doc, end = decoder.raw_decode(text, pos)
        except json.JSONDecodeError as exc:
            raise ParseError(
                f"Could not decode kubectl output as JSON at offset {pos}: {exc.msg}",
                output,
            ) from exc
        yield doc
        pos = end
        while pos < len(text) and text[pos].isspace():
            pos += 1


def _resource_from_json(obj: Any, *, lowercase_names: bool) -> ClusterResource:
    if not isinstance(obj, dict):
        raise ParseError(f"Expected a JSON object, got {type(obj).__name__}")
    kind = obj.get("kind")
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        raise ParseError(f"Resource {kind or '?'} has no metadata")
    name = metadata.get("name")
    namespace = metadata.get("namespace")
    missing = [
        field
        for field, value in (
            ("kind", kind),
            ("metadata.name", name),
            ("metadata.namespace", namespace),
        )
        if not isinstance(value, str) or not value
    ]
    if missing:
        raise ParseError(
            f"Created resource is missing required field(s): {', '.join(missing)}"
        )
    if lowercase_names:
        name = name.lower()
        namespace = namespace.lower()
    return ClusterResource(kind=kind, name=name, namespace=namespace)


def parse_created(output: str, *, lowercase_names: bool = False) -> List[ClusterResource]:
    """Return every resource described by *output*, in the order printed.

    ``kind`` is always lower-cased; ``name``/``namespace`` only when
    *lowercase_names* is set.

    Raises
    ------
    ParseError
        If the text is not JSON or a required field is absent.
    """
    resources: List[ClusterResource] = []
    for doc in _iter_documents(output):
        items: Iterable[Any]
        if isinstance(doc, dict) and str(doc.get("kind", "")).lower() == _LIST_KIND:
            items = doc.get("items") or []
        else:
            items = [doc]
        for item in items:
            resource = _resource_from_json(item, lowercase_names=lowercase_names)
            logger.info(
                "Successfully created K8S resource: %s in namespace %s.",
                resource.reference,
                resource.namespace,
            )
            resources.append(resource)
    return resources


def parse_one(output: str, *, lowercase_names: bool = False) -> ClusterResource:
    """Decode exactly one resource from *output*."""
    resources = parse_created(output, lowercase_names=lowercase_names)
    if len(resources) != 1:
        raise ParseError(
            f"Expected exactly one resource, found {len(resources)}", output
        )
    return resources[0]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ResourceRegistry:
    """Ordered record of the resources created in one run.

    Insertion order is creation order as reported by the client.  The
    registry is filled once after a successful create and only cleared by
    the delete step.
    """

    def __init__(self, resources: Iterable[ClusterResource] = ()) -> None:
        self._resources: List[ClusterResource] = list(resources)

    def add(self, resource: ClusterResource) -> None:
        self._resources.append(resource)

    def extend(self, resources: Iterable[ClusterResource]) -> None:
        self._resources.extend(resources)

    def clear(self) -> None:
        self._resources.clear()

    def log_streamable(self) -> List[ClusterResource]:
        """Resources ``kubectl logs`` can attach to, in creation order."""
        return [r for r in self._resources if r.is_log_streamable()]

    def as_dicts(self) -> List[Dict[str, str]]:
        return [r.model_dump() for r in self._resources]

    def __iter__(self) -> Iterator[ClusterResource]:
        return iter(list(self._resources))

    def __len__(self) -> int:
        return len(self._resources)

    def __getitem__(self, index: int) -> ClusterResource:
        return self._resources[index]

    def __repr__(self) -> str:
        return f"ResourceRegistry({self._resources!r})"
