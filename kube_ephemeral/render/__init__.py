"""Manifest rendering (``${name}`` substitution) and manifest file handling."""

from kube_ephemeral.render.renderer import (
    MANIFEST_FILE_NAME,
    MAXIMUM_DEPTH,
    manifest_path,
    remove_manifest,
    render,
    token_for,
    write_manifest,
)

__all__ = [
    "MANIFEST_FILE_NAME",
    "MAXIMUM_DEPTH",
    "manifest_path",
    "remove_manifest",
    "render",
    "token_for",
    "write_manifest",
]
