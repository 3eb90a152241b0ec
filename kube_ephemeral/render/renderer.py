"""Manifest renderer - replaces ``${name}`` tokens with task variables.

Substitution is **text-level**: the manifest is never parsed, so key order,
comments and anything the client accepts survive byte-for-byte.  A value may
itself contain a ``${other}`` reference, so rendering runs as a bounded
fixed-point loop (see :data:`MAXIMUM_DEPTH`).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

from kube_ephemeral.errors import ManifestWriteError

logger = logging.getLogger(__name__)

# ── constants ────────────────────────────────────────────────────────

#: Maximum number of substitution passes over the manifest body.
MAXIMUM_DEPTH: int = 5

#: Token delimiters around a variable name.
VAR_PREFIX: str = "${"
VAR_SUFFIX: str = "}"

#: Well-known file name the rendered manifest is written to.
MANIFEST_FILE_NAME: str = "k8s-manifest.yml"


# ── public API ───────────────────────────────────────────────────────


def token_for(name: str) -> str:
    """Return the ``${name}`` token for *name*."""
    return VAR_PREFIX + name + VAR_SUFFIX


def render(body: str, variables: Mapping[str, str]) -> str:
    """Replace every known ``${name}`` token in *body*.

    Parameters
    ----------
    body:
        Raw manifest text.
    variables:
        Mapping of variable name → value.  Names are matched literally.

    Returns
    -------
    str
        The rendered text.  Tokens naming unknown variables are left as-is.

    The body is rescanned until a pass replaces nothing, at most
    :data:`MAXIMUM_DEPTH` times, so mutually referential values such as
    ``{"a": "${b}", "b": "${a}"}`` still terminate.
    """
    output = body
    for depth in range(1, MAXIMUM_DEPTH + 1):
        replaced = False
        for name in sorted(variables):
            token = token_for(name)
            if token not in output:
                continue
            new_output = output.replace(token, variables[name])
            if new_output != output:
                replaced = True
                output = new_output
                logger.debug("Pass %d: substituted %s", depth, token)
        if not replaced:
            break
    return output


def manifest_path(work_dir: Optional[Path] = None) -> Path:
    """Return the manifest location inside *work_dir* (default: cwd)."""
    base = Path(work_dir) if work_dir is not None else Path.cwd()
    return base / MANIFEST_FILE_NAME


def write_manifest(text: str, path: Path) -> Path:
    """Write *text* to *path*, overwriting any previous manifest.

    Raises
    ------
    ManifestWriteError
        If the file cannot be written.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ManifestWriteError(
            f"Failed to write kubernetes manifest file {path}: {exc}"
        ) from exc
    logger.debug("Manifest written to %s (%d bytes)", path, len(text))
    return path


def remove_manifest(path: Optional[Path]) -> bool:
    """Delete the manifest at *path* if it exists.

    Returns ``True`` when the file is gone afterwards.  Failures are logged,
    never raised, because this runs on failure paths.
    """
    if path is None:
        return True
    path = Path(path)
    try:
        path.unlink()
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.warning("File %s was not deleted: %s", path.resolve(), exc)
        return False
    logger.debug("Manifest %s deleted", path)
    return True
