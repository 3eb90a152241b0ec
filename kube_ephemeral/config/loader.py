"""Client settings loading, binding flattening and option parsing.

- :func:`load_client_settings` - read ``kubectl`` paths from YAML, falling
  back to documented defaults when the file is missing
- :func:`flatten_bindings` - turn nested task bindings into flat string
  variables (``variables_FOO``, ``genericInformation_K8S_CREATE_ONLY``)
- :func:`options_from_generic_info` - build :class:`ExecutionOptions`
  from a flat mapping
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from kube_ephemeral.config.models import ClientSettings, ExecutionOptions
from kube_ephemeral.errors import InvalidOptionError

logger = logging.getLogger(__name__)

#: Default settings file, relative to the working directory.
CONFIGURATION_FILE: str = "config/kube_ephemeral.yaml"

#: Environment variable overriding :data:`CONFIGURATION_FILE`.
CONFIG_ENV_VAR: str = "KUBE_EPHEMERAL_CONFIG"

#: Prefixes stripped from option keys before lookup (longest first).
OPTION_KEY_PREFIXES = ("genericInformation_K8S_", "genericInformation_", "K8S_")

#: Option key (upper-case, unprefixed) → ExecutionOptions field.
OPTION_FIELDS: Dict[str, str] = {
    "CREATE_ONLY": "create_only",
    "DELETE_ONLY": "delete_only",
    "STREAM_LOGS": "stream_logs",
    "RESOURCE_TO_STREAM": "resource_to_stream",
    "WAIT_FOR_COMPLETION": "wait_for_completion",
    "ACCEPT_ACTIVE": "accept_active",
    "ON_STREAM_INTERRUPT": "on_stream_interrupt",
    "LOWERCASE_NAMES": "lowercase_names",
    "RETRY_INTERVAL": "retry_interval",
    "POLL_INTERVAL": "poll_interval",
    "HANDSHAKE_TIMEOUT": "handshake_timeout",
    "MAX_ATTEMPTS": "max_attempts",
    "MAX_DURATION": "max_duration",
}


# ---------------------------------------------------------------------------
# Client settings
# ---------------------------------------------------------------------------


def load_client_settings(path: Optional[str | Path] = None) -> ClientSettings:
    """Load :class:`ClientSettings` from YAML.

    Lookup order: *path*, ``$KUBE_EPHEMERAL_CONFIG``, then
    :data:`CONFIGURATION_FILE`.  A missing file yields the defaults.
    """
    effective = Path(path or os.environ.get(CONFIG_ENV_VAR) or CONFIGURATION_FILE)
    if not effective.is_file():
        logger.info(
            "Configuration file %s not found. Standard values will be used.",
            effective,
        )
        return ClientSettings()

    logger.debug("Load properties from configuration file: %s", effective)
    with open(effective, encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}

    section = raw.get("kubectl", {}) or {}
    if not isinstance(section, dict):
        raise InvalidOptionError(
            f"{effective}: 'kubectl' must be a mapping, got {type(section).__name__}"
        )
    return ClientSettings.model_validate(section)


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


def _as_string(value: Any) -> str:
    return "" if value is None else str(value)


def flatten_bindings(bindings: Mapping[str, Any]) -> Dict[str, str]:
    """Flatten task bindings into string variables.

    - mappings become ``<key>_<subkey>``
    - lists/tuples become ``<key>_<index>``
    - ``None`` becomes ``""``; everything else is ``str()``-ed

    Only one level is expanded; deeper values are stringified.
    """
    flat: Dict[str, str] = {}
    for key, value in bindings.items():
        if isinstance(value, Mapping):
            for sub_key, sub_value in value.items():
                flat[f"{key}_{sub_key}"] = _as_string(sub_value)
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                flat[f"{key}_{index}"] = _as_string(item)
        else:
            flat[key] = _as_string(value)
    return flat


# ---------------------------------------------------------------------------
# Execution options
# ---------------------------------------------------------------------------


def _option_name(key: str) -> Optional[str]:
    for prefix in OPTION_KEY_PREFIXES:
        if key.startswith(prefix):
            key = key[len(prefix):]
            break
    return OPTION_FIELDS.get(key.upper())


def options_from_generic_info(generic_info: Mapping[str, str]) -> ExecutionOptions:
    """Build :class:`ExecutionOptions` from a flat key/value mapping.

    Keys are recognised bare (``CREATE_ONLY``), ``K8S_``-prefixed or in
    flattened-binding form (``genericInformation_K8S_CREATE_ONLY``).
    Unrecognised keys are ignored.

    Raises
    ------
    InvalidOptionError
        If a recognised key carries a value that cannot be parsed.
    """
    values: Dict[str, Any] = {}
    for key, value in generic_info.items():
        field = _option_name(key)
        if field is not None:
            values[field] = value

    try:
        options = ExecutionOptions.model_validate(values)
    except ValidationError as exc:
        raise InvalidOptionError(f"Invalid execution option(s): {exc}") from exc

    if options.create_only and options.delete_only:
        logger.warning(
            "Both CREATE_ONLY and DELETE_ONLY are set; CREATE_ONLY takes precedence."
        )
    return options
