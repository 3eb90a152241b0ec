"""Client settings, execution options and binding flattening."""

from kube_ephemeral.config.loader import (
    CONFIG_ENV_VAR,
    CONFIGURATION_FILE,
    flatten_bindings,
    load_client_settings,
    options_from_generic_info,
)
from kube_ephemeral.config.models import (
    ClientSettings,
    ExecutionOptions,
    StreamInterruptPolicy,
)

__all__ = [
    "CONFIG_ENV_VAR",
    "CONFIGURATION_FILE",
    "ClientSettings",
    "ExecutionOptions",
    "StreamInterruptPolicy",
    "flatten_bindings",
    "load_client_settings",
    "options_from_generic_info",
]
