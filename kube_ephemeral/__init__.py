"""kube-ephemeral - lifecycle control for ephemeral Kubernetes resources.

Renders a manifest, submits it through ``kubectl``, optionally streams the
workload's logs or waits for it to finish, and always removes what it
created.
"""

try:
    from importlib.metadata import version

    __version__ = version("kube-ephemeral")
except Exception:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]
