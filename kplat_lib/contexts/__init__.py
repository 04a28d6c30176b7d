"""Named kubeconfig contexts (host cluster and virtual clusters)."""

from kplat_lib.contexts.manager import ContextEntry, ContextManager

__all__ = ["ContextEntry", "ContextManager"]
