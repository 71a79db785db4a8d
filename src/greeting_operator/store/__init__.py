"""Resource store implementations."""

from .base import ResourceStore
from .kube import KubernetesStore

__all__ = ["ResourceStore", "KubernetesStore"]
