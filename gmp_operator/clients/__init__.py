"""Client modules for external services."""
from .kubernetes import KubernetesClient

__all__ = ["KubernetesClient"]
