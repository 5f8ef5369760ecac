"""Kubernetes operator generating configuration for managed metrics collection."""

__version__ = "0.1.0"
