"""Utility modules for the operator."""
from .config import Config
from .helpers import build_rules_filename, build_secret_key, build_secret_path, sanitize_label_name
from .retry import RetryPolicy, await_condition, retry_transient

__all__ = [
    "Config",
    "build_rules_filename",
    "build_secret_key",
    "build_secret_path",
    "sanitize_label_name",
    "RetryPolicy",
    "await_condition",
    "retry_transient",
]
