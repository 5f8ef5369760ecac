"""Helper utility functions and fixed object names."""
import re
from typing import Dict, List, Optional

API_GROUP = "monitoring.googleapis.com"
API_VERSION = "v1"

NAME_OPERATOR_CONFIG = "config"

COLLECTOR_CONFIG_NAME = "collector"
RULE_EVALUATOR_CONFIG_NAME = "rule-evaluator"
RULES_GENERATED_CONFIG_NAME = "rules-generated"

COLLECTION_SECRET_NAME = "collection"
RULES_SECRET_NAME = "rules"
ALERTMANAGER_SECRET_NAME = "alertmanager"

CONFIG_FILENAME = "config.yaml"
SECRETS_DIR = "/etc/secrets"
RULES_DIR = "/etc/rules"

_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def build_secret_key(namespace: str, name: str, key: str) -> str:
    """Build the deterministic key under which a source secret value is stored."""
    return f"secret_{namespace}_{name}_{key}"


def build_secret_path(namespace: str, name: str, key: str) -> str:
    """Build the path a canonical secret key is mounted at in the workloads."""
    return f"{SECRETS_DIR}/{build_secret_key(namespace, name, key)}"


def build_rules_filename(kind: str, namespace: Optional[str], name: str) -> str:
    """Build the generated rule file name for a rules resource."""
    if namespace:
        return f"{kind.lower()}__{namespace}__{name}.yaml"
    return f"{kind.lower()}__{name}.yaml"


def sanitize_label_name(name: str) -> str:
    """Map an arbitrary Kubernetes label key onto a valid Prometheus label name."""
    return _INVALID_LABEL_CHARS.sub("_", name)


def sorted_labels(labels: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Return a copy of the label map ordered by key."""
    if not labels:
        return {}
    return {k: labels[k] for k in sorted(labels)}


def parse_match_filters(filters: Optional[List[str]]) -> List[str]:
    """Strip and drop empty match filters."""
    if not filters:
        return []
    return [f.strip() for f in filters if f and f.strip()]
