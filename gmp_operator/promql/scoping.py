"""Scope rule expressions and labels to the deployment they are defined in.

Rules defined in a namespace must only see and produce series of that
namespace, cluster-wide rules only those of their cluster. This is enforced by
adding equality matchers for the scope labels to every vector selector of the
expression and by attaching the same labels to the rule's output.
"""
from typing import Dict, List, Tuple

from .ast import LabelMatcher, VectorSelector, walk
from .parser import parse

LABEL_PROJECT_ID = "project_id"
LABEL_LOCATION = "location"
LABEL_CLUSTER = "cluster"
LABEL_NAMESPACE = "namespace"


def scope_labels(kind: str, project_id: str, location: str, cluster: str, namespace: str = "") -> Dict[str, str]:
    """Return the scope labels for a rules resource of the given kind, ordered by name."""
    if kind == "GlobalRules":
        return {}
    labels = {
        LABEL_CLUSTER: cluster,
        LABEL_LOCATION: location,
        LABEL_PROJECT_ID: project_id,
    }
    if kind == "Rules":
        labels[LABEL_NAMESPACE] = namespace
    elif kind != "ClusterRules":
        raise ValueError(f"unknown rules kind {kind!r}")
    return dict(sorted(labels.items()))


def inject_matchers(selector: VectorSelector, labels: Dict[str, str]) -> None:
    """
    Set an equality matcher for every label on the selector.

    Existing matchers on other labels are kept. Existing matchers on a scope
    label are replaced, whatever their operator or value, so a selector can
    never reach outside of its scope.
    """
    kept = [m for m in selector.matchers if m.name not in labels]
    kept.extend(LabelMatcher(name, "=", value) for name, value in labels.items())
    selector.matchers = sorted(kept, key=lambda m: m.name)


def scope_expression(expr: str, labels: Dict[str, str]) -> str:
    """
    Parse expr and return its canonical form with scope matchers injected.

    Without scope labels the expression is validated and returned verbatim.
    Raises ExpressionError for invalid expressions.
    """
    tree = parse(expr)
    if not labels:
        return expr
    for node in walk(tree):
        if isinstance(node, VectorSelector):
            inject_matchers(node, labels)
    return str(tree)


def scope_rule_labels(rule_labels: Dict[str, str], labels: Dict[str, str]) -> Tuple[Dict[str, str], List[str]]:
    """
    Merge scope labels into a rule's labels, ordered by key.

    Scope labels win on collision. Returns the merged labels and the names of
    user labels whose values were overridden.
    """
    overridden = sorted(k for k, v in labels.items() if k in rule_labels and rule_labels[k] != v)
    merged = dict(rule_labels)
    merged.update(labels)
    return dict(sorted(merged.items())), overridden
