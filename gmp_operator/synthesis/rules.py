"""Generated rule files, one per rules resource."""
from typing import Any, Dict, Iterable, List, Tuple, Union

from loguru import logger

from ..exceptions import ExpressionError
from ..models import ClusterRules, GlobalRules, Rule, Rules, key_for
from ..promql import scope_expression, scope_labels, scope_rule_labels
from ..utils.helpers import build_rules_filename, sorted_labels
from .outcome import REASON_INVALID_EXPRESSION, REASON_SCOPE_LABEL_OVERRIDDEN, Outcome
from .render import render_yaml

RulesResource = Union[Rules, ClusterRules, GlobalRules]


def _scoped_rule(rule: Rule, labels: Dict[str, str]) -> Tuple[Dict[str, Any], List[str]]:
    out: Dict[str, Any] = {}
    if rule.record:
        out["record"] = rule.record
    else:
        out["alert"] = rule.alert
    out["expr"] = scope_expression(rule.expr, labels)
    if rule.for_:
        out["for"] = rule.for_

    merged, overridden = scope_rule_labels(rule.labels, labels)
    if merged:
        out["labels"] = merged
    annotations = sorted_labels(rule.annotations)
    if annotations:
        out["annotations"] = annotations
    return out, overridden


def scope_rules(resource: RulesResource, project_id: str, location: str, cluster: str) -> Tuple[Dict[str, Any], List[str]]:
    """
    Build the scoped rule-file document of a rules resource.

    Every rule is checked so that all invalid expressions of the resource are
    reported at once. Raises ExpressionError listing them. Returns the
    document and the label names where a scope label replaced a user value.
    """
    labels = scope_labels(resource.kind, project_id, location, cluster, resource.metadata.namespace)

    groups = []
    errors = []
    overridden = set()
    for group in resource.spec.groups:
        rules = []
        for rule in group.rules:
            try:
                scoped, names = _scoped_rule(rule, labels)
            except ExpressionError as e:
                errors.append(f"group {group.name!r} rule {rule.name!r}: {e}")
                continue
            overridden.update(names)
            rules.append(scoped)

        out: Dict[str, Any] = {"name": group.name}
        if group.interval:
            out["interval"] = group.interval
        out["rules"] = rules
        groups.append(out)

    if errors:
        raise ExpressionError("; ".join(errors))
    return {"groups": groups}, sorted(overridden)


def build_rules_bundle(
    resources: Iterable[RulesResource],
    project_id: str,
    location: str,
    cluster: str,
) -> Tuple[Dict[str, str], Dict[Any, Outcome]]:
    """
    Build the generated rules bundle.

    Resources with an invalid expression contribute nothing and get a
    failure outcome. Since the bundle is rebuilt from all current resources,
    files of deleted resources disappear from it.
    """
    bundle: Dict[str, str] = {}
    outcomes: Dict[Any, Outcome] = {}

    for resource in resources:
        key = key_for(resource)
        try:
            document, overridden = scope_rules(resource, project_id, location, cluster)
        except ExpressionError as e:
            logger.warning(f"Excluding {key} from generated rules: {e}")
            outcomes[key] = Outcome.failure(REASON_INVALID_EXPRESSION, str(e))
            continue

        filename = build_rules_filename(resource.kind, resource.metadata.namespace, resource.metadata.name)
        bundle[filename] = render_yaml(document)
        if overridden:
            outcomes[key] = Outcome.success(
                f"user labels overridden by scope labels: {', '.join(overridden)}",
                reason=REASON_SCOPE_LABEL_OVERRIDDEN,
            )
        else:
            outcomes[key] = Outcome.success()

    return dict(sorted(bundle.items())), outcomes
