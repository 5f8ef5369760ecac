"""Configuration for the rule evaluator."""
from typing import Any, Dict, Iterable, List, Optional

from ..models import AlertmanagerEndpoints, OperatorConfig, SecretKeySelector
from ..utils.helpers import RULES_DIR, build_secret_path, sorted_labels

MANAGED_ALERTMANAGER_NAME = "alertmanager"
MANAGED_ALERTMANAGER_PORT = 9093


def managed_alertmanager_endpoint(operator_namespace: str) -> AlertmanagerEndpoints:
    """The Alertmanager deployed alongside the operator, always notified."""
    return AlertmanagerEndpoints(
        name=MANAGED_ALERTMANAGER_NAME,
        namespace=operator_namespace,
        port=MANAGED_ALERTMANAGER_PORT,
    )


def _secret_file(selector: Optional[SecretKeySelector], namespace: str) -> Optional[str]:
    if selector is None:
        return None
    return build_secret_path(selector.resolve_namespace(namespace), selector.name, selector.key)


def alertmanager_config(endpoint: AlertmanagerEndpoints, namespace: str) -> Dict[str, Any]:
    """
    Build the alerting config of one Alertmanager endpoint.

    Secret selectors without a namespace resolve against ``namespace``.
    """
    config: Dict[str, Any] = {}

    if endpoint.authorization is not None:
        authorization = {"type": endpoint.authorization.type or "Bearer"}
        credentials_file = _secret_file(endpoint.authorization.credentials, namespace)
        if credentials_file:
            authorization["credentials_file"] = credentials_file
        config["authorization"] = authorization

    tls = endpoint.tls
    if tls is not None:
        tls_config: Dict[str, Any] = {}
        if tls.ca is not None and tls.ca.secret is not None:
            tls_config["ca_file"] = _secret_file(tls.ca.secret, namespace)
        if tls.cert is not None and tls.cert.secret is not None:
            tls_config["cert_file"] = _secret_file(tls.cert.secret, namespace)
        if tls.keySecret is not None:
            tls_config["key_file"] = _secret_file(tls.keySecret, namespace)
        if tls.serverName:
            tls_config["server_name"] = tls.serverName
        tls_config["insecure_skip_verify"] = tls.insecureSkipVerify
        config["tls_config"] = tls_config

    config["follow_redirects"] = True
    config["enable_http2"] = True
    config["scheme"] = endpoint.scheme
    if endpoint.pathPrefix:
        config["path_prefix"] = endpoint.pathPrefix
    config["timeout"] = endpoint.timeout
    config["api_version"] = endpoint.apiVersion

    relabel_configs = [{
        "source_labels": ["__meta_kubernetes_endpoints_name"],
        "regex": endpoint.name,
        "action": "keep",
    }]
    if isinstance(endpoint.port, int):
        relabel_configs.append({
            "source_labels": ["__address__"],
            "regex": r"(.+):\d+",
            "target_label": "__address__",
            "replacement": f"$1:{endpoint.port}",
            "action": "replace",
        })
    else:
        relabel_configs.append({
            "source_labels": ["__meta_kubernetes_endpoint_port_name"],
            "regex": endpoint.port,
            "action": "keep",
        })
    config["relabel_configs"] = relabel_configs

    config["kubernetes_sd_configs"] = [{
        "role": "endpoints",
        "namespaces": {"names": [endpoint.namespace]},
    }]
    return config


def build_rule_evaluator_config(
    operator_config: Optional[OperatorConfig],
    public_namespace: str,
    operator_namespace: str,
    project_id: str = "",
    skip_endpoints: Iterable[int] = (),
    credentials_resolved: bool = True,
) -> Dict[str, Any]:
    """
    Build the rule evaluator configuration document.

    skip_endpoints holds indices of user-defined Alertmanager endpoints to
    leave out, e.g. because their secrets cannot be resolved. The managed
    Alertmanager is always appended last. Unresolved evaluator credentials
    are left out as well.
    """
    spec = operator_config.rules if operator_config is not None else None
    skipped = set(skip_endpoints)

    endpoints: List[AlertmanagerEndpoints] = []
    if spec is not None:
        endpoints = [am for i, am in enumerate(spec.alerting.alertmanagers) if i not in skipped]
    endpoints.append(managed_alertmanager_endpoint(operator_namespace))

    document: Dict[str, Any] = {}
    external_labels = sorted_labels(spec.externalLabels if spec else None)
    if external_labels:
        document["global"] = {"external_labels": external_labels}
    document["alerting"] = {
        "alertmanagers": [alertmanager_config(am, public_namespace) for am in endpoints],
    }
    document["rule_files"] = [f"{RULES_DIR}/*.yaml"]

    google_cloud: Dict[str, Any] = {}
    credentials_file = None
    if spec is not None and credentials_resolved:
        credentials_file = _secret_file(spec.credentials, public_namespace)
    if credentials_file:
        google_cloud["export"] = {"credentials_file": credentials_file}
    query: Dict[str, Any] = {}
    query_project_id = (spec.queryProjectID if spec else None) or project_id
    if query_project_id:
        query["project_id"] = query_project_id
    if credentials_file:
        query["credentials_file"] = credentials_file
    if query:
        google_cloud["query"] = query
    if google_cloud:
        document["google_cloud"] = google_cloud
    return document
