"""Scrape configuration for the collectors."""
import re
from typing import Any, Dict, List, Optional, Union

from ..models import ClusterPodMonitoring, KubeletScraping, LabelSelector, OperatorConfig, PodMonitoring, ScrapeEndpoint
from ..utils.helpers import parse_match_filters, sanitize_label_name, sorted_labels

# Collectors run as a DaemonSet and only scrape targets on their own node.
NODE_NAME_FIELD_SELECTOR = "spec.nodeName=$(NODE_NAME)"
NODE_METADATA_FIELD_SELECTOR = "metadata.name=$(NODE_NAME)"

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
KUBELET_PORT = 10250


def _quote_regex(value: str) -> str:
    return re.escape(value)


def selector_relabel_configs(selector: LabelSelector) -> List[Dict[str, Any]]:
    """Translate a label selector into keep and drop relabeling rules on pod labels."""
    configs = []
    for key, value in sorted(selector.matchLabels.items()):
        configs.append({
            "action": "keep",
            "source_labels": [f"__meta_kubernetes_pod_label_{sanitize_label_name(key)}"],
            "regex": _quote_regex(value),
        })

    for expr in selector.matchExpressions:
        label = sanitize_label_name(expr.key)
        if expr.operator in ("In", "NotIn"):
            configs.append({
                "action": "keep" if expr.operator == "In" else "drop",
                "source_labels": [f"__meta_kubernetes_pod_label_{label}"],
                "regex": "|".join(_quote_regex(v) for v in expr.values),
            })
        else:
            configs.append({
                "action": "keep" if expr.operator == "Exists" else "drop",
                "source_labels": [f"__meta_kubernetes_pod_labelpresent_{label}"],
                "regex": "true",
            })
    return configs


def endpoint_scrape_config(
    resource: Union[PodMonitoring, ClusterPodMonitoring],
    endpoint: ScrapeEndpoint,
) -> Dict[str, Any]:
    """Build the scrape job of one endpoint of a (Cluster)PodMonitoring."""
    meta = resource.metadata
    if resource.kind == "PodMonitoring":
        job_name = f"{resource.kind}/{meta.namespace}/{meta.name}/{endpoint.port}"
    else:
        job_name = f"{resource.kind}/{meta.name}/{endpoint.port}"

    sd_config: Dict[str, Any] = {"role": "pod"}
    if resource.kind == "PodMonitoring":
        sd_config["namespaces"] = {"names": [meta.namespace]}
    sd_config["selectors"] = [{"role": "pod", "field": NODE_NAME_FIELD_SELECTOR}]

    relabel_configs = selector_relabel_configs(resource.spec.selector)
    relabel_configs.append({
        "action": "drop",
        "source_labels": ["__meta_kubernetes_pod_phase"],
        "regex": "(Failed|Succeeded)",
    })

    if isinstance(endpoint.port, int):
        relabel_configs.append({
            "action": "replace",
            "source_labels": ["__meta_kubernetes_pod_ip"],
            "target_label": "__address__",
            "replacement": f"$1:{endpoint.port}",
        })
    else:
        relabel_configs.append({
            "action": "keep",
            "source_labels": ["__meta_kubernetes_pod_container_port_name"],
            "regex": _quote_regex(endpoint.port),
        })
        relabel_configs.append({
            "action": "replace",
            "source_labels": ["__meta_kubernetes_pod_container_name"],
            "target_label": "container",
        })

    relabel_configs.extend([
        {
            "action": "replace",
            "source_labels": ["__meta_kubernetes_namespace"],
            "target_label": "namespace",
        },
        {
            "action": "replace",
            "target_label": "job",
            "replacement": meta.name,
        },
        {
            "action": "replace",
            "source_labels": ["__meta_kubernetes_pod_name"],
            "target_label": "pod",
        },
        {
            "action": "replace",
            "source_labels": ["__meta_kubernetes_pod_node_name"],
            "target_label": "instance",
            "replacement": f"$1:{endpoint.port}",
        },
        {
            "action": "labeldrop",
            "regex": "__meta_kubernetes_pod_label_.+",
        },
    ])

    config = {
        "job_name": job_name,
        "honor_timestamps": True,
        "scrape_interval": endpoint.interval,
        "scrape_timeout": endpoint.timeout or endpoint.interval,
        "metrics_path": endpoint.path,
        "scheme": endpoint.scheme,
        "kubernetes_sd_configs": [sd_config],
        "relabel_configs": relabel_configs,
    }
    return config


def kubelet_scrape_configs(kubelet: KubeletScraping) -> List[Dict[str, Any]]:
    """Jobs scraping the kubelet and cAdvisor of the collector's node."""
    configs = []
    for port, path in (("metrics", "/metrics"), ("cadvisor", "/metrics/cadvisor")):
        configs.append({
            "job_name": f"kubelet/{port}",
            "honor_timestamps": True,
            "scrape_interval": kubelet.interval,
            "scrape_timeout": kubelet.interval,
            "metrics_path": path,
            "scheme": "https",
            "authorization": {
                "type": "Bearer",
                "credentials_file": f"{SERVICE_ACCOUNT_DIR}/token",
            },
            "tls_config": {
                "ca_file": f"{SERVICE_ACCOUNT_DIR}/ca.crt",
                "insecure_skip_verify": False,
            },
            "kubernetes_sd_configs": [{
                "role": "node",
                "selectors": [{"role": "node", "field": NODE_METADATA_FIELD_SELECTOR}],
            }],
            "relabel_configs": [
                {
                    "action": "replace",
                    "target_label": "job",
                    "replacement": "kubelet",
                },
                {
                    "action": "replace",
                    "source_labels": ["__meta_kubernetes_node_name"],
                    "target_label": "node",
                },
                {
                    "action": "replace",
                    "source_labels": ["__meta_kubernetes_node_name"],
                    "target_label": "instance",
                    "replacement": f"$1:{port}",
                },
                {
                    "action": "replace",
                    "source_labels": ["__meta_kubernetes_node_address_InternalIP"],
                    "target_label": "__address__",
                    "replacement": f"$1:{KUBELET_PORT}",
                },
            ],
        })
    return configs


def build_collection_config(
    operator_config: Optional[OperatorConfig],
    pod_monitorings: List[PodMonitoring],
    cluster_pod_monitorings: List[ClusterPodMonitoring],
    credentials_file: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the collector configuration document.

    Jobs are ordered: PodMonitorings, then ClusterPodMonitorings (each in the
    order given, expected sorted by identity), then kubelet jobs.
    """
    collection = operator_config.collection if operator_config is not None else None

    scrape_configs = []
    for resource in list(pod_monitorings) + list(cluster_pod_monitorings):
        for endpoint in resource.spec.endpoints:
            scrape_configs.append(endpoint_scrape_config(resource, endpoint))
    if collection is not None and collection.kubeletScraping is not None:
        scrape_configs.extend(kubelet_scrape_configs(collection.kubeletScraping))

    document: Dict[str, Any] = {}
    external_labels = sorted_labels(collection.externalLabels if collection else None)
    if external_labels:
        document["global"] = {"external_labels": external_labels}
    document["scrape_configs"] = scrape_configs

    export: Dict[str, Any] = {}
    matchers = parse_match_filters(collection.filter.matchOneOf if collection else None)
    if matchers:
        export["match"] = matchers
    if credentials_file:
        export["credentials_file"] = credentials_file
    if export:
        document["google_cloud"] = {"export": export}
    return document
