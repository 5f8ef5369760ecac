"""Pytest configuration and fixtures for the test suite."""
import copy
from typing import Dict, List, Optional, Tuple

import pytest

from gmp_operator.models import ResourceKey
from gmp_operator.utils.config import Config


class FakeKubernetesClient:
    """In-memory stand-in for KubernetesClient recording every write."""

    def __init__(self):
        self.source_secrets: Dict[Tuple[str, str], Dict[str, bytes]] = {}
        self.config_maps: Dict[str, Dict[str, str]] = {}
        self.secrets: Dict[str, Dict[str, bytes]] = {}
        self.statuses: Dict[ResourceKey, dict] = {}
        self.webhooks: Dict[str, List[Optional[str]]] = {}
        self.writes: List[tuple] = []
        self.secret_reads: List[Tuple[str, str]] = []
        # Exceptions raised by the next write calls, in order
        self.write_errors: List[Exception] = []

    def _maybe_fail(self):
        if self.write_errors:
            raise self.write_errors.pop(0)

    async def get_secret_data(self, namespace, name):
        self.secret_reads.append((namespace, name))
        data = self.source_secrets.get((namespace, name))
        return dict(data) if data is not None else None

    async def apply_config_map(self, name, data):
        self._maybe_fail()
        if self.config_maps.get(name) == data:
            return False
        self.config_maps[name] = dict(data)
        self.writes.append(("configmap", name))
        return True

    async def apply_secret(self, name, data):
        self._maybe_fail()
        if self.secrets.get(name) == data:
            return False
        self.secrets[name] = dict(data)
        self.writes.append(("secret", name))
        return True

    async def patch_status(self, key, status):
        self._maybe_fail()
        self.statuses[key] = copy.deepcopy(status)
        self.writes.append(("status", key))
        return True

    async def get_webhook_ca_bundles(self, kind, name):
        bundles = self.webhooks.get(kind)
        return list(bundles) if bundles is not None else None

    async def patch_webhook_configuration(self, kind, name, patch):
        self._maybe_fail()
        for op in patch:
            index = int(op["path"].split("/")[2])
            self.webhooks[kind][index] = op["value"]
        self.writes.append(("webhook", kind))


@pytest.fixture
def test_config():
    """Test configuration."""
    return Config(
        _env_file=None,
        project_id="p",
        location="l",
        cluster_name="c",
        operator_namespace="gmp-system",
        public_namespace="gmp-public",
        cycle_timeout=5.0,
        retry_initial_interval=0.01,
        retry_max_interval=0.02,
        retry_timeout=0.1,
    )


@pytest.fixture
def fake_client():
    """Fake Kubernetes client."""
    return FakeKubernetesClient()


@pytest.fixture
def operator_config_body():
    """OperatorConfig with collection and rule evaluator settings."""
    return {
        "apiVersion": "monitoring.googleapis.com/v1",
        "kind": "OperatorConfig",
        "metadata": {"name": "config", "namespace": "gmp-public"},
        "collection": {
            "externalLabels": {"external_key": "external_val"},
            "filter": {"matchOneOf": ["{job='foo'}", "{__name__=~'up'}"]},
            "kubeletScraping": {"interval": "5s"},
        },
        "rules": {
            "externalLabels": {"external_key": "external_val"},
            "queryProjectID": "query-project",
            "alerting": {
                "alertmanagers": [
                    {
                        "name": "test-am",
                        "namespace": "alertmanager",
                        "port": 19093,
                        "scheme": "https",
                        "pathPrefix": "/test",
                        "timeout": "30s",
                        "apiVersion": "v2",
                        "authorization": {
                            "type": "Bearer",
                            "credentials": {"name": "alertmanager-authorization", "key": "token"},
                        },
                        "tls": {
                            "cert": {"secret": {"name": "alertmanager-tls", "key": "cert"}},
                            "keySecret": {"name": "alertmanager-tls", "key": "key"},
                        },
                    }
                ]
            },
        },
    }


@pytest.fixture
def alertmanager_secrets():
    """Source secrets referenced by operator_config_body."""
    return {
        ("gmp-public", "alertmanager-tls"): {"cert": b"cert-bytes", "key": b"key-bytes"},
        ("gmp-public", "alertmanager-authorization"): {"token": b"auth-bearer-password"},
    }


@pytest.fixture
def pod_monitoring_body():
    """Sample PodMonitoring."""
    return {
        "apiVersion": "monitoring.googleapis.com/v1",
        "kind": "PodMonitoring",
        "metadata": {"name": "collector-podmon", "namespace": "n"},
        "spec": {
            "selector": {"matchLabels": {"app.kubernetes.io/name": "collector"}},
            "endpoints": [
                {"port": "prom-metrics", "interval": "5s"},
                {"port": 8080, "interval": "10s", "path": "/custom"},
            ],
        },
    }


@pytest.fixture
def cluster_pod_monitoring_body():
    """Sample ClusterPodMonitoring."""
    return {
        "apiVersion": "monitoring.googleapis.com/v1",
        "kind": "ClusterPodMonitoring",
        "metadata": {"name": "collector-cmon"},
        "spec": {
            "selector": {
                "matchExpressions": [{"key": "tier", "operator": "In", "values": ["web", "api"]}],
            },
            "endpoints": [{"port": "metrics", "interval": "30s"}],
        },
    }


def _rules_body(kind, name, namespace=None, expr="sum(up)", labels=None):
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    rule = {"record": "rule:one", "expr": expr}
    if labels:
        rule["labels"] = labels
    return {
        "apiVersion": "monitoring.googleapis.com/v1",
        "kind": kind,
        "metadata": metadata,
        "spec": {"groups": [{"name": "group-1", "rules": [rule]}]},
    }


@pytest.fixture
def rules_body_factory():
    """Build Rules, ClusterRules and GlobalRules bodies."""
    return _rules_body


@pytest.fixture
def rules_body():
    return _rules_body("Rules", "rules", "n", expr="avg(down) > 1", labels={"flavor": "test"})


@pytest.fixture
def cluster_rules_body():
    return _rules_body("ClusterRules", "x-cluster-rules", expr="sum(up)", labels={"flavor": "test"})


@pytest.fixture
def global_rules_body():
    return _rules_body("GlobalRules", "global-rules", expr="avg(up)")
