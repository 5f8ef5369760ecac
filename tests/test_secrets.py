"""Tests for secret reference collection and aggregation."""
import pytest

from gmp_operator.exceptions import SecretResolutionError
from gmp_operator.models import OperatorConfig
from gmp_operator.synthesis.secrets import (
    NOOP_ALERTMANAGER_CONFIG,
    SecretAggregator,
    SecretRef,
    alertmanager_config_ref,
    collect_references,
    referenced_secrets,
)


@pytest.fixture
def operator_config(operator_config_body):
    return OperatorConfig.model_validate(operator_config_body)


class TestCollectReferences:
    """Tests for walking the OperatorConfig for secret references."""

    def test_alertmanager_references(self, operator_config):
        refs = collect_references(operator_config, "gmp-public")
        assert refs == [
            SecretRef("rules", "gmp-public", "alertmanager-authorization", "token"),
            SecretRef("rules", "gmp-public", "alertmanager-tls", "cert"),
            SecretRef("rules", "gmp-public", "alertmanager-tls", "key"),
        ]

    def test_collection_and_rules_credentials(self, operator_config_body):
        operator_config_body["collection"]["credentials"] = {"name": "gcp", "key": "sa.json"}
        operator_config_body["rules"]["credentials"] = {"name": "gcp", "key": "sa.json", "namespace": "other"}
        refs = collect_references(OperatorConfig.model_validate(operator_config_body), "gmp-public")
        assert refs[0] == SecretRef("collection", "gmp-public", "gcp", "sa.json")
        assert refs[1] == SecretRef("rules", "other", "gcp", "sa.json")

    def test_no_operator_config(self):
        assert collect_references(None, "gmp-public") == []

    def test_canonical_key(self):
        ref = SecretRef("rules", "gmp-public", "alertmanager-tls", "cert")
        assert ref.canonical_key == "secret_gmp-public_alertmanager-tls_cert"
        assert ref.source == ("gmp-public", "alertmanager-tls")

    def test_referenced_secrets_include_alertmanager_config(self, operator_config):
        assert referenced_secrets(operator_config, "gmp-public") == {
            ("gmp-public", "alertmanager-authorization"),
            ("gmp-public", "alertmanager-tls"),
            ("gmp-public", "alertmanager"),
        }

    def test_alertmanager_config_ref_default(self):
        ref, explicit = alertmanager_config_ref(None, "gmp-public")
        assert ref.source == ("gmp-public", "alertmanager")
        assert ref.key == "alertmanager.yaml"
        assert not explicit

    def test_alertmanager_config_ref_explicit(self, operator_config_body):
        operator_config_body["managedAlertmanager"] = {"configSecret": {"name": "am-config", "key": "am.yaml"}}
        ref, explicit = alertmanager_config_ref(OperatorConfig.model_validate(operator_config_body), "gmp-public")
        assert ref == SecretRef("alertmanager", "gmp-public", "am-config", "am.yaml")
        assert explicit


class TestSecretAggregator:
    """Tests for resolving references into canonical secrets."""

    def test_aggregate(self, operator_config, alertmanager_secrets):
        aggregator = SecretAggregator(alertmanager_secrets)
        result = aggregator.aggregate(collect_references(operator_config, "gmp-public"))
        assert result.errors == {}
        assert result.secrets["collection"] == {}
        assert result.secrets["rules"] == {
            "secret_gmp-public_alertmanager-authorization_token": b"auth-bearer-password",
            "secret_gmp-public_alertmanager-tls_cert": b"cert-bytes",
            "secret_gmp-public_alertmanager-tls_key": b"key-bytes",
        }
        assert list(result.secrets["rules"]) == sorted(result.secrets["rules"])

    def test_missing_secret_isolated(self, operator_config, alertmanager_secrets):
        del alertmanager_secrets[("gmp-public", "alertmanager-authorization")]
        result = SecretAggregator(alertmanager_secrets).aggregate(collect_references(operator_config, "gmp-public"))
        assert len(result.errors) == 1
        error = next(iter(result.errors.values()))
        assert "secret not found" in str(error)
        assert sorted(result.secrets["rules"]) == [
            "secret_gmp-public_alertmanager-tls_cert",
            "secret_gmp-public_alertmanager-tls_key",
        ]

    def test_missing_key(self):
        aggregator = SecretAggregator({("ns", "s"): {"other": b"x"}})
        with pytest.raises(SecretResolutionError) as exc_info:
            aggregator.resolve(SecretRef("rules", "ns", "s", "k"))
        assert "key not found" in str(exc_info.value)
        assert exc_info.value.key == "k"

    def test_empty_refs(self):
        result = SecretAggregator({}).aggregate([])
        assert result.secrets == {"collection": {}, "rules": {}}

    def test_alertmanager_default_missing_uses_noop(self):
        ref, explicit = alertmanager_config_ref(None, "gmp-public")
        assert SecretAggregator({}).alertmanager_secret(ref, explicit) == {"config.yaml": NOOP_ALERTMANAGER_CONFIG}

    def test_alertmanager_default_present(self):
        ref, explicit = alertmanager_config_ref(None, "gmp-public")
        aggregator = SecretAggregator({("gmp-public", "alertmanager"): {"alertmanager.yaml": b"route: {}\n"}})
        assert aggregator.alertmanager_config(ref, explicit) == b"route: {}\n"

    def test_alertmanager_explicit_missing_raises(self):
        ref = SecretRef("alertmanager", "gmp-public", "am-config", "am.yaml")
        with pytest.raises(SecretResolutionError):
            SecretAggregator({}).alertmanager_config(ref, explicit=True)
