"""Turn a snapshot of all monitoring resources into generated configuration."""
from typing import List

from loguru import logger

from ..exceptions import SecretResolutionError
from ..models import key_for
from ..utils.config import Config
from ..utils.helpers import (
    ALERTMANAGER_SECRET_NAME,
    COLLECTION_SECRET_NAME,
    COLLECTOR_CONFIG_NAME,
    CONFIG_FILENAME,
    RULE_EVALUATOR_CONFIG_NAME,
    RULES_GENERATED_CONFIG_NAME,
    RULES_SECRET_NAME,
    build_secret_path,
)
from .collection import build_collection_config
from .outcome import REASON_INVALID_SPEC, REASON_SECRET_RESOLUTION_FAILED, Outcome, SynthesisResult
from .render import render_yaml
from .rule_evaluator import build_rule_evaluator_config
from .rules import build_rules_bundle
from .secrets import (
    SecretAggregator,
    alertmanager_config_ref,
    alertmanager_endpoint_refs,
    collect_references,
    selector_refs,
)
from .snapshot import Snapshot


class ConfigSynthesizer:
    """
    Pure synthesis step of a reconciliation cycle.

    ``synthesize`` does no I/O and depends only on its snapshot and the
    configuration, so equal snapshots produce byte-identical results.
    """

    def __init__(self, config: Config):
        self.config = config

    def synthesize(self, snapshot: Snapshot) -> SynthesisResult:
        result = SynthesisResult()
        for invalid in snapshot.invalid:
            result.outcomes[invalid.key] = Outcome.failure(REASON_INVALID_SPEC, invalid.message)

        namespace = self.config.public_namespace
        operator_config = snapshot.operator_config
        aggregator = SecretAggregator(snapshot.secrets)

        aggregation = aggregator.aggregate(collect_references(operator_config, namespace))
        errors: List[SecretResolutionError] = list(aggregation.errors.values())
        failed = set(aggregation.errors)
        result.secrets.update(aggregation.secrets)

        am_ref, explicit = alertmanager_config_ref(operator_config, namespace)
        try:
            result.secrets[ALERTMANAGER_SECRET_NAME] = aggregator.alertmanager_secret(am_ref, explicit)
        except SecretResolutionError as e:
            # Keep whatever configuration is currently deployed.
            logger.warning(f"Not updating Alertmanager configuration: {e}")
            errors.append(e)

        # Collection
        collection_credentials = None
        if operator_config is not None:
            refs = selector_refs(COLLECTION_SECRET_NAME, operator_config.collection.credentials, namespace)
            if refs and not failed.intersection(refs):
                collection_credentials = build_secret_path(refs[0].namespace, refs[0].name, refs[0].key)
        collection = build_collection_config(
            operator_config,
            list(snapshot.pod_monitorings),
            list(snapshot.cluster_pod_monitorings),
            credentials_file=collection_credentials,
        )
        result.config_maps[COLLECTOR_CONFIG_NAME] = {CONFIG_FILENAME: render_yaml(collection)}
        for resource in list(snapshot.pod_monitorings) + list(snapshot.cluster_pod_monitorings):
            result.outcomes[key_for(resource)] = Outcome.success()

        # Rule evaluation
        skip_endpoints = []
        credentials_resolved = True
        if operator_config is not None:
            rules_spec = operator_config.rules
            for i, endpoint in enumerate(rules_spec.alerting.alertmanagers):
                if failed.intersection(alertmanager_endpoint_refs(endpoint, namespace)):
                    logger.warning(f"Omitting alertmanager {endpoint.namespace}/{endpoint.name} with unresolved secrets")
                    skip_endpoints.append(i)
            credentials_resolved = not failed.intersection(
                selector_refs(RULES_SECRET_NAME, rules_spec.credentials, namespace)
            )
        rule_evaluator = build_rule_evaluator_config(
            operator_config,
            namespace,
            self.config.operator_namespace,
            project_id=self.config.project_id,
            skip_endpoints=skip_endpoints,
            credentials_resolved=credentials_resolved,
        )
        result.config_maps[RULE_EVALUATOR_CONFIG_NAME] = {CONFIG_FILENAME: render_yaml(rule_evaluator)}

        bundle, outcomes = build_rules_bundle(
            list(snapshot.rules) + list(snapshot.cluster_rules) + list(snapshot.global_rules),
            self.config.project_id,
            self.config.location,
            self.config.cluster_name,
        )
        result.config_maps[RULES_GENERATED_CONFIG_NAME] = bundle
        result.outcomes.update(outcomes)

        if operator_config is not None:
            key = key_for(operator_config)
            if errors:
                result.outcomes[key] = Outcome.failure(
                    REASON_SECRET_RESOLUTION_FAILED, "; ".join(str(e) for e in errors)
                )
            else:
                result.outcomes[key] = Outcome.success()
        return result
