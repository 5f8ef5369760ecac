"""
Secret aggregation.

Credentials referenced from the OperatorConfig live in arbitrary secrets of
arbitrary namespaces. The workloads consuming them only mount one secret
each, so the referenced values are copied into canonical secrets under a
deterministic key per source (see ``build_secret_key``).
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from loguru import logger

from ..exceptions import SecretResolutionError
from ..models import OperatorConfig, SecretKeySelector
from ..utils.helpers import (
    ALERTMANAGER_SECRET_NAME,
    COLLECTION_SECRET_NAME,
    CONFIG_FILENAME,
    RULES_SECRET_NAME,
    build_secret_key,
)
from .snapshot import SecretData, SecretId

DEFAULT_ALERTMANAGER_SECRET_NAME = "alertmanager"
DEFAULT_ALERTMANAGER_SECRET_KEY = "alertmanager.yaml"

# Used when neither a custom nor the default configuration secret exists.
NOOP_ALERTMANAGER_CONFIG = b"""receivers:
  - name: noop
route:
  receiver: noop
"""


@dataclass(frozen=True)
class SecretRef:
    """A secret key referenced by the OperatorConfig for one consumer."""

    consumer: str
    namespace: str
    name: str
    key: str

    @property
    def canonical_key(self) -> str:
        return build_secret_key(self.namespace, self.name, self.key)

    @property
    def source(self) -> SecretId:
        return (self.namespace, self.name)


def selector_refs(consumer: str, selector: Optional[SecretKeySelector], namespace: str) -> List[SecretRef]:
    """Zero or one reference, depending on whether the selector is set."""
    if selector is None:
        return []
    return [SecretRef(consumer, selector.resolve_namespace(namespace), selector.name, selector.key)]


def alertmanager_endpoint_refs(endpoint, namespace: str) -> List[SecretRef]:
    """References of a single alertmanager endpoint, in a fixed order."""
    refs = []
    if endpoint.authorization is not None:
        refs += selector_refs(RULES_SECRET_NAME, endpoint.authorization.credentials, namespace)
    tls = endpoint.tls
    if tls is not None:
        if tls.ca is not None:
            refs += selector_refs(RULES_SECRET_NAME, tls.ca.secret, namespace)
        if tls.cert is not None:
            refs += selector_refs(RULES_SECRET_NAME, tls.cert.secret, namespace)
        refs += selector_refs(RULES_SECRET_NAME, tls.keySecret, namespace)
    return refs


def collect_references(operator_config: Optional[OperatorConfig], namespace: str) -> List[SecretRef]:
    """
    Collect all secret key references of the OperatorConfig.

    Selectors without a namespace resolve against ``namespace``, the
    namespace the OperatorConfig lives in.
    """
    if operator_config is None:
        return []
    refs = selector_refs(COLLECTION_SECRET_NAME, operator_config.collection.credentials, namespace)
    refs += selector_refs(RULES_SECRET_NAME, operator_config.rules.credentials, namespace)
    for endpoint in operator_config.rules.alerting.alertmanagers:
        refs += alertmanager_endpoint_refs(endpoint, namespace)
    return refs


def alertmanager_config_ref(operator_config: Optional[OperatorConfig], namespace: str) -> Tuple[SecretRef, bool]:
    """
    Return the source of the managed Alertmanager configuration.

    The flag tells whether the reference was configured explicitly. A missing
    default source is not an error.
    """
    managed = operator_config.managedAlertmanager if operator_config is not None else None
    if managed is not None and managed.configSecret is not None:
        selector = managed.configSecret
        return SecretRef(ALERTMANAGER_SECRET_NAME, selector.resolve_namespace(namespace), selector.name, selector.key), True
    return SecretRef(ALERTMANAGER_SECRET_NAME, namespace, DEFAULT_ALERTMANAGER_SECRET_NAME, DEFAULT_ALERTMANAGER_SECRET_KEY), False


def referenced_secrets(operator_config: Optional[OperatorConfig], namespace: str) -> Set[SecretId]:
    """All source secrets a cycle needs to read, including the Alertmanager configuration."""
    refs = collect_references(operator_config, namespace)
    refs.append(alertmanager_config_ref(operator_config, namespace)[0])
    return {ref.source for ref in refs}


@dataclass
class AggregationResult:
    """Canonical secret contents plus the references that could not be resolved."""

    secrets: Dict[str, Dict[str, bytes]] = field(default_factory=dict)
    errors: Dict[SecretRef, SecretResolutionError] = field(default_factory=dict)


class SecretAggregator:
    """
    Resolve secret references against prefetched secret contents.

    The aggregator does no I/O. ``sources`` maps (namespace, name) of every
    secret that exists to its decoded data; a source missing from the mapping
    does not exist.
    """

    def __init__(self, sources: Mapping[SecretId, SecretData]):
        self.sources = sources

    def resolve(self, ref: SecretRef) -> bytes:
        data = self.sources.get(ref.source)
        if data is None:
            raise SecretResolutionError(ref.namespace, ref.name, ref.key, "secret not found")
        if ref.key not in data:
            raise SecretResolutionError(ref.namespace, ref.name, ref.key, "key not found")
        return data[ref.key]

    def aggregate(self, refs: Iterable[SecretRef]) -> AggregationResult:
        """
        Build the collection and rules canonical secrets.

        Both secrets are always present in the result, possibly empty. A
        failing reference is recorded and skipped, the remaining ones still
        resolve.
        """
        result = AggregationResult(secrets={COLLECTION_SECRET_NAME: {}, RULES_SECRET_NAME: {}})
        for ref in refs:
            try:
                value = self.resolve(ref)
            except SecretResolutionError as e:
                logger.warning(f"Cannot resolve secret reference for {ref.consumer}: {e}")
                result.errors[ref] = e
                continue
            result.secrets[ref.consumer][ref.canonical_key] = value

        for name, data in result.secrets.items():
            result.secrets[name] = dict(sorted(data.items()))
        return result

    def alertmanager_config(self, ref: SecretRef, explicit: bool) -> bytes:
        """
        Return the managed Alertmanager configuration.

        Raises SecretResolutionError if an explicitly configured source is
        missing. A missing default source yields the no-op configuration.
        """
        try:
            return self.resolve(ref)
        except SecretResolutionError:
            if explicit:
                raise
            logger.debug(f"No Alertmanager config in {ref.namespace}/{ref.name}, using no-op config")
            return NOOP_ALERTMANAGER_CONFIG

    def alertmanager_secret(self, ref: SecretRef, explicit: bool) -> Dict[str, bytes]:
        return {CONFIG_FILENAME: self.alertmanager_config(ref, explicit)}
