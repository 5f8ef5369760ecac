"""Immutable view of all inputs of one synthesis cycle."""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Tuple

import pydantic
from loguru import logger

from ..exceptions import SpecError
from ..models import (
    ClusterPodMonitoring,
    ClusterRules,
    GlobalRules,
    MonitoringStatus,
    OperatorConfig,
    PodMonitoring,
    ResourceKey,
    Rules,
    key_for_body,
    parse_resource,
)
from ..utils.helpers import NAME_OPERATOR_CONFIG

SecretData = Mapping[str, bytes]
SecretId = Tuple[str, str]


class InvalidResource(NamedTuple):
    """A watched object whose body failed validation."""

    key: ResourceKey
    message: str
    status: MonitoringStatus


def _lenient_status(body: Mapping[str, Any]) -> MonitoringStatus:
    try:
        return MonitoringStatus.model_validate(body.get("status") or {})
    except pydantic.ValidationError:
        return MonitoringStatus()


@dataclass(frozen=True)
class Snapshot:
    """
    All resource state a synthesis cycle works from.

    Resources are sorted by identity so that anything derived from a
    snapshot is independent of event arrival order.
    """

    operator_config: Optional[OperatorConfig] = None
    pod_monitorings: Tuple[PodMonitoring, ...] = ()
    cluster_pod_monitorings: Tuple[ClusterPodMonitoring, ...] = ()
    rules: Tuple[Rules, ...] = ()
    cluster_rules: Tuple[ClusterRules, ...] = ()
    global_rules: Tuple[GlobalRules, ...] = ()
    invalid: Tuple[InvalidResource, ...] = ()
    secrets: Mapping[SecretId, SecretData] = field(default_factory=dict)

    @classmethod
    def from_bodies(cls, bodies: Iterable[Mapping[str, Any]], public_namespace: str) -> "Snapshot":
        """Parse raw object bodies into a snapshot without secret contents."""
        buckets: Dict[str, List[Any]] = {
            "PodMonitoring": [],
            "ClusterPodMonitoring": [],
            "Rules": [],
            "ClusterRules": [],
            "GlobalRules": [],
        }
        operator_config = None
        invalid: List[InvalidResource] = []

        for body in sorted(bodies, key=key_for_body):
            key = key_for_body(body)
            if key.kind == "OperatorConfig" and (
                key.namespace != public_namespace or key.name != NAME_OPERATOR_CONFIG
            ):
                logger.debug(f"Ignoring {key}, only {public_namespace}/{NAME_OPERATOR_CONFIG} is used")
                continue
            try:
                resource = parse_resource(body)
            except SpecError as e:
                logger.warning(f"Invalid resource {key}: {e}")
                invalid.append(InvalidResource(key, str(e), _lenient_status(body)))
                continue
            if isinstance(resource, OperatorConfig):
                operator_config = resource
            else:
                buckets[resource.kind].append(resource)

        return cls(
            operator_config=operator_config,
            pod_monitorings=tuple(buckets["PodMonitoring"]),
            cluster_pod_monitorings=tuple(buckets["ClusterPodMonitoring"]),
            rules=tuple(buckets["Rules"]),
            cluster_rules=tuple(buckets["ClusterRules"]),
            global_rules=tuple(buckets["GlobalRules"]),
            invalid=tuple(invalid),
        )

    def with_secrets(self, secrets: Mapping[SecretId, SecretData]) -> "Snapshot":
        return replace(self, secrets=dict(secrets))

    def resources(self) -> Iterator[Any]:
        """Iterate over all valid resources, the OperatorConfig first."""
        if self.operator_config is not None:
            yield self.operator_config
        yield from self.pod_monitorings
        yield from self.cluster_pod_monitorings
        yield from self.rules
        yield from self.cluster_rules
        yield from self.global_rules
