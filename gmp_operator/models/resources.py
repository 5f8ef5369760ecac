"""Registry of watched custom resource kinds and the tagged resource union."""
from typing import Annotated, Any, Dict, Mapping, NamedTuple, Type, Union

import pydantic
from pydantic import Field, TypeAdapter

from ..exceptions import SpecError
from .meta import ResourceKey
from .operatorconfig import OperatorConfig
from .podmonitoring import ClusterPodMonitoring, PodMonitoring
from .rules import ClusterRules, GlobalRules, Rules


class KindInfo(NamedTuple):
    kind: str
    plural: str
    namespaced: bool
    model: Type[pydantic.BaseModel]


KINDS: Dict[str, KindInfo] = {
    info.kind: info
    for info in (
        KindInfo("OperatorConfig", "operatorconfigs", True, OperatorConfig),
        KindInfo("PodMonitoring", "podmonitorings", True, PodMonitoring),
        KindInfo("ClusterPodMonitoring", "clusterpodmonitorings", False, ClusterPodMonitoring),
        KindInfo("Rules", "rules", True, Rules),
        KindInfo("ClusterRules", "clusterrules", False, ClusterRules),
        KindInfo("GlobalRules", "globalrules", False, GlobalRules),
    )
}

MonitoredResource = Annotated[
    Union[OperatorConfig, PodMonitoring, ClusterPodMonitoring, Rules, ClusterRules, GlobalRules],
    Field(discriminator="kind"),
]

_resource_adapter = TypeAdapter(MonitoredResource)


def parse_resource(body: Mapping[str, Any]) -> MonitoredResource:
    """Parse a raw object body into its typed resource model."""
    try:
        return _resource_adapter.validate_python(dict(body))
    except pydantic.ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise SpecError(f"invalid {body.get('kind', 'resource')}: {errors}") from e


def key_for_body(body: Mapping[str, Any]) -> ResourceKey:
    """Build the identity of a raw object body."""
    meta = body.get("metadata") or {}
    return ResourceKey(body.get("kind", ""), meta.get("namespace") or "", meta.get("name", ""))


def key_for(resource: MonitoredResource) -> ResourceKey:
    return ResourceKey(resource.kind, resource.metadata.namespace, resource.metadata.name)
