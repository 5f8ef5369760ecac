"""Shared Pydantic models for object metadata, selectors and secret references."""
import re
from typing import Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_DURATION_RE = re.compile(
    r"^(?:(\d+)y)?(?:(\d+)w)?(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?(?:(\d+)ms)?$"
)
_DURATION_UNITS = (365 * 86400, 7 * 86400, 86400, 3600, 60, 1, 0.001)


def parse_duration(value: str) -> float:
    """Parse a Prometheus duration such as '1m30s' into seconds."""
    match = _DURATION_RE.match(value or "")
    if not value or not match:
        raise ValueError(f"invalid duration {value!r}")
    return sum(int(g) * unit for g, unit in zip(match.groups(), _DURATION_UNITS) if g)


class ResourceKey(NamedTuple):
    """Identity of a watched object: kind plus namespace (empty if cluster-scoped) and name."""

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


class OwnerReference(BaseModel):
    """Reference to the owner of an object, used for garbage collection."""

    apiVersion: str
    kind: str
    name: str
    uid: str
    controller: Optional[bool] = None
    blockOwnerDeletion: Optional[bool] = None


class ObjectMeta(BaseModel):
    """The subset of Kubernetes object metadata the operator reads."""

    name: str = Field(..., description="Object name")
    namespace: str = Field("", description="Namespace, empty for cluster-scoped objects")
    uid: Optional[str] = None
    generation: Optional[int] = None
    resourceVersion: Optional[str] = None
    ownerReferences: List[OwnerReference] = Field(default_factory=list)


class SecretKeySelector(BaseModel):
    """Reference to a single key of a secret."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Name of the secret")
    key: str = Field(..., description="Key within the secret")
    namespace: Optional[str] = Field(None, description="Namespace, defaults to the referencing object's")

    @field_validator("name", "key")
    @classmethod
    def validate_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("secret name and key must not be empty")
        return v

    def resolve_namespace(self, default: str) -> str:
        return self.namespace or default


class LabelSelectorRequirement(BaseModel):
    """A set-based label requirement."""

    key: str
    operator: str
    values: List[str] = Field(default_factory=list)

    @field_validator("operator")
    @classmethod
    def validate_operator(cls, v):
        if v not in ("In", "NotIn", "Exists", "DoesNotExist"):
            raise ValueError(f"unsupported label selector operator {v!r}")
        return v


class LabelSelector(BaseModel):
    """Kubernetes label selector."""

    matchLabels: Dict[str, str] = Field(default_factory=dict)
    matchExpressions: List[LabelSelectorRequirement] = Field(default_factory=list)
