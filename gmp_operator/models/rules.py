"""Pydantic models for Rules, ClusterRules and GlobalRules resources."""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .meta import ObjectMeta, parse_duration
from .status import MonitoringStatus


class Rule(BaseModel):
    """A single recording or alerting rule."""

    model_config = ConfigDict(populate_by_name=True)

    record: Optional[str] = Field(None, description="Name of the recorded series")
    alert: Optional[str] = Field(None, description="Name of the alert")
    expr: str = Field(..., description="PromQL expression")
    for_: Optional[str] = Field(None, alias="for", description="Pending duration for alerts")
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_kind(self):
        if bool(self.record) == bool(self.alert):
            raise ValueError("exactly one of 'record' and 'alert' must be set")
        if self.record and (self.for_ or self.annotations):
            raise ValueError(f"recording rule {self.record!r} cannot have 'for' or annotations")
        if self.for_:
            parse_duration(self.for_)
        return self

    @property
    def name(self) -> str:
        return self.record or self.alert


class RuleGroup(BaseModel):
    """A named group of rules evaluated together."""

    name: str
    interval: Optional[str] = None
    rules: List[Rule] = Field(default_factory=list)

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v):
        if v is not None:
            parse_duration(v)
        return v


class RulesSpec(BaseModel):
    """Rule groups of a rules resource."""

    groups: List[RuleGroup] = Field(default_factory=list)

    @field_validator("groups")
    @classmethod
    def validate_groups(cls, v):
        names = [group.name for group in v]
        if len(names) != len(set(names)):
            raise ValueError("Rule group names must be unique")
        return v


class Rules(BaseModel):
    """Namespace-scoped rules, isolated to the resource's namespace."""

    kind: Literal["Rules"] = "Rules"
    metadata: ObjectMeta
    spec: RulesSpec
    status: MonitoringStatus = Field(default_factory=MonitoringStatus)


class ClusterRules(BaseModel):
    """Cluster-scoped rules, isolated to the cluster."""

    kind: Literal["ClusterRules"] = "ClusterRules"
    metadata: ObjectMeta
    spec: RulesSpec
    status: MonitoringStatus = Field(default_factory=MonitoringStatus)


class GlobalRules(BaseModel):
    """Rules evaluated across all data of the project, without isolation."""

    kind: Literal["GlobalRules"] = "GlobalRules"
    metadata: ObjectMeta
    spec: RulesSpec
    status: MonitoringStatus = Field(default_factory=MonitoringStatus)
