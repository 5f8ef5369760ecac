"""Pydantic models for the OperatorConfig singleton."""
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .meta import ObjectMeta, SecretKeySelector, parse_duration
from .status import MonitoringStatus


class ExportFilters(BaseModel):
    """Series selectors limiting what the collectors export."""

    matchOneOf: List[str] = Field(default_factory=list)


class KubeletScraping(BaseModel):
    """Enables scraping of the kubelet and cAdvisor endpoints of every node."""

    interval: str = "30s"

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v):
        parse_duration(v)
        return v


class CollectionSpec(BaseModel):
    """Configuration of the collectors."""

    externalLabels: Dict[str, str] = Field(default_factory=dict)
    filter: ExportFilters = Field(default_factory=ExportFilters)
    kubeletScraping: Optional[KubeletScraping] = None
    credentials: Optional[SecretKeySelector] = None


class Authorization(BaseModel):
    """Authorization header configuration for an Alertmanager endpoint."""

    type: str = "Bearer"
    credentials: Optional[SecretKeySelector] = None


class SecretOrConfigMap(BaseModel):
    """Source of a TLS file. Only secret sources are supported."""

    secret: Optional[SecretKeySelector] = None


class TLSConfig(BaseModel):
    """TLS configuration for an Alertmanager endpoint."""

    ca: Optional[SecretOrConfigMap] = None
    cert: Optional[SecretOrConfigMap] = None
    keySecret: Optional[SecretKeySelector] = None
    serverName: Optional[str] = None
    insecureSkipVerify: bool = False


class AlertmanagerEndpoints(BaseModel):
    """An Alertmanager service discovered through its Endpoints object."""

    name: str
    namespace: str
    port: Union[int, str]
    scheme: str = "http"
    pathPrefix: Optional[str] = None
    timeout: str = "10s"
    apiVersion: str = "v2"
    authorization: Optional[Authorization] = None
    tls: Optional[TLSConfig] = None

    @field_validator("apiVersion")
    @classmethod
    def validate_api_version(cls, v):
        if v not in ("v1", "v2"):
            raise ValueError("apiVersion must be v1 or v2")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v):
        parse_duration(v)
        return v


class AlertingSpec(BaseModel):
    alertmanagers: List[AlertmanagerEndpoints] = Field(default_factory=list)


class RuleEvaluatorSpec(BaseModel):
    """Configuration of the rule evaluator."""

    externalLabels: Dict[str, str] = Field(default_factory=dict)
    queryProjectID: Optional[str] = None
    alerting: AlertingSpec = Field(default_factory=AlertingSpec)
    credentials: Optional[SecretKeySelector] = None


class ManagedAlertmanagerSpec(BaseModel):
    """Where to read the managed Alertmanager's configuration from."""

    configSecret: Optional[SecretKeySelector] = None


class OperatorConfig(BaseModel):
    """Singleton configuring collection and rule evaluation for the cluster."""

    kind: Literal["OperatorConfig"] = "OperatorConfig"
    metadata: ObjectMeta
    collection: CollectionSpec = Field(default_factory=CollectionSpec)
    rules: RuleEvaluatorSpec = Field(default_factory=RuleEvaluatorSpec)
    managedAlertmanager: Optional[ManagedAlertmanagerSpec] = None
    status: MonitoringStatus = Field(default_factory=MonitoringStatus)
