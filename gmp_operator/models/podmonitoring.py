"""Pydantic models for PodMonitoring and ClusterPodMonitoring resources."""
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .meta import LabelSelector, ObjectMeta, parse_duration
from .status import MonitoringStatus


class ScrapeEndpoint(BaseModel):
    """Specification for a single scrape endpoint of the selected pods."""

    port: Union[int, str] = Field(..., description="Name or number of the container port to scrape")
    scheme: str = Field("http", description="Protocol scheme")
    path: str = Field("/metrics", description="HTTP path to scrape metrics from")
    interval: str = Field("1m", description="Scrape interval")
    timeout: Optional[str] = Field(None, description="Scrape timeout, defaults to the interval")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        if isinstance(v, int):
            if not 0 < v < 65536:
                raise ValueError("port number must be between 1 and 65535")
            return v
        if not v.strip():
            raise ValueError("port name cannot be empty")
        return v.strip()

    @field_validator("scheme")
    @classmethod
    def validate_scheme(cls, v):
        if v not in ("http", "https"):
            raise ValueError("scheme must be http or https")
        return v

    @field_validator("interval", "timeout")
    @classmethod
    def validate_duration(cls, v):
        if v is not None:
            parse_duration(v)
        return v

    @model_validator(mode="after")
    def validate_timeout(self):
        if self.timeout and parse_duration(self.timeout) > parse_duration(self.interval):
            raise ValueError(f"timeout {self.timeout} must not exceed interval {self.interval}")
        return self


class PodMonitoringSpec(BaseModel):
    """Specification shared by PodMonitoring and ClusterPodMonitoring."""

    selector: LabelSelector = Field(default_factory=LabelSelector, description="Label selector for pods")
    endpoints: List[ScrapeEndpoint] = Field(..., description="Endpoints to scrape on selected pods")

    @field_validator("endpoints")
    @classmethod
    def validate_endpoints(cls, v):
        if not v:
            raise ValueError("At least one endpoint must be specified")

        ports = [str(endpoint.port) for endpoint in v]
        if len(ports) != len(set(ports)):
            raise ValueError("Endpoint ports must be unique within a PodMonitoring")

        return v


class PodMonitoring(BaseModel):
    """Namespace-scoped selection of pods to scrape."""

    kind: Literal["PodMonitoring"] = "PodMonitoring"
    metadata: ObjectMeta
    spec: PodMonitoringSpec
    status: MonitoringStatus = Field(default_factory=MonitoringStatus)


class ClusterPodMonitoring(BaseModel):
    """Cluster-scoped selection of pods to scrape across all namespaces."""

    kind: Literal["ClusterPodMonitoring"] = "ClusterPodMonitoring"
    metadata: ObjectMeta
    spec: PodMonitoringSpec
    status: MonitoringStatus = Field(default_factory=MonitoringStatus)
