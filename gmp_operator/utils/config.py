"""Configuration management for the operator."""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Configuration settings for the GMP operator."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Deployment scope, injected into rules and used as query isolation labels
    project_id: str = Field(default="", description="GCP project the cluster runs in")
    location: str = Field(default="", description="Cluster location (zone or region)")
    cluster_name: str = Field(default="", description="Name of the cluster")

    # Kubernetes Configuration
    kubeconfig: Optional[str] = Field(default=None)
    operator_namespace: str = Field(default="gmp-system")
    public_namespace: str = Field(default="gmp-public")

    # Operator Configuration
    log_level: str = Field(default="INFO")
    webhook_tls_secret: str = Field(default="webhook-tls")
    owner_deployment_name: Optional[str] = Field(default=None)
    owner_deployment_uid: Optional[str] = Field(default=None)

    # Reconciliation timing, in seconds
    cycle_timeout: float = Field(default=60.0)
    retry_initial_interval: float = Field(default=0.5)
    retry_max_interval: float = Field(default=30.0)
    retry_timeout: float = Field(default=120.0)

    @property
    def webhook_config_name(self) -> str:
        return f"gmp-operator.{self.operator_namespace}.monitoring.googleapis.com"
