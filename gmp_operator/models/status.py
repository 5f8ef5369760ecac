"""Pydantic models for monitoring resource status."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

CONDITION_CONFIGURATION_CREATE_SUCCESS = "ConfigurationCreateSuccess"


class Condition(BaseModel):
    """Condition represents the outcome of the last reconciliation of a resource."""

    type: str = Field(..., description="Type of condition")
    status: str = Field(..., description="Status of condition (True/False/Unknown)")
    lastTransitionTime: Optional[datetime] = Field(None, description="Last time condition transitioned")
    reason: str = Field("", description="Machine-readable reason for condition")
    message: str = Field("", description="Human-readable message for condition")

    def same_state(self, other: Optional["Condition"]) -> bool:
        """Compare everything except the transition timestamp."""
        if other is None:
            return False
        return (
            self.type == other.type
            and self.status == other.status
            and self.reason == other.reason
            and self.message == other.message
        )

    def to_status_dict(self) -> dict:
        data = self.model_dump(mode="json")
        if data["lastTransitionTime"] is not None:
            # Kubernetes expects RFC 3339 with second precision.
            data["lastTransitionTime"] = self.lastTransitionTime.strftime("%Y-%m-%dT%H:%M:%SZ")
        return data


class MonitoringStatus(BaseModel):
    """Status shared by all monitoring custom resources."""

    conditions: List[Condition] = Field(default_factory=list, description="Current conditions")

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        """Get the condition of the given type if it exists."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None
