"""Per-resource results of a synthesis cycle."""
from dataclasses import dataclass, field
from typing import Dict

from ..models import ResourceKey

REASON_SYNTHESIZED = "ConfigurationSynthesized"
REASON_SCOPE_LABEL_OVERRIDDEN = "ScopeLabelOverridden"
REASON_INVALID_SPEC = "InvalidSpec"
REASON_INVALID_EXPRESSION = "InvalidExpression"
REASON_SECRET_RESOLUTION_FAILED = "SecretResolutionFailed"


@dataclass(frozen=True)
class Outcome:
    """Whether a resource contributed to the generated configuration."""

    ok: bool
    reason: str
    message: str = ""

    @classmethod
    def success(cls, message: str = "", reason: str = REASON_SYNTHESIZED) -> "Outcome":
        return cls(True, reason, message)

    @classmethod
    def failure(cls, reason: str, message: str) -> "Outcome":
        return cls(False, reason, message)


@dataclass
class SynthesisResult:
    """
    Everything one synthesis cycle produced.

    config_maps and secrets map object name to the full data of that object.
    outcomes has one entry per resource of the snapshot, valid or not.
    """

    config_maps: Dict[str, Dict[str, str]] = field(default_factory=dict)
    secrets: Dict[str, Dict[str, bytes]] = field(default_factory=dict)
    outcomes: Dict[ResourceKey, Outcome] = field(default_factory=dict)

    def failures(self) -> Dict[ResourceKey, Outcome]:
        return {key: outcome for key, outcome in self.outcomes.items() if not outcome.ok}
