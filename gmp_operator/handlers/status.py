"""Write per-resource conditions after a synthesis cycle."""
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from ..models import CONDITION_CONFIGURATION_CREATE_SUCCESS, Condition, MonitoringStatus, ResourceKey, key_for
from ..synthesis import Outcome, Snapshot, SynthesisResult
from ..utils.retry import RetryPolicy, retry_transient


def desired_condition(outcome: Outcome, current: Optional[Condition], now: datetime) -> Condition:
    """
    Build the condition reflecting an outcome.

    The transition time only moves when the condition status flips.
    """
    status = "True" if outcome.ok else "False"
    transition = now
    if current is not None and current.status == status and current.lastTransitionTime is not None:
        transition = current.lastTransitionTime
    return Condition(
        type=CONDITION_CONFIGURATION_CREATE_SUCCESS,
        status=status,
        lastTransitionTime=transition,
        reason=outcome.reason,
        message=outcome.message,
    )


class StatusReconciler:
    """Compares synthesized outcomes with stored conditions and patches the differences."""

    def __init__(self, client, policy: RetryPolicy, clock: Callable[[], datetime] = None):
        self.client = client
        self.policy = policy
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def plan(self, snapshot: Snapshot, result: SynthesisResult) -> List[Tuple[ResourceKey, Condition]]:
        """Return the conditions that need writing, ordered by resource identity."""
        stored: Dict[ResourceKey, MonitoringStatus] = {key_for(r): r.status for r in snapshot.resources()}
        stored.update({invalid.key: invalid.status for invalid in snapshot.invalid})

        now = self.clock()
        changes = []
        for key in sorted(result.outcomes):
            status = stored.get(key, MonitoringStatus())
            current = status.get_condition(CONDITION_CONFIGURATION_CREATE_SUCCESS)
            condition = desired_condition(result.outcomes[key], current, now)
            if condition.same_state(current) and len(status.conditions) == 1:
                continue
            changes.append((key, condition))
        return changes

    async def publish(self, snapshot: Snapshot, result: SynthesisResult, stopping: Callable[[], bool] = lambda: False) -> int:
        """Patch changed conditions. Returns the number of status writes."""
        writes = 0
        for key, condition in self.plan(snapshot, result):
            if stopping():
                logger.warning("Shutting down, abandoning remaining status updates")
                break
            status = {"conditions": [condition.to_status_dict()]}
            if await retry_transient(
                lambda key=key, status=status: self.client.patch_status(key, status),
                self.policy,
                f"status update of {key}",
            ):
                writes += 1
            if condition.status != "True":
                logger.warning(f"{key} failed: {condition.message}")
        return writes
