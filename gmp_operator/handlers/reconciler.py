"""Reconciliation driver for the generated collection and rule configuration."""
import asyncio
from typing import Dict, Optional, Set

from loguru import logger

from ..clients import KubernetesClient
from ..exceptions import RetryBudgetExhausted
from ..models import ResourceKey
from ..synthesis import ConfigSynthesizer, Snapshot, SynthesisResult, referenced_secrets
from ..synthesis.snapshot import SecretData, SecretId
from ..utils import Config, RetryPolicy, retry_transient
from .status import StatusReconciler


class ReconciliationDriver:
    """
    Runs global synthesis cycles, one at a time.

    Any number of triggers arriving while a cycle runs lead to exactly one
    follow-up cycle. Each cycle works from one snapshot of the resource cache
    taken at its start:

        Idle -> Collecting -> Synthesizing -> Publishing -> Idle
    """

    def __init__(self, config: Config, client: KubernetesClient, cache, synthesizer: ConfigSynthesizer = None):
        self.config = config
        self.client = client
        self.cache = cache
        self.policy = RetryPolicy.from_config(config)
        self.synthesizer = synthesizer or ConfigSynthesizer(config)
        self.status = StatusReconciler(client, self.policy)

        self.state = "Idle"
        self.cycles = 0
        self.referenced_secrets: Set[SecretId] = set()
        self.last_result: Optional[SynthesisResult] = None
        self._pending = asyncio.Event()
        self._dirty: Set[ResourceKey] = set()
        self._stopping = False
        self._requeue_handle: Optional[asyncio.TimerHandle] = None

    def trigger(self, key: ResourceKey) -> None:
        """Request a cycle because the object identified by key changed."""
        self._dirty.add(key)
        self._pending.set()

    def stop(self) -> None:
        """Stop after the current step, abandoning remaining writes."""
        self._stopping = True
        self._pending.set()
        if self._requeue_handle is not None:
            self._requeue_handle.cancel()

    @property
    def stopping(self) -> bool:
        return self._stopping

    def _requeue(self, delay: float) -> None:
        logger.warning(f"Requeueing reconciliation in {delay:.1f}s")
        loop = asyncio.get_running_loop()
        self._requeue_handle = loop.call_later(delay, self._pending.set)

    async def run(self) -> None:
        """Process triggers until stopped."""
        logger.info("Reconciliation driver started")
        while not self._stopping:
            await self._pending.wait()
            if self._stopping:
                break
            self._pending.clear()
            keys, self._dirty = self._dirty, set()
            logger.debug(f"Starting reconciliation for {len(keys)} changed object(s)")

            try:
                await asyncio.wait_for(self.run_cycle(), timeout=self.config.cycle_timeout)
            except RetryBudgetExhausted as e:
                logger.warning(f"Reconciliation cycle gave up: {e}")
                self._requeue(self.policy.max_interval)
            except asyncio.TimeoutError:
                logger.warning(f"Reconciliation cycle exceeded {self.config.cycle_timeout}s")
                self._requeue(self.policy.max_interval)
            except Exception as e:
                logger.error(f"Reconciliation cycle failed: {e}")
                self._requeue(self.policy.max_interval)
            finally:
                self.state = "Idle"
        logger.info("Reconciliation driver stopped")

    async def collect(self) -> Snapshot:
        """Snapshot the cached resources and read the secrets they reference."""
        self.state = "Collecting"
        namespace = self.config.public_namespace
        snapshot = Snapshot.from_bodies(self.cache.bodies(), namespace)
        self.referenced_secrets = referenced_secrets(snapshot.operator_config, namespace)

        secrets: Dict[SecretId, SecretData] = {}
        for ns, name in sorted(self.referenced_secrets):
            data = await retry_transient(
                lambda ns=ns, name=name: self.client.get_secret_data(ns, name),
                self.policy,
                f"read of secret {ns}/{name}",
            )
            if data is not None:
                secrets[(ns, name)] = data
        return snapshot.with_secrets(secrets)

    async def publish(self, result: SynthesisResult) -> int:
        """Write generated ConfigMaps and Secrets. Returns the number of writes."""
        self.state = "Publishing"
        writes = 0
        for name, data in sorted(result.config_maps.items()):
            if self._stopping:
                return writes
            if await retry_transient(
                lambda name=name, data=data: self.client.apply_config_map(name, data),
                self.policy,
                f"update of config map {name}",
            ):
                writes += 1
        for name, data in sorted(result.secrets.items()):
            if self._stopping:
                return writes
            if await retry_transient(
                lambda name=name, data=data: self.client.apply_secret(name, data),
                self.policy,
                f"update of secret {name}",
            ):
                writes += 1
        return writes

    async def run_cycle(self) -> SynthesisResult:
        """Run one full cycle: collect, synthesize, publish artifacts, then status."""
        snapshot = await self.collect()

        self.state = "Synthesizing"
        result = self.synthesizer.synthesize(snapshot)

        writes = await self.publish(result)
        if not self._stopping:
            writes += await self.status.publish(snapshot, result, lambda: self._stopping)

        self.cycles += 1
        self.last_result = result
        failures = len(result.failures())
        logger.debug(f"Reconciliation cycle {self.cycles} done: {writes} write(s), {failures} failing resource(s)")
        return result
