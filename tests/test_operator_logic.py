"""Test the reconciliation driver without requiring a live Kubernetes cluster."""
import asyncio

import pytest
from unittest.mock import AsyncMock

from gmp_operator.exceptions import RetryBudgetExhausted
from gmp_operator.handlers.reconciler import ReconciliationDriver
from gmp_operator.handlers.watches import ResourceCache
from gmp_operator.models import ResourceKey, key_for_body
from gmp_operator.synthesis import ConfigSynthesizer
from gmp_operator.utils.retry import RetryPolicy, await_condition

WAIT = RetryPolicy(initial_interval=0.01, max_interval=0.05, timeout=2.0)


def _cache(*bodies):
    cache = ResourceCache()
    for body in bodies:
        cache.upsert(body)
    return cache


async def _run_until(driver, cycles, settle=0.0):
    """Run the driver until it completed the given number of cycles, then stop it."""
    task = asyncio.create_task(driver.run())

    async def done():
        return driver.cycles >= cycles

    try:
        assert await await_condition(done, WAIT)
        await asyncio.sleep(settle)
    finally:
        driver.stop()
        await task


class TriggeringSynthesizer(ConfigSynthesizer):
    """Synthesizer that fires triggers while the first cycle is in progress."""

    def __init__(self, config, triggers):
        super().__init__(config)
        self.driver = None
        self.triggers = triggers
        self.calls = 0

    def synthesize(self, snapshot):
        self.calls += 1
        if self.calls == 1:
            for i in range(self.triggers):
                self.driver.trigger(ResourceKey("PodMonitoring", "n", f"p{i}"))
        return super().synthesize(snapshot)


class TestReconciliationCycle:
    """Test a single reconciliation cycle."""

    @pytest.mark.asyncio
    async def test_cycle_publishes_everything(
        self, test_config, fake_client, operator_config_body, pod_monitoring_body, rules_body, alertmanager_secrets
    ):
        fake_client.source_secrets.update(alertmanager_secrets)
        driver = ReconciliationDriver(
            test_config, fake_client, _cache(operator_config_body, pod_monitoring_body, rules_body)
        )

        result = await driver.run_cycle()

        assert sorted(fake_client.config_maps) == ["collector", "rule-evaluator", "rules-generated"]
        assert sorted(fake_client.secrets) == ["alertmanager", "collection", "rules"]
        assert fake_client.secrets["rules"]["secret_gmp-public_alertmanager-tls_key"] == b"key-bytes"
        assert len(fake_client.statuses) == 3
        assert result.failures() == {}
        assert driver.cycles == 1

    @pytest.mark.asyncio
    async def test_secrets_read_in_order(self, test_config, fake_client, operator_config_body):
        driver = ReconciliationDriver(test_config, fake_client, _cache(operator_config_body))
        await driver.collect()
        assert fake_client.secret_reads == [
            ("gmp-public", "alertmanager"),
            ("gmp-public", "alertmanager-authorization"),
            ("gmp-public", "alertmanager-tls"),
        ]
        assert ("gmp-public", "alertmanager-tls") in driver.referenced_secrets

    @pytest.mark.asyncio
    async def test_no_operator_config_reads_default_secret_only(self, test_config, fake_client, pod_monitoring_body):
        driver = ReconciliationDriver(test_config, fake_client, _cache(pod_monitoring_body))
        await driver.collect()
        assert fake_client.secret_reads == [("gmp-public", "alertmanager")]

    @pytest.mark.asyncio
    async def test_second_cycle_writes_nothing(self, test_config, fake_client, pod_monitoring_body, rules_body):
        cache = _cache(pod_monitoring_body, rules_body)
        driver = ReconciliationDriver(test_config, fake_client, cache)
        await driver.run_cycle()

        # Feed the written statuses back the way a watch event would.
        for body in cache.bodies():
            body["status"] = fake_client.statuses[key_for_body(body)]
            cache.upsert(body)

        writes_before = len(fake_client.writes)
        await driver.run_cycle()
        assert len(fake_client.writes) == writes_before

    @pytest.mark.asyncio
    async def test_deleted_rules_removed_from_bundle(self, test_config, fake_client, rules_body, cluster_rules_body):
        cache = _cache(rules_body, cluster_rules_body)
        driver = ReconciliationDriver(test_config, fake_client, cache)
        await driver.run_cycle()
        assert len(fake_client.config_maps["rules-generated"]) == 2

        cache.delete(ResourceKey("Rules", "n", "rules"))
        await driver.run_cycle()
        assert list(fake_client.config_maps["rules-generated"]) == ["clusterrules__x-cluster-rules.yaml"]

    @pytest.mark.asyncio
    async def test_stop_abandons_writes(self, test_config, fake_client, pod_monitoring_body):
        driver = ReconciliationDriver(test_config, fake_client, _cache(pod_monitoring_body))
        result = driver.synthesizer.synthesize(await driver.collect())
        driver.stop()

        assert driver.stopping
        assert await driver.publish(result) == 0
        assert fake_client.writes == []


class TestReconciliationLoop:
    """Test triggering, coalescing and requeueing."""

    @pytest.mark.asyncio
    async def test_triggers_before_start_coalesce(self, test_config, fake_client, pod_monitoring_body):
        driver = ReconciliationDriver(test_config, fake_client, _cache(pod_monitoring_body))
        for name in ("a", "b", "c"):
            driver.trigger(ResourceKey("PodMonitoring", "n", name))

        await _run_until(driver, 1, settle=0.05)
        assert driver.cycles == 1

    @pytest.mark.asyncio
    async def test_triggers_during_cycle_cause_one_followup(self, test_config, fake_client, pod_monitoring_body):
        synthesizer = TriggeringSynthesizer(test_config, triggers=5)
        driver = ReconciliationDriver(test_config, fake_client, _cache(pod_monitoring_body), synthesizer=synthesizer)
        synthesizer.driver = driver
        driver.trigger(ResourceKey("PodMonitoring", "n", "collector-podmon"))

        task = asyncio.create_task(driver.run())

        async def done():
            return driver.cycles >= 2

        assert await await_condition(done, WAIT)
        await asyncio.sleep(0.05)
        driver.stop()
        await task
        assert driver.cycles == 2
        assert synthesizer.calls == 2

    @pytest.mark.asyncio
    async def test_requeue_after_retry_budget_exhausted(self, test_config, fake_client, pod_monitoring_body):
        driver = ReconciliationDriver(test_config, fake_client, _cache(pod_monitoring_body))
        driver.publish = AsyncMock(side_effect=[RetryBudgetExhausted("conflicts"), 0])
        driver.trigger(ResourceKey("PodMonitoring", "n", "collector-podmon"))

        await _run_until(driver, 1)

        assert driver.publish.await_count == 2
        assert driver.cycles == 1

    @pytest.mark.asyncio
    async def test_requeue_after_cycle_timeout(self, test_config, fake_client, pod_monitoring_body):
        config = test_config.model_copy(update={"cycle_timeout": 0.05})
        driver = ReconciliationDriver(config, fake_client, _cache(pod_monitoring_body))
        calls = []
        original = fake_client.get_secret_data

        async def slow_first_read(namespace, name):
            calls.append((namespace, name))
            if len(calls) == 1:
                await asyncio.sleep(10)
            return await original(namespace, name)

        fake_client.get_secret_data = slow_first_read
        driver.trigger(ResourceKey("PodMonitoring", "n", "collector-podmon"))

        await _run_until(driver, 1)

        assert len(calls) == 2
        assert "collector" in fake_client.config_maps

    @pytest.mark.asyncio
    async def test_stop_while_idle(self, test_config, fake_client):
        driver = ReconciliationDriver(test_config, fake_client, _cache())
        task = asyncio.create_task(driver.run())
        await asyncio.sleep(0.01)
        driver.stop()
        await asyncio.wait_for(task, timeout=1)
        assert driver.cycles == 0
