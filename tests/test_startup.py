"""Tests for operator startup and shutdown."""
import asyncio
from unittest.mock import AsyncMock, Mock, patch

import kopf
import pytest
from kubernetes import config as kube_config

from gmp_operator.handlers import startup


class TestConfigureOperator:
    """Tests for kopf settings and Kubernetes configuration loading."""

    def test_in_cluster(self, test_config):
        settings = kopf.OperatorSettings()
        with patch.object(startup.config, "load_incluster_config") as incluster, \
                patch.object(startup.config, "load_kube_config") as kubeconfig:
            startup.configure_operator(settings, app_config=test_config)
        incluster.assert_called_once()
        kubeconfig.assert_not_called()
        assert settings.watching.server_timeout == 600

    def test_falls_back_to_local_config(self, test_config):
        with patch.object(startup.config, "load_incluster_config", side_effect=kube_config.ConfigException("no")), \
                patch.object(startup.config, "load_kube_config") as kubeconfig:
            startup.configure_operator(kopf.OperatorSettings(), app_config=test_config)
        kubeconfig.assert_called_once_with()

    def test_explicit_kubeconfig(self, test_config):
        app_config = test_config.model_copy(update={"kubeconfig": "/tmp/kubeconfig"})
        with patch.object(startup.config, "load_kube_config") as kubeconfig:
            startup.configure_operator(kopf.OperatorSettings(), app_config=app_config)
        kubeconfig.assert_called_once_with(config_file="/tmp/kubeconfig")

    def test_failure_propagates(self, test_config):
        with patch.object(startup.config, "load_incluster_config", side_effect=kube_config.ConfigException("no")), \
                patch.object(startup.config, "load_kube_config", side_effect=kube_config.ConfigException("none")):
            with pytest.raises(kube_config.ConfigException):
                startup.configure_operator(kopf.OperatorSettings(), app_config=test_config)


class TestControllers:
    """Tests for starting and stopping background tasks."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        stopped = asyncio.Event()

        async def run():
            await stopped.wait()

        driver = Mock()
        driver.run = run
        driver.stop = Mock(side_effect=stopped.set)
        injector = Mock()
        injector.reconcile = AsyncMock(return_value=0)

        with patch.object(startup, "get_driver", return_value=driver), \
                patch.object(startup, "get_injector", return_value=injector):
            await startup.start_controllers()
            await asyncio.sleep(0)
            await startup.stop_controllers()

        driver.stop.assert_called_once()
        injector.reconcile.assert_awaited_once()
        assert startup._driver_task is None
