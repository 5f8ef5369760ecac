"""Startup and shutdown of the operator."""
import asyncio
import logging
from typing import Optional

import kopf
from kubernetes import config
from loguru import logger

from ..utils.config import Config
from .watches import get_driver, get_injector

_driver_task: Optional[asyncio.Task] = None
_injector_task: Optional[asyncio.Task] = None


def configure_operator(settings: kopf.OperatorSettings, app_config: Config = None, **_):
    """Configure kopf and load the Kubernetes configuration."""
    app_config = app_config or Config()

    settings.posting.level = logging.INFO
    settings.watching.connect_timeout = 1 * 60
    settings.watching.server_timeout = 10 * 60

    try:
        if app_config.kubeconfig:
            config.load_kube_config(config_file=app_config.kubeconfig)
            logger.info(f"Loaded Kubernetes configuration from {app_config.kubeconfig}")
        else:
            try:
                config.load_incluster_config()
                logger.info("Loaded in-cluster Kubernetes configuration")
            except config.ConfigException:
                config.load_kube_config()
                logger.info("Loaded local Kubernetes configuration")
    except Exception as e:
        logger.error(f"Failed to load Kubernetes configuration: {e}")
        raise

    logger.info(
        f"Operator configured for project {app_config.project_id!r}, location {app_config.location!r}, "
        f"cluster {app_config.cluster_name!r}"
    )
    logger.info(f"Operator namespace: {app_config.operator_namespace}, public namespace: {app_config.public_namespace}")


async def start_controllers() -> None:
    """Start the reconciliation driver and sync webhook CA bundles once."""
    global _driver_task, _injector_task
    driver = get_driver()
    _driver_task = asyncio.create_task(driver.run())
    # Initial CA sync, later ones are driven by watch events.
    _injector_task = asyncio.create_task(get_injector().reconcile())


async def _cancel(task: Optional[asyncio.Task]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def stop_controllers() -> None:
    """Stop the driver. An in-flight cycle abandons its remaining writes."""
    global _driver_task, _injector_task
    get_driver().stop()
    await _cancel(_injector_task)
    await _cancel(_driver_task)
    _driver_task = _injector_task = None
    logger.info("Reconciliation driver shut down")
