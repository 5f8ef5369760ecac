"""Kopf handlers feeding watch events into the reconciliation driver."""
import copy
from typing import Any, Dict, List, Mapping, Optional

import kopf
from loguru import logger

from ..clients import KubernetesClient
from ..models import KINDS, ResourceKey, key_for_body
from ..utils import Config
from ..utils.helpers import API_GROUP, API_VERSION
from .reconciler import ReconciliationDriver
from .webhooks import WebhookCAInjector

# Fields the API server changes on every write without a change in content.
_VOLATILE_METADATA = ("resourceVersion", "managedFields")


def _comparable(body: Mapping[str, Any]) -> Dict[str, Any]:
    data = dict(body)
    meta = {k: v for k, v in (data.get("metadata") or {}).items() if k not in _VOLATILE_METADATA}
    data["metadata"] = meta
    return data


class ResourceCache:
    """Latest known body of every watched monitoring resource, by identity."""

    def __init__(self):
        self._bodies: Dict[ResourceKey, Dict[str, Any]] = {}

    def upsert(self, body: Mapping[str, Any]) -> bool:
        """Store a body. Returns whether it differs from the cached one."""
        key = key_for_body(body)
        new = copy.deepcopy(dict(body))
        old = self._bodies.get(key)
        self._bodies[key] = new
        return old is None or _comparable(old) != _comparable(new)

    def delete(self, key: ResourceKey) -> bool:
        """Forget a body. Returns whether it was cached."""
        return self._bodies.pop(key, None) is not None

    def get(self, key: ResourceKey) -> Optional[Dict[str, Any]]:
        return self._bodies.get(key)

    def bodies(self) -> List[Dict[str, Any]]:
        """Copies of all cached bodies, safe to use while events keep arriving."""
        return [copy.deepcopy(body) for body in self._bodies.values()]

    def __len__(self) -> int:
        return len(self._bodies)


# Lazily initialize shared state when needed
_config: Optional[Config] = None
_cache = ResourceCache()
_driver: Optional[ReconciliationDriver] = None
_injector: Optional[WebhookCAInjector] = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_cache() -> ResourceCache:
    return _cache


def get_driver() -> ReconciliationDriver:
    """Get the reconciliation driver (lazy initialization)."""
    global _driver
    if _driver is None:
        config = get_config()
        _driver = ReconciliationDriver(config, KubernetesClient(config), _cache)
    return _driver


def get_injector() -> WebhookCAInjector:
    """Get the webhook CA injector (lazy initialization)."""
    global _injector
    if _injector is None:
        config = get_config()
        _injector = WebhookCAInjector(config, KubernetesClient(config))
    return _injector


def handle_resource_event(event: Mapping[str, Any], body: Mapping[str, Any]) -> bool:
    """Update the cache from a watch event and trigger a cycle on change."""
    key = key_for_body(body)
    if event.get("type") == "DELETED":
        changed = get_cache().delete(key)
    else:
        changed = get_cache().upsert(body)
    if changed:
        logger.debug(f"{key} changed ({event.get('type') or 'listed'})")
        get_driver().trigger(key)
    return changed


async def on_resource_event(event, body, **kwargs):
    """Handle any event of a monitoring resource."""
    handle_resource_event(event, body)


for _info in KINDS.values():
    kopf.on.event(API_GROUP, API_VERSION, _info.plural, id=f"watch-{_info.plural}")(on_resource_event)


def is_referenced_secret(namespace, name, **_) -> bool:
    return (namespace, name) in get_driver().referenced_secrets


def is_webhook_tls_secret(namespace, name, **_) -> bool:
    config = get_config()
    return namespace == config.operator_namespace and name == config.webhook_tls_secret


def is_webhook_configuration(name, **_) -> bool:
    return name == get_config().webhook_config_name


@kopf.on.event("v1", "secrets", when=is_referenced_secret)
async def on_referenced_secret_event(event, namespace, name, **kwargs):
    """Re-synthesize when a secret used by the OperatorConfig changes."""
    logger.debug(f"Referenced secret {namespace}/{name} changed")
    get_driver().trigger(ResourceKey("Secret", namespace, name))


@kopf.on.event("v1", "secrets", when=is_webhook_tls_secret)
async def on_webhook_tls_secret_event(event, **kwargs):
    """Propagate a rotated serving certificate."""
    await get_injector().reconcile()


@kopf.on.event("admissionregistration.k8s.io", "v1", "validatingwebhookconfigurations", when=is_webhook_configuration)
async def on_validating_webhook_event(event, **kwargs):
    await get_injector().reconcile()


@kopf.on.event("admissionregistration.k8s.io", "v1", "mutatingwebhookconfigurations", when=is_webhook_configuration)
async def on_mutating_webhook_event(event, **kwargs):
    await get_injector().reconcile()


@kopf.on.probe(id="reconciliation")
def reconciliation_probe(**kwargs):
    """Report the driver's progress on the liveness endpoint."""
    driver = get_driver()
    return {
        "state": driver.state,
        "cycles": driver.cycles,
        "cached_resources": len(get_cache()),
    }


def register_handlers():
    """Register all handlers. This function is called from main.py."""
    logger.info(f"Watch handlers registered for {', '.join(KINDS)}")
