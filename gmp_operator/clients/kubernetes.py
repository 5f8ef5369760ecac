"""
Kubernetes API wrapper for the operator.

The official client is synchronous; every call is moved to a worker thread
so the kopf event loop never blocks. API errors that are expected to go away
on their own are translated into TransientError for the retry layer.
"""
import asyncio
import base64
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client
from kubernetes.client import ApiException
from loguru import logger

from ..exceptions import TransientError
from ..models import KINDS, ResourceKey
from ..utils.config import Config
from ..utils.helpers import API_GROUP, API_VERSION

WEBHOOK_KINDS = ("ValidatingWebhookConfiguration", "MutatingWebhookConfiguration")

_TRANSIENT_STATUSES = {404, 409, 429}


def is_transient(e: ApiException) -> bool:
    return e.status in _TRANSIENT_STATUSES or (e.status or 0) >= 500


def encode_secret_data(data: Dict[str, bytes]) -> Dict[str, str]:
    return {k: base64.b64encode(v).decode("ascii") for k, v in data.items()}


def decode_secret_data(data: Optional[Dict[str, str]]) -> Dict[str, bytes]:
    return {k: base64.b64decode(v) for k, v in (data or {}).items()}


class KubernetesClient:
    """Async facade over the Kubernetes API calls the operator makes."""

    def __init__(
        self,
        config: Optional[Config] = None,
        core_api: Optional[client.CoreV1Api] = None,
        custom_api: Optional[client.CustomObjectsApi] = None,
        admission_api: Optional[client.AdmissionregistrationV1Api] = None,
    ):
        self.config = config or Config()
        self.core = core_api or client.CoreV1Api()
        self.custom = custom_api or client.CustomObjectsApi()
        self.admission = admission_api or client.AdmissionregistrationV1Api()

    async def _call(self, fn: Callable[..., Any], *args, not_found_ok: bool = False, **kwargs) -> Any:
        """
        Run a blocking API call in a worker thread.

        Returns None for a missing object if not_found_ok is set. Transient
        API failures are raised as TransientError, anything else propagates.
        """
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except ApiException as e:
            if e.status == 404 and not_found_ok:
                return None
            if is_transient(e):
                raise TransientError(f"{getattr(fn, '__name__', 'API call')} failed with {e.status}: {e.reason}") from e
            raise

    def _owner_references(self) -> Optional[List[client.V1OwnerReference]]:
        if not (self.config.owner_deployment_name and self.config.owner_deployment_uid):
            return None
        return [client.V1OwnerReference(
            api_version="apps/v1",
            kind="Deployment",
            name=self.config.owner_deployment_name,
            uid=self.config.owner_deployment_uid,
            controller=True,
        )]

    def _metadata(self, name: str) -> client.V1ObjectMeta:
        return client.V1ObjectMeta(
            name=name,
            namespace=self.config.operator_namespace,
            owner_references=self._owner_references(),
        )

    # Secrets

    async def get_secret_data(self, namespace: str, name: str) -> Optional[Dict[str, bytes]]:
        """Read and decode the data of a secret. Returns None if it does not exist."""
        secret = await self._call(self.core.read_namespaced_secret, name, namespace, not_found_ok=True)
        if secret is None:
            return None
        return decode_secret_data(secret.data)

    async def apply_secret(self, name: str, data: Dict[str, bytes]) -> bool:
        """
        Make the generated secret in the operator namespace hold exactly data.

        Returns whether a write happened. Replacing sends the resourceVersion
        that was read, so a concurrent modification fails with a conflict.
        """
        namespace = self.config.operator_namespace
        current = await self._call(self.core.read_namespaced_secret, name, namespace, not_found_ok=True)
        if current is None:
            body = client.V1Secret(metadata=self._metadata(name), type="Opaque", data=encode_secret_data(data))
            await self._call(self.core.create_namespaced_secret, namespace, body)
            logger.info(f"Created secret {namespace}/{name}")
            return True

        if decode_secret_data(current.data) == data:
            logger.debug(f"Secret {namespace}/{name} is up to date")
            return False

        current.data = encode_secret_data(data)
        current.string_data = None
        if self._owner_references():
            current.metadata.owner_references = self._owner_references()
        await self._call(self.core.replace_namespaced_secret, name, namespace, current)
        logger.info(f"Updated secret {namespace}/{name}")
        return True

    # ConfigMaps

    async def apply_config_map(self, name: str, data: Dict[str, str]) -> bool:
        """Make the generated ConfigMap in the operator namespace hold exactly data."""
        namespace = self.config.operator_namespace
        current = await self._call(self.core.read_namespaced_config_map, name, namespace, not_found_ok=True)
        if current is None:
            body = client.V1ConfigMap(metadata=self._metadata(name), data=data)
            await self._call(self.core.create_namespaced_config_map, namespace, body)
            logger.info(f"Created config map {namespace}/{name}")
            return True

        if (current.data or {}) == data:
            logger.debug(f"Config map {namespace}/{name} is up to date")
            return False

        current.data = data
        if self._owner_references():
            current.metadata.owner_references = self._owner_references()
        await self._call(self.core.replace_namespaced_config_map, name, namespace, current)
        logger.info(f"Updated config map {namespace}/{name}")
        return True

    # Custom resources

    async def patch_status(self, key: ResourceKey, status: Dict[str, Any]) -> bool:
        """
        Merge-patch the status sub-resource of a monitoring resource.

        Returns False if the resource no longer exists.
        """
        info = KINDS[key.kind]
        body = {"status": status}
        if info.namespaced:
            patched = await self._call(
                self.custom.patch_namespaced_custom_object_status,
                API_GROUP, API_VERSION, key.namespace, info.plural, key.name, body,
                not_found_ok=True,
            )
        else:
            patched = await self._call(
                self.custom.patch_cluster_custom_object_status,
                API_GROUP, API_VERSION, info.plural, key.name, body,
                not_found_ok=True,
            )
        if patched is None:
            logger.debug(f"Not updating status of {key}, it was deleted")
            return False
        logger.info(f"Updated status of {key}")
        return True

    # Webhook configurations

    async def get_webhook_ca_bundles(self, kind: str, name: str) -> Optional[List[Optional[str]]]:
        """
        Return the base64 CA bundle of every webhook of a webhook configuration.

        Returns None if the configuration does not exist.
        """
        if kind == "ValidatingWebhookConfiguration":
            read = self.admission.read_validating_webhook_configuration
        else:
            read = self.admission.read_mutating_webhook_configuration
        obj = await self._call(read, name, not_found_ok=True)
        if obj is None:
            return None
        return [webhook.client_config.ca_bundle for webhook in (obj.webhooks or [])]

    async def patch_webhook_configuration(self, kind: str, name: str, patch: List[Dict[str, Any]]) -> None:
        """Apply a JSON patch to a webhook configuration."""
        if kind == "ValidatingWebhookConfiguration":
            fn = self.admission.patch_validating_webhook_configuration
        else:
            fn = self.admission.patch_mutating_webhook_configuration
        await self._call(fn, name, patch)
        logger.info(f"Patched CA bundle of {kind} {name}")
