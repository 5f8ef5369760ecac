"""Keep the CA bundle of the operator's webhook configurations current."""
import asyncio
import base64
from typing import Any, Dict, List, Optional

from loguru import logger

from ..clients.kubernetes import WEBHOOK_KINDS
from ..exceptions import RetryBudgetExhausted
from ..utils import Config, RetryPolicy, retry_transient

CA_KEYS = ("ca.crt", "tls.crt")


def build_ca_patch(bundles: List[Optional[str]], ca_bundle: str) -> List[Dict[str, Any]]:
    """JSON patch setting the CA bundle of every webhook whose bundle differs."""
    return [
        {"op": "add", "path": f"/webhooks/{i}/clientConfig/caBundle", "value": ca_bundle}
        for i, current in enumerate(bundles)
        if current != ca_bundle
    ]


class WebhookCAInjector:
    """Copies the serving CA into both webhook configurations of the operator."""

    def __init__(self, config: Config, client, policy: RetryPolicy = None):
        self.config = config
        self.client = client
        self.policy = policy or RetryPolicy.from_config(config)
        self.state = "Idle"
        self._lock = asyncio.Lock()

    async def ca_bundle(self) -> Optional[str]:
        """Base64 CA of the serving certificate, None if not available yet."""
        data = await self.client.get_secret_data(self.config.operator_namespace, self.config.webhook_tls_secret)
        if data is None:
            return None
        for key in CA_KEYS:
            if data.get(key):
                return base64.b64encode(data[key]).decode("ascii")
        return None

    async def sync(self) -> int:
        """Patch every webhook configuration that is out of date. Returns the number of patches."""
        ca_bundle = await self.ca_bundle()
        if ca_bundle is None:
            logger.warning(
                f"No CA found in secret {self.config.operator_namespace}/{self.config.webhook_tls_secret}"
            )
            return 0

        name = self.config.webhook_config_name
        patched = 0
        for kind in WEBHOOK_KINDS:
            bundles = await self.client.get_webhook_ca_bundles(kind, name)
            if bundles is None:
                logger.debug(f"{kind} {name} does not exist")
                continue
            patch = build_ca_patch(bundles, ca_bundle)
            if not patch:
                continue
            self.state = "Patching"
            await self.client.patch_webhook_configuration(kind, name, patch)
            patched += 1
        return patched

    async def reconcile(self) -> int:
        """Run sync with retries, one at a time."""
        async with self._lock:
            try:
                return await retry_transient(self.sync, self.policy, "webhook CA injection")
            except RetryBudgetExhausted as e:
                logger.warning(f"Webhook CA injection gave up: {e}")
                return 0
            finally:
                self.state = "Idle"
