"""
Tenant bootstrap loader.

Scheduled on every mount; waits a short delay so the persisted stores can finish
rehydrating, then fetches the tenant config at most once, and only when it is really
missing. Failures leave the tenant unresolved for a later retry.
"""
import asyncio
import logging

from session_client.config import REHYDRATE_DELAY_SECONDS
from session_client.tenant_config import load_tenant

logger = logging.getLogger(__name__)


class TenantBootstrapLoader:
    def __init__(self, *, credentials, tenants, api, cookies=None, delay_seconds: float = REHYDRATE_DELAY_SECONDS):
        self._credentials = credentials
        self._tenants = tenants
        self._api = api
        self._cookies = cookies
        self.delay_seconds = delay_seconds
        self._has_initialized = False
        self._pending: asyncio.Task | None = None

    def schedule(self) -> asyncio.Task:
        """Start the delayed check; a previous pending check is cancelled first."""
        self.cancel()
        self._pending = asyncio.get_running_loop().create_task(self.run())
        return self._pending

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def run(self) -> bool:
        await asyncio.sleep(self.delay_seconds)
        return await self.evaluate()

    async def evaluate(self) -> bool:
        """Apply the decision table. Returns True if a fetch was issued."""
        tenant = self._tenants.tenant
        if tenant is not None and tenant.record_id and tenant.account_code:
            return False

        creds = self._credentials
        if creds.tenant_id and creds.account_code and tenant is not None and tenant.record_id == creds.tenant_id:
            return False

        if self._tenants.is_loading:
            return False

        if not creds.is_authenticated():
            return False

        if self._has_initialized:
            return False
        self._has_initialized = True

        logger.debug("Tenant missing after rehydration; loading")
        await load_tenant(self._api, creds, self._tenants, cookies=self._cookies, source="tenant loader")
        return True
