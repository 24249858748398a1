"""
Tenant configuration fetch shared by the bootstrap orchestrator and the tenant loader.

GET /api/v1/config/tenant resolves the tenant from the access token subject (no tenant
header needed). A successful fetch writes tenant_id/account_code/role to the credential
store, the full config to the tenant store, and the tenant slug cookie.
"""
import logging

from session_client.cookies import set_tenant_slug_cookie
from session_client.errors import TenantFetchError
from session_client.tenant_store import TenantConfig, TenantPlan

logger = logging.getLogger(__name__)

TENANT_CONFIG_PATH = "/api/v1/config/tenant"


def parse_tenant_config(data) -> TenantConfig:
    """Normalize the endpoint payload. Raises TenantFetchError when no tenant id is present."""
    if not isinstance(data, dict) or not data:
        raise TenantFetchError("No tenant config returned")
    tenant_id = data.get("tenantId") or data.get("recordId") or data.get("id")
    if not tenant_id:
        raise TenantFetchError("No tenantId in config response")
    nested = data.get("tenant") if isinstance(data.get("tenant"), dict) else {}
    return TenantConfig(
        record_id=str(tenant_id),
        account_code=data.get("accountCode") or nested.get("accountCode"),
        slug=data.get("slug"),
        name=data.get("name"),
        plan=TenantPlan.parse(data.get("plan")),
        settings=dict(data.get("settings") or {}),
        theme=dict(data.get("theme") or {}),
        feature_flags=dict(data.get("featureFlags") or {}),
    )


async def load_tenant(api, credentials, tenants, *, cookies=None, source: str = "bootstrap") -> TenantConfig | None:
    """
    Fetch tenant config once, guarded by the tenant store's is_loading flag.
    Returns the config, or None when skipped or failed. Never raises.
    """
    ticket = tenants.try_begin_loading()
    if ticket is None:
        logger.debug("Tenant fetch already in flight; skipping (%s)", source)
        return None
    generation = credentials.generation
    try:
        data = await api.get(TENANT_CONFIG_PATH)
        config = parse_tenant_config(data)
        if credentials.generation != generation:
            # Session was torn down while the request was in flight
            logger.info("Discarding tenant config fetched for an ended session (%s)", source)
            return None

        user = data.get("user") if isinstance(data.get("user"), dict) else None
        updates = {"tenant_id": config.record_id, "account_code": config.account_code}
        if user is not None:
            updates["user"] = user
            if user.get("role"):
                updates["role"] = user["role"]
        credentials.update_tokens(**updates)
        tenants.set_tenant(config)
        if cookies is not None:
            set_tenant_slug_cookie(cookies, config.slug)
        logger.info("Tenant %s resolved (%s)", config.record_id, source)
        return config
    except Exception as e:
        # Non-fatal: tenant stays unresolved and may be retried later
        logger.error("Failed to load tenant config (%s): %s", source, e)
        return None
    finally:
        tenants.end_loading(ticket)
