"""
Tenant store: resolved tenant configuration plus the is_loading fetch guard.

`tenant` and `initialized` are persisted; `is_loading` is in-memory only and is the
mutual-exclusion signal shared by every tenant fetcher (see try_begin_loading).
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum

from session_client.config import TENANT_STORAGE_KEY
from session_client.storage import read_json, safe_remove, write_json

logger = logging.getLogger(__name__)


class TenantPlan(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"

    @classmethod
    def parse(cls, value) -> "TenantPlan":
        if not value:
            return cls.FREE
        try:
            return cls(str(value).upper())
        except ValueError:
            logger.warning("Unknown tenant plan %r; using FREE", value)
            return cls.FREE


@dataclass(frozen=True)
class TenantConfig:
    record_id: str
    account_code: str | None = None
    slug: str | None = None
    name: str | None = None
    plan: TenantPlan = TenantPlan.FREE
    settings: dict = field(default_factory=dict)
    theme: dict = field(default_factory=dict)
    feature_flags: dict = field(default_factory=dict)

    @property
    def resolved(self) -> bool:
        return bool(self.record_id and self.account_code)

    def to_dict(self) -> dict:
        return {
            "recordId": self.record_id,
            "accountCode": self.account_code,
            "slug": self.slug,
            "name": self.name,
            "plan": self.plan.value,
            "settings": self.settings,
            "theme": self.theme,
            "featureFlags": self.feature_flags,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TenantConfig | None":
        record_id = data.get("recordId")
        if not record_id:
            return None
        return cls(
            record_id=str(record_id),
            account_code=data.get("accountCode"),
            slug=data.get("slug"),
            name=data.get("name"),
            plan=TenantPlan.parse(data.get("plan")),
            settings=dict(data.get("settings") or {}),
            theme=dict(data.get("theme") or {}),
            feature_flags=dict(data.get("featureFlags") or {}),
        )


class TenantStore:
    def __init__(self, local_storage):
        self._local = local_storage
        self.tenant: TenantConfig | None = None
        self.initialized = False
        # Ticket of the fetch that holds the guard; None when no fetch is in flight
        self._loading_ticket: int | None = None
        self._tickets = itertools.count(1)

    @property
    def is_resolved(self) -> bool:
        return self.tenant is not None and self.tenant.resolved

    @property
    def is_loading(self) -> bool:
        return self._loading_ticket is not None

    def set_tenant(self, config: TenantConfig) -> None:
        """Replace the tenant wholesale (no merge)."""
        self.tenant = config
        self.initialized = True
        self._persist()

    def set_loading(self, loading: bool) -> None:
        """Force the guard on or off, regardless of which fetch holds it."""
        self._loading_ticket = next(self._tickets) if loading else None

    def try_begin_loading(self) -> int | None:
        """
        Check-then-set the fetch guard. Returns the ticket that owns the guard, or None
        if a fetch is already in flight. No await between check and set, so this is
        atomic on the event loop. Callers must pass the ticket to end_loading() in a
        finally block.
        """
        if self._loading_ticket is not None:
            return None
        self._loading_ticket = next(self._tickets)
        return self._loading_ticket

    def end_loading(self, ticket: int | None) -> None:
        """Release the guard only if `ticket` still owns it (a fetch outlived by reset() must not)."""
        if ticket is not None and self._loading_ticket == ticket:
            self._loading_ticket = None

    def reset(self) -> None:
        self.tenant = None
        self.initialized = False
        self._loading_ticket = None
        safe_remove(self._local, TENANT_STORAGE_KEY)

    async def rehydrate(self) -> bool:
        await asyncio.sleep(0)
        data = read_json(self._local, TENANT_STORAGE_KEY)
        if not isinstance(data, dict):
            return False
        tenant_data = data.get("tenant")
        self.tenant = TenantConfig.from_dict(tenant_data) if isinstance(tenant_data, dict) else None
        self.initialized = bool(data.get("initialized"))
        return True

    def _persist(self) -> None:
        payload = {
            "tenant": self.tenant.to_dict() if self.tenant is not None else None,
            "initialized": self.initialized,
        }
        result = write_json(self._local, TENANT_STORAGE_KEY, payload)
        if not result.ok:
            logger.debug("Tenant store not persisted: %s", result.error)
