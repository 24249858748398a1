"""
Bootstrap orchestrator: the once-per-mount sequence that brings a session to a stable state.

Steps, first matching one wins:
1. Authorization code in the location -> exchange it, store tokens (tenant deferred),
   fetch tenant, strip the code from the location. Ends the sequence whatever happens.
2. Access token but no tenant_id -> fetch tenant.
3. No access token but a stored refresh credential -> refresh grant, then fetch tenant.
   A rejected refresh credential tears the session down; it is never retried.

Only step 3's exchange failure changes authentication state; everything else is logged.
"""
import logging
from enum import Enum

from session_client.config import REFRESH_TOKEN_KEY
from session_client.errors import ProviderExchangeError
from session_client.navigation import extract_authorization_code, strip_callback_params
from session_client.storage import safe_get, safe_set
from session_client.tenant_config import load_tenant

logger = logging.getLogger(__name__)


class BootstrapState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    DONE = "done"


class BootstrapOutcome(str, Enum):
    ALREADY_ATTEMPTED = "already_attempted"
    NO_ACTION = "no_action"
    OAUTH_CALLBACK = "oauth_callback"
    TENANT_GAP_FILL = "tenant_gap_fill"
    REFRESHED = "refreshed"
    TORN_DOWN = "torn_down"


def read_refresh_credential(session_storage) -> str | None:
    result = safe_get(session_storage, REFRESH_TOKEN_KEY)
    return result.value if result.ok and result.value else None


def store_refresh_credential(session_storage, refresh_token: str | None) -> None:
    if not refresh_token:
        return
    result = safe_set(session_storage, REFRESH_TOKEN_KEY, refresh_token)
    if not result.ok:
        logger.warning("Refresh credential not stored; session will not survive token expiry")


class BootstrapOrchestrator:
    def __init__(self, *, credentials, tenants, identity, api, session_storage, navigator, teardown, cookies=None):
        self._credentials = credentials
        self._tenants = tenants
        self._identity = identity
        self._api = api
        self._session_storage = session_storage
        self._navigator = navigator
        self._teardown = teardown
        self._cookies = cookies
        self.state = BootstrapState.NOT_STARTED
        self.outcome: BootstrapOutcome | None = None
        self._closed = False

    def close(self) -> None:
        """Owner unmounted: results of exchanges still in flight are dropped."""
        self._closed = True

    async def run(self) -> BootstrapOutcome:
        if self.state is not BootstrapState.NOT_STARTED:
            return BootstrapOutcome.ALREADY_ATTEMPTED
        self.state = BootstrapState.RUNNING
        try:
            self.outcome = await self._attempt()
            logger.info("Bootstrap finished: %s", self.outcome.value)
            return self.outcome
        finally:
            self.state = BootstrapState.DONE

    async def _attempt(self) -> BootstrapOutcome:
        location = self._navigator.current_url
        if extract_authorization_code(location):
            await self._handle_oauth_callback(location)
            return BootstrapOutcome.OAUTH_CALLBACK

        if self._credentials.access_token and not self._credentials.tenant_id:
            await self._load_tenant("init")
            return BootstrapOutcome.TENANT_GAP_FILL

        refresh_token = read_refresh_credential(self._session_storage)
        if refresh_token and not self._credentials.access_token:
            return await self._exchange_refresh_credential(refresh_token)

        return BootstrapOutcome.NO_ACTION

    async def _handle_oauth_callback(self, location: str) -> None:
        try:
            session = await self._identity.handle_callback(location)
        except Exception as e:
            logger.error("OAuth callback handling failed: %s", e)
            return
        finally:
            self._navigator.replace(strip_callback_params(location))

        if self._closed:
            return
        self._credentials.update_tokens(access_token=session.access_token, tenant_id=None)
        self._credentials.set_session(session)
        store_refresh_credential(self._session_storage, session.refresh_token)
        await self._load_tenant("oauth callback")

    async def _exchange_refresh_credential(self, refresh_token: str) -> BootstrapOutcome:
        try:
            session = await self._identity.refresh_session(refresh_token)
            if not session or not session.access_token:
                raise ProviderExchangeError("No access token in refresh response")
        except Exception as e:
            logger.warning("Refresh credential rejected; clearing session: %s", e)
            self._teardown.run("refresh credential rejected")
            return BootstrapOutcome.TORN_DOWN

        if self._closed:
            return BootstrapOutcome.REFRESHED
        updates = {"access_token": session.access_token, "tenant_id": None}
        if session.role:
            updates["role"] = session.role
        self._credentials.update_tokens(**updates)
        # Rotating refresh tokens: keep the newest one
        store_refresh_credential(self._session_storage, session.refresh_token)
        await self._load_tenant("refresh")
        return BootstrapOutcome.REFRESHED

    async def _load_tenant(self, source: str) -> None:
        await load_tenant(self._api, self._credentials, self._tenants, cookies=self._cookies, source=source)
