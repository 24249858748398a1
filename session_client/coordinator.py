"""
Session coordinator: the application context that owns the session stores and wires
the bootstrap orchestrator, tenant loader, refresh scheduler and teardown together.

One mount corresponds to one page load: mount() rehydrates the stores, schedules the
tenant loader, runs the bootstrap sequence once and arms token refresh; unmount()
cancels everything cancelable (refresh timer, visibility subscription, loader delay).
"""
import asyncio
import logging

import httpx

from session_client.api_client import ApiClient
from session_client.bootstrap import BootstrapOrchestrator, BootstrapOutcome, read_refresh_credential, store_refresh_credential
from session_client.config import LOGIN_PATH, MIN_REFRESH_INTERVAL_SECONDS, REFRESH_BUFFER_SECONDS, REHYDRATE_DELAY_SECONDS
from session_client.credential_store import CredentialStore
from session_client.database import init_db
from session_client.errors import ProviderExchangeError
from session_client.identity import IdentityProvider
from session_client.navigation import Navigator
from session_client.storage import LocalStorage, SessionStorage
from session_client.teardown import SessionTeardown
from session_client.tenant_loader import TenantBootstrapLoader
from session_client.tenant_store import TenantStore
from session_client.token_refresh import RefreshScheduler, VisibilitySignal

logger = logging.getLogger(__name__)


class SessionCoordinator:
    def __init__(
        self,
        *,
        identity,
        local_storage,
        session_storage,
        api=None,
        navigator: Navigator | None = None,
        cookies: httpx.Cookies | None = None,
        refresh_buffer_seconds: float = REFRESH_BUFFER_SECONDS,
        min_refresh_interval_seconds: float = MIN_REFRESH_INTERVAL_SECONDS,
        rehydrate_delay_seconds: float = REHYDRATE_DELAY_SECONDS,
        login_path: str = LOGIN_PATH,
    ):
        self.identity = identity
        self.session_storage = session_storage
        self.navigator = navigator or Navigator()
        self.cookies = cookies if cookies is not None else httpx.Cookies()
        self.visibility = VisibilitySignal()
        self.credentials = CredentialStore(local_storage, session_storage)
        self.tenants = TenantStore(local_storage)
        self.api = api or ApiClient(self.credentials, cookies=self.cookies, on_unauthorized=self.handle_unauthorized)
        self.scheduler = RefreshScheduler(
            self._refresh_access_token,
            token_getter=lambda: self.credentials.access_token,
            visibility=self.visibility,
            buffer_seconds=refresh_buffer_seconds,
            min_interval_seconds=min_refresh_interval_seconds,
        )
        self.teardown = SessionTeardown(
            self.credentials,
            self.tenants,
            scheduler=self.scheduler,
            navigator=self.navigator,
            cookies=self.cookies,
            login_path=login_path,
        )
        self.rehydrate_delay_seconds = rehydrate_delay_seconds
        self.orchestrator: BootstrapOrchestrator | None = None
        self.loader: TenantBootstrapLoader | None = None
        self.mounted = False
        self._refresh_initialized = False
        self._visibility_dispose = None

    async def mount(self, location: str = "/") -> BootstrapOutcome:
        if self.mounted:
            await self.unmount()
        self.mounted = True
        self.navigator.replace(location)
        self.orchestrator = BootstrapOrchestrator(
            credentials=self.credentials,
            tenants=self.tenants,
            identity=self.identity,
            api=self.api,
            session_storage=self.session_storage,
            navigator=self.navigator,
            teardown=self.teardown,
            cookies=self.cookies,
        )
        self.loader = TenantBootstrapLoader(
            credentials=self.credentials,
            tenants=self.tenants,
            api=self.api,
            cookies=self.cookies,
            delay_seconds=self.rehydrate_delay_seconds,
        )
        hydration = asyncio.gather(self.credentials.rehydrate(), self.tenants.rehydrate())
        self.loader.schedule()
        await hydration
        outcome = await self.orchestrator.run()
        self.sync_token_refresh()
        return outcome

    async def unmount(self) -> None:
        self._dispose_visibility()
        self.scheduler.dispose()
        self._refresh_initialized = False
        if self.loader is not None:
            self.loader.cancel()
        if self.orchestrator is not None:
            self.orchestrator.close()
        self.mounted = False

    def sync_token_refresh(self) -> None:
        """
        Arm refresh + visibility re-check once per token-present period. When the token is
        gone, dispose the scheduler so a refresh still in flight cannot revive the session.
        """
        token = self.credentials.access_token
        if token and not self._refresh_initialized:
            self._refresh_initialized = True
            self.scheduler.init_token_refresh(token, self._on_token_refreshed, self._on_session_expired)
            self._visibility_dispose = self.scheduler.setup_visibility_handler(
                token, self._on_token_refreshed, self._on_session_expired
            )
        elif not token:
            self._refresh_initialized = False
            self.scheduler.dispose()
            self._dispose_visibility()

    def set_visibility(self, visible: bool) -> None:
        self.visibility.set_visible(visible)

    def logout(self) -> None:
        self.teardown.run("logout")
        self.sync_token_refresh()

    def handle_unauthorized(self) -> None:
        self.teardown.run("unauthorized")
        self.sync_token_refresh()

    def _on_token_refreshed(self, new_access_token: str) -> None:
        self.credentials.update_tokens(access_token=new_access_token)

    def _on_session_expired(self) -> None:
        self.teardown.run("session expired")
        self.sync_token_refresh()

    async def _refresh_access_token(self) -> str:
        refresh_token = read_refresh_credential(self.session_storage)
        if not refresh_token:
            raise ProviderExchangeError("No refresh credential available")
        generation = self.credentials.generation
        session = await self.identity.refresh_session(refresh_token)
        if self.credentials.generation != generation:
            logger.info("Discarding refresh grant issued to an ended session")
            return session.access_token
        store_refresh_credential(self.session_storage, session.refresh_token)
        return session.access_token

    def _dispose_visibility(self) -> None:
        if self._visibility_dispose is not None:
            self._visibility_dispose()
            self._visibility_dispose = None


def build_coordinator() -> SessionCoordinator:
    """Coordinator wired to the configured AS, API and SQL store."""
    init_db()
    return SessionCoordinator(
        identity=IdentityProvider(),
        local_storage=LocalStorage(),
        session_storage=SessionStorage(),
    )
