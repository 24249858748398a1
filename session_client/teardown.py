"""
Session teardown: the one operation every logout and irrecoverable failure path calls.
Idempotent; each step is best-effort so a storage failure cannot leave the session half-alive.
"""
import logging

from session_client.config import LOGIN_PATH
from session_client.cookies import delete_tenant_slug_cookie
from session_client.flow_store import clear_flows

logger = logging.getLogger(__name__)


class SessionTeardown:
    def __init__(self, credentials, tenants, *, scheduler=None, navigator=None, cookies=None, login_path: str = LOGIN_PATH):
        self._credentials = credentials
        self._tenants = tenants
        self._scheduler = scheduler
        self._navigator = navigator
        self._cookies = cookies
        self.login_path = login_path
        self.count = 0

    def run(self, reason: str = "logout", *, redirect: bool = True) -> None:
        """Clear both stores and all derived storage; optionally navigate to the login path."""
        was_active = self._credentials.access_token is not None
        if self._scheduler is not None:
            self._scheduler.clear_refresh_timer()
        # clear_auth also drops the refresh credential slot
        self._credentials.clear_auth()
        self._tenants.reset()
        if self._cookies is not None:
            delete_tenant_slug_cookie(self._cookies)
        clear_flows()
        self.count += 1
        if was_active:
            logger.info("Session ended (%s)", reason)
        else:
            logger.debug("Teardown on inactive session (%s)", reason)
        if redirect and self._navigator is not None:
            self._navigator.assign(self.login_path)
