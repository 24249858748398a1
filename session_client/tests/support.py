"""
Test doubles shared by the session_client tests.
"""
import asyncio
import copy
import time

import jwt

from session_client.errors import ProviderExchangeError
from session_client.identity import ProviderSession

TEST_SIGNING_SECRET = "session-client-test-secret-0123456789abcdef"


def make_token(expires_in: float = 600, **claims) -> str:
    """Unsigned-for-our-purposes JWT; only exp is read client-side."""
    payload = {"sub": "user-1", "exp": time.time() + expires_in, **claims}
    return jwt.encode(payload, TEST_SIGNING_SECRET, algorithm="HS256")


class FakeIdentity:
    """Identity provider double: scripted results, records calls."""

    def __init__(self, callback_result=None, refresh_results=None, delay: float = 0.0):
        self.callback_result = callback_result
        self.refresh_results = list(refresh_results or [])
        self.delay = delay
        self.callback_calls: list[str] = []
        self.refresh_calls: list[str] = []

    def begin_login(self) -> str:
        return "http://as.example/authorize?response_type=code"

    async def handle_callback(self, location: str) -> ProviderSession:
        self.callback_calls.append(location)
        await asyncio.sleep(self.delay)
        if isinstance(self.callback_result, Exception):
            raise self.callback_result
        if self.callback_result is None:
            raise ProviderExchangeError("no scripted callback result")
        return self.callback_result

    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        self.refresh_calls.append(refresh_token)
        await asyncio.sleep(self.delay)
        if not self.refresh_results:
            raise ProviderExchangeError("Refresh token revoked")
        result = self.refresh_results.pop(0) if len(self.refresh_results) > 1 else self.refresh_results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeApi:
    """Tenant API double. `gate` (asyncio.Event) holds responses until set."""

    def __init__(self, response=None, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.response = response
        self.error = error
        self.gate = gate
        self.calls: list[str] = []

    async def get(self, path: str, *, params=None):
        self.calls.append(path)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.response)


class FailingStorage:
    """Storage whose every access raises (quota exceeded / storage disabled)."""

    def get_item(self, key):
        raise OSError("storage disabled")

    def set_item(self, key, value):
        raise OSError("storage disabled")

    def remove_item(self, key):
        raise OSError("storage disabled")


TENANT_RESPONSE = {
    "tenantId": "X",
    "accountCode": "BK-1",
    "slug": "happy-paws",
    "name": "Happy Paws",
    "plan": "PRO",
    "settings": {"timezone": "UTC"},
    "featureFlags": {"beta": True},
    "user": {"id": "u-1", "role": "admin"},
}


