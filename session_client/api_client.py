"""
HTTP transport for the tenant-scoped API.

Attaches the bearer token and tenant headers (X-Tenant-Id / X-Account-Code) from the
credential store. Tenant bootstrap endpoints are exempt from the tenant header: they are
how tenant identity is established from the token subject in the first place.
A 401 hands control to the unauthorized handler (teardown + redirect to login).
"""
import logging
import re
from typing import Any, Callable

import httpx

from session_client.config import API_BASE_URL, HTTP_TIMEOUT_SECONDS
from session_client.errors import ApiError

logger = logging.getLogger(__name__)

TENANT_HEADER_EXEMPT_PATHS = (
    "/api/v1/config/tenant",
    "/config/tenant",
    "/tenants/current",
)

STATUS_MESSAGES = {
    400: "Invalid request. Please check your input.",
    404: "The requested resource was not found.",
    409: "Conflict. This action cannot be completed.",
    422: "Validation failed. Please check your input.",
    429: "Too many requests. Please try again later.",
    500: "An unexpected server error occurred. Please try again.",
    502: "Service temporarily unavailable. Please try again.",
    503: "Service temporarily unavailable. Please try again.",
}

_SNAKE = re.compile(r"_([a-z0-9])")


def is_tenant_header_exempt(path: str) -> bool:
    return any(exempt in path for exempt in TENANT_HEADER_EXEMPT_PATHS)


def camelize_keys(data: Any) -> Any:
    """snake_case -> camelCase for dict keys, recursively."""
    if isinstance(data, dict):
        return {
            (_SNAKE.sub(lambda m: m.group(1).upper(), k) if isinstance(k, str) else k): camelize_keys(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [camelize_keys(v) for v in data]
    return data


def _parse_response(r: httpx.Response) -> Any:
    if r.status_code == 204:
        return None
    if "application/json" in r.headers.get("content-type", ""):
        try:
            return camelize_keys(r.json())
        except ValueError:
            return None
    return r.text or None


def _error_message(r: httpx.Response, data: Any) -> str:
    if isinstance(data, str) and data.strip():
        return data
    if isinstance(data, dict):
        message = data.get("message") or data.get("error")
        if isinstance(message, str) and message:
            return message
    return STATUS_MESSAGES.get(r.status_code, f"Request failed with status {r.status_code}")


class ApiClient:
    def __init__(
        self,
        credentials,
        *,
        base_url: str = API_BASE_URL,
        cookies: httpx.Cookies | None = None,
        on_unauthorized: Callable[[], None] | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        self._credentials = credentials
        self._on_unauthorized = on_unauthorized
        # Share the jar (not a copy) so cookies set by the session layer go out with requests
        jar = cookies.jar if cookies is not None else None
        self._http = http or httpx.AsyncClient(base_url=base_url, cookies=jar, timeout=HTTP_TIMEOUT_SECONDS)

    def build_headers(self, path: str) -> dict[str, str]:
        state = self._credentials.state
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if state.access_token:
            headers["Authorization"] = f"Bearer {state.access_token}"
        if state.tenant_id:
            headers["X-Tenant-Id"] = state.tenant_id
        elif not is_tenant_header_exempt(path):
            logger.warning("No tenant ID for %s; tenant may not be loaded yet", path)
        if state.account_code:
            headers["X-Account-Code"] = state.account_code
        return headers

    async def request(self, method: str, path: str, *, params: dict | None = None, json: Any = None) -> Any:
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        r = await self._http.request(method, path, params=params or None, json=json, headers=self.build_headers(path))
        data = _parse_response(r)
        if r.status_code == 401:
            logger.warning("401 from %s %s; ending session", method, path)
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            raise ApiError(_error_message(r, data) if data else "Session expired. Please log in again.", 401)
        if r.status_code == 403:
            # Authenticated but not permitted: no logout
            raise ApiError(_error_message(r, data) if data else "You do not have permission to perform this action.", 403)
        if not r.is_success:
            raise ApiError(_error_message(r, data), r.status_code)
        return data

    async def get(self, path: str, *, params: dict | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, json=body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, json=body)

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self.request("PATCH", path, json=body)

    async def delete(self, path: str, *, params: dict | None = None, body: Any = None) -> Any:
        return await self.request("DELETE", path, params=params, json=body)

    async def aclose(self) -> None:
        await self._http.aclose()
