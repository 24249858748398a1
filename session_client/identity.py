"""
Identity-provider client: login initiation, authorization code exchange, refresh grant.
Talks to the Authorization Server's /authorize and /token endpoints (PKCE S256).
Exchange failures raise ProviderExchangeError; callers treat them as expected outcomes.
"""
import logging
from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from session_client.config import CLIENT_ID, DEFAULT_SCOPE, HTTP_TIMEOUT_SECONDS, ISSUER, REDIRECT_URI
from session_client.errors import ProviderExchangeError
from session_client.flow_store import get_flow, store_flow
from session_client.pkce import generate_nonce, generate_pkce, generate_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSession:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    id_token: str | None = None
    scope: str | None = None
    role: str | None = None


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None


def _error_description(r: httpx.Response) -> str:
    if r.headers.get("content-type", "").startswith("application/json"):
        try:
            err = r.json()
        except ValueError:
            err = {}
        if isinstance(err, dict):
            return str(err.get("error_description") or err.get("error") or r.status_code)
    return f"HTTP {r.status_code}"


def _session_from_response(data: dict) -> ProviderSession:
    access_token = data.get("access_token") or data.get("accessToken")
    if not access_token:
        raise ProviderExchangeError("No access token in token response")
    return ProviderSession(
        access_token=access_token,
        refresh_token=data.get("refresh_token") or data.get("refreshToken"),
        expires_in=data.get("expires_in"),
        id_token=data.get("id_token"),
        scope=data.get("scope"),
        role=data.get("role"),
    )


class IdentityProvider:
    def __init__(
        self,
        *,
        issuer: str = ISSUER,
        client_id: str = CLIENT_ID,
        redirect_uri: str = REDIRECT_URI,
        scope: str = DEFAULT_SCOPE,
        http: httpx.AsyncClient | None = None,
    ):
        self.issuer = issuer.rstrip("/")
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scope = scope
        self._http = http

    def begin_login(self) -> str:
        """Store a fresh pending flow and return the AS /authorize URL to redirect to."""
        state = generate_state()
        nonce = generate_nonce()
        pkce = generate_pkce()
        store_flow(state, nonce=nonce, code_verifier=pkce.verifier)
        return self.authorize_url(state=state, code_challenge=pkce.challenge, nonce=nonce)

    def authorize_url(self, *, state: str, code_challenge: str, nonce: str | None = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        # nonce binds the ID token when openid is in scope
        if nonce:
            params["nonce"] = nonce
        return f"{self.issuer}/authorize?{urlencode(params)}"

    async def handle_callback(self, location: str) -> ProviderSession:
        """Exchange the authorization code found in `location` for tokens."""
        params = parse_qs(urlsplit(location).query, keep_blank_values=False)
        code = _first(params, "code")
        state = _first(params, "state")
        error = _first(params, "error")
        if error:
            raise ProviderExchangeError(_first(params, "error_description") or error)
        if not code:
            raise ProviderExchangeError("Missing code parameter")
        if not state:
            raise ProviderExchangeError("Missing state parameter")
        flow = get_flow(state)
        if flow is None:
            raise ProviderExchangeError("Invalid or expired state")

        data = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "code_verifier": flow.code_verifier,
            }
        )
        return _session_from_response(data)

    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        """Exchange a refresh credential for a new access token (and possibly a rotated refresh token)."""
        if not refresh_token:
            raise ProviderExchangeError("Missing refresh token")
        data = await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
            }
        )
        return _session_from_response(data)

    async def _token_request(self, form: dict[str, str]) -> dict:
        try:
            if self._http is not None:
                r = await self._http.post(
                    f"{self.issuer}/token",
                    data=form,
                    headers={"Accept": "application/json"},
                    timeout=HTTP_TIMEOUT_SECONDS,
                )
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
                    r = await client.post(
                        f"{self.issuer}/token",
                        data=form,
                        headers={"Accept": "application/json"},
                    )
        except httpx.HTTPError as e:
            raise ProviderExchangeError(f"Token endpoint unreachable: {e}") from e

        if r.status_code != 200:
            raise ProviderExchangeError(f"Token exchange failed: {_error_description(r)}")
        try:
            data = r.json()
        except ValueError as e:
            raise ProviderExchangeError("Malformed token response") from e
        if not isinstance(data, dict):
            raise ProviderExchangeError("Malformed token response")
        logger.info("Token grant %s succeeded", form.get("grant_type"))
        return data
