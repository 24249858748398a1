"""
Credential store: process-wide session credentials with typed mutators.

Holds user, role, tenant_id, account_code, memberships and access_token. Only those
fields are persisted (local storage, one JSON blob); raw provider artifacts in
`session` stay in memory and are re-derived on every load. The refresh credential
itself lives in session storage and is only removed from here on clear_auth.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any

from session_client.config import AUTH_STORAGE_KEY, REFRESH_TOKEN_KEY
from session_client.storage import read_json, safe_remove, write_json

logger = logging.getLogger(__name__)

# Marks "keyword not supplied" so update_tokens can tell it apart from an explicit None
_UNSET: Any = object()


def normalize_role(role: Any) -> str | None:
    if role is None or role == "":
        return None
    return str(role).upper()


@dataclass(frozen=True)
class CredentialState:
    user: dict | None = None
    role: str | None = None
    tenant_id: str | None = None
    account_code: str | None = None
    memberships: list = field(default_factory=list)
    access_token: str | None = None
    session: Any = None

    def to_persisted(self) -> dict:
        return {
            "user": self.user,
            "role": self.role,
            "tenantId": self.tenant_id,
            "accountCode": self.account_code,
            "memberships": list(self.memberships),
            "accessToken": self.access_token,
        }


class CredentialStore:
    def __init__(self, local_storage, session_storage):
        self._local = local_storage
        self._session_storage = session_storage
        self._state = CredentialState()
        self.generation = 0

    @property
    def state(self) -> CredentialState:
        return self._state

    @property
    def access_token(self) -> str | None:
        return self._state.access_token

    @property
    def tenant_id(self) -> str | None:
        return self._state.tenant_id

    @property
    def account_code(self) -> str | None:
        return self._state.account_code

    @property
    def role(self) -> str | None:
        return self._state.role

    def set_auth(
        self,
        *,
        user: dict | None = None,
        role: str | None = None,
        tenant_id: str | None = None,
        account_code: str | None = None,
        memberships: list | None = None,
        access_token: str | None = None,
    ) -> None:
        """Replace all credential fields; omitted fields fall back to the user payload, then None/[]."""
        user_data = user or {}
        self._state = CredentialState(
            user=user,
            role=normalize_role(role if role is not None else user_data.get("role")),
            tenant_id=tenant_id if tenant_id is not None else user_data.get("tenantId"),
            account_code=account_code if account_code is not None else user_data.get("accountCode"),
            memberships=list(memberships if memberships is not None else user_data.get("memberships") or []),
            access_token=access_token,
        )
        self._persist()

    def update_tokens(
        self,
        *,
        access_token: str | None = _UNSET,
        tenant_id: str | None = _UNSET,
        account_code: str | None = _UNSET,
        role: str | None = _UNSET,
        user: dict | None = _UNSET,
        memberships: list | None = _UNSET,
    ) -> None:
        """
        Merge only the supplied keywords. An explicit None clears that field
        (e.g. tenant_id=None while the tenant is still unknown).
        """
        changes: dict[str, Any] = {}
        if access_token is not _UNSET:
            changes["access_token"] = access_token
        if tenant_id is not _UNSET:
            changes["tenant_id"] = tenant_id
        if account_code is not _UNSET:
            changes["account_code"] = account_code
        if role is not _UNSET:
            changes["role"] = normalize_role(role)
        if user is not _UNSET:
            changes["user"] = user
        if memberships is not _UNSET:
            changes["memberships"] = list(memberships or [])
        if not changes:
            return
        self._state = replace(self._state, **changes)
        self._persist()

    def set_session(self, session: Any) -> None:
        """Keep raw provider artifacts for this load only (never persisted)."""
        self._state = replace(self._state, session=session)

    def clear_auth(self) -> None:
        """Reset to the initial state and drop persisted credentials. Never raises."""
        self._state = CredentialState()
        self.generation += 1
        safe_remove(self._local, AUTH_STORAGE_KEY)
        safe_remove(self._session_storage, REFRESH_TOKEN_KEY)

    logout = clear_auth

    def has_role(self, role: str | list[str] | tuple[str, ...]) -> bool:
        current = self._state.role
        if not current:
            return False
        if isinstance(role, (list, tuple, set, frozenset)):
            return current in {str(r).upper() for r in role}
        return current == str(role).upper()

    def is_authenticated(self) -> bool:
        # Token freshness is validated by the server on each request.
        return bool(self._state.user)

    async def rehydrate(self) -> bool:
        """Restore persisted fields. Returns True when a stored blob was applied."""
        await asyncio.sleep(0)
        data = read_json(self._local, AUTH_STORAGE_KEY)
        if not isinstance(data, dict):
            return False
        self._state = CredentialState(
            user=data.get("user"),
            role=normalize_role(data.get("role")),
            tenant_id=data.get("tenantId"),
            account_code=data.get("accountCode"),
            memberships=list(data.get("memberships") or []),
            access_token=data.get("accessToken"),
        )
        logger.debug("Credential store rehydrated (token present: %s)", self._state.access_token is not None)
        return True

    def _persist(self) -> None:
        result = write_json(self._local, AUTH_STORAGE_KEY, self._state.to_persisted())
        if not result.ok:
            logger.debug("Credential store not persisted: %s", result.error)
