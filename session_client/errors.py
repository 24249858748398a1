"""
Session client errors. Only ProviderExchangeError changes authentication state.
"""


class SessionError(Exception):
    """Base class for session lifecycle errors."""


class ProviderExchangeError(SessionError):
    """Authorization code or refresh credential was rejected (expired, revoked, malformed)."""


class TenantFetchError(SessionError):
    """Tenant configuration could not be resolved. Non-fatal; tenant stays unresolved."""


class ApiError(SessionError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
