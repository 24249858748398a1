"""
Session client configuration. Values come from the environment with local-dev defaults.
"""
import os

# Authorization Server (issuer): login redirects and code/refresh-credential exchanges go here
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")

# Our client_id (must be registered at AS)
CLIENT_ID = os.environ.get("OAUTH_CLIENT_ID", "test-client")

# Callback URL where AS redirects after authorization
REDIRECT_URI = os.environ.get("OAUTH_REDIRECT_URI", "http://127.0.0.1:8000/callback")

# Default scopes: openid (so nonce is required) + api.read for the tenant API
DEFAULT_SCOPE = os.environ.get("OAUTH_SCOPE", "openid api.read")

# Tenant-scoped API base URL (tenant config endpoint lives here)
API_BASE_URL = os.environ.get("SESSION_API_BASE_URL", "http://127.0.0.1:7000").rstrip("/")

# Persisted (local) storage; SQLite file by default
STORE_URL = os.environ.get("SESSION_STORE_URL", "sqlite:///./session_client.db")

# Refresh this many seconds before the access token expires
REFRESH_BUFFER_SECONDS = float(os.environ.get("SESSION_REFRESH_BUFFER_SECONDS", "120"))

# Never arm a refresh timer sooner than this (unless the token expires first)
MIN_REFRESH_INTERVAL_SECONDS = float(os.environ.get("SESSION_MIN_REFRESH_INTERVAL_SECONDS", "30"))

# Tenant loader waits this long for the persisted stores to rehydrate
REHYDRATE_DELAY_SECONDS = float(os.environ.get("SESSION_REHYDRATE_DELAY_SECONDS", "0.1"))

# Where terminal session expiry / logout sends the user
LOGIN_PATH = os.environ.get("SESSION_LOGIN_PATH", "/login")

HTTP_TIMEOUT_SECONDS = 10.0

# Storage slots
AUTH_STORAGE_KEY = "session_client-auth"
TENANT_STORAGE_KEY = "session_client-tenant"
REFRESH_TOKEN_KEY = "session_client_refresh_token"

# Cookie read by server-side middleware to resolve the tenant without JS
TENANT_SLUG_COOKIE = "tenantSlug"
