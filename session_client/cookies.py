"""
Tenant slug cookie: lets server-side middleware resolve the tenant without running client code.
Written only after a successful tenant fetch; removed on teardown.
"""
import httpx

from session_client.config import TENANT_SLUG_COOKIE


def set_tenant_slug_cookie(jar: httpx.Cookies, slug: str | None) -> bool:
    """Set the cookie; empty or missing slugs are ignored. Returns True if set."""
    if not slug:
        return False
    jar.set(TENANT_SLUG_COOKIE, slug, path="/")
    return True


def get_tenant_slug_cookie(jar: httpx.Cookies) -> str | None:
    return jar.get(TENANT_SLUG_COOKIE)


def delete_tenant_slug_cookie(jar: httpx.Cookies) -> None:
    jar.delete(TENANT_SLUG_COOKIE)
