"""
Session client web app.
Hosts the session coordinator for one browser session: login initiation, OAuth callback
(a fresh mount with the callback location), session status, visibility re-check, logout.
Port 8000 by default.
"""
import html
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from session_client.config import TENANT_SLUG_COOKIE
from session_client.cookies import get_tenant_slug_cookie
from session_client.coordinator import SessionCoordinator, build_coordinator


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
  <h1>{html.escape(title)}</h1>
  {body}
</body>
</html>""",
        status_code=status_code,
    )


def create_app(coordinator_factory: Callable[[], SessionCoordinator] = build_coordinator) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the coordinator and run the first mount (rehydrate, bootstrap, arm refresh)."""
        coordinator = coordinator_factory()
        app.state.coordinator = coordinator
        await coordinator.mount("/")
        try:
            yield
        finally:
            await coordinator.unmount()
            aclose = getattr(coordinator.api, "aclose", None)
            if aclose is not None:
                await aclose()

    app = FastAPI(title="Session Client", version="0.5.0", lifespan=lifespan)

    def get_coordinator(request: Request) -> SessionCoordinator:
        return request.app.state.coordinator

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "session_client"}

    @app.get("/", response_class=HTMLResponse)
    def home(request: Request):
        coordinator = get_coordinator(request)
        tenant = coordinator.tenants.tenant
        if coordinator.credentials.access_token:
            tenant_line = html.escape(tenant.name or tenant.record_id) if tenant else "(tenant not resolved)"
            body = f"""<p>Signed in. Tenant: {tenant_line}</p>
  <form method="post" action="/logout"><button type="submit">Log out</button></form>"""
        else:
            body = '<p><a href="/start-login">Log in</a></p>'
        return _page("Session Client", body)

    @app.get("/login", response_class=HTMLResponse)
    def login():
        return _page("Log in", '<p><a href="/start-login">Continue to sign-in</a></p>')

    @app.get("/start-login")
    def start_login(request: Request):
        """Redirect to the AS /authorize endpoint with state, nonce and PKCE challenge."""
        url = get_coordinator(request).identity.begin_login()
        return RedirectResponse(url=url, status_code=302)

    @app.get("/callback")
    async def callback(request: Request):
        """
        AS redirects here with ?code=...&state=... (or ?error=...).
        Treated as a new page load: re-mount so the bootstrap sequence runs for this location.
        """
        coordinator = get_coordinator(request)
        await coordinator.mount(str(request.url))
        redirect = coordinator.navigator.consume_redirect()
        if redirect:
            return RedirectResponse(url=redirect, status_code=302)
        if not coordinator.credentials.access_token:
            return _page(
                "Login error",
                '<p>Sign-in could not be completed.</p>\n  <p><a href="/start-login">Try again</a></p>',
                status_code=400,
            )
        response = RedirectResponse(url="/", status_code=302)
        slug = get_tenant_slug_cookie(coordinator.cookies)
        if slug:
            response.set_cookie(TENANT_SLUG_COOKIE, slug, path="/", samesite="lax")
        return response

    @app.get("/session")
    def session_status(request: Request):
        """Session snapshot. Token values are never returned."""
        coordinator = get_coordinator(request)
        state = coordinator.credentials.state
        tenant = coordinator.tenants.tenant
        return {
            "authenticated": coordinator.credentials.is_authenticated(),
            "hasAccessToken": state.access_token is not None,
            "role": state.role,
            "tenantId": state.tenant_id,
            "accountCode": state.account_code,
            "tenant": tenant.to_dict() if tenant is not None else None,
            "tenantLoading": coordinator.tenants.is_loading,
            "refreshState": coordinator.scheduler.state.value,
        }

    @app.post("/visibility")
    async def visibility(request: Request, state: str):
        """Foreground/background signal from the page (visible | hidden)."""
        if state not in ("visible", "hidden"):
            raise HTTPException(status_code=400, detail={"error": "invalid_request", "error_description": "state must be visible or hidden"})
        coordinator = get_coordinator(request)
        coordinator.set_visibility(state == "visible")
        return {"state": state, "refreshState": coordinator.scheduler.state.value}

    @app.post("/logout")
    async def logout(request: Request):
        coordinator = get_coordinator(request)
        coordinator.logout()
        target = coordinator.navigator.consume_redirect() or coordinator.teardown.login_path
        response = RedirectResponse(url=target, status_code=303)
        response.delete_cookie(TENANT_SLUG_COOKIE, path="/")
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "session_client.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
