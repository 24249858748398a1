"""
Proactive access-token refresh.

- Reads the token's `exp` claim (no signature check; we only need the timing)
- Arms a single timer `buffer_seconds` before expiry (never sooner than
  `min_interval_seconds`, never later than expiry itself)
- On fire, calls the injected refresh coroutine; success -> on_refreshed(new_token) and
  re-arm, failure -> on_expired() and stop (a stale refresh credential needs a full login)
- Re-checks when the app comes back to the foreground (VisibilitySignal)

At most one refresh call is in flight; a second trigger while one is running is coalesced.

State: IDLE -> ARMED -> FIRING -> ARMED | EXPIRED. EXPIRED holds until init_token_refresh.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable

import jwt

from session_client.config import MIN_REFRESH_INTERVAL_SECONDS, REFRESH_BUFFER_SECONDS
from session_client.errors import ProviderExchangeError

logger = logging.getLogger(__name__)

RefreshFn = Callable[[], Awaitable[str | None]]
OnRefreshed = Callable[[str], None]
OnExpired = Callable[[], None]


class RefreshState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"
    EXPIRED = "expired"


def get_token_expiration(token: str | None) -> float | None:
    """Expiry as a Unix timestamp in seconds, or None if the token has no readable exp."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning("Could not decode access token expiry: %s", e)
        return None
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return float(exp)


def compute_refresh_delay(remaining: float, buffer_seconds: float, min_interval_seconds: float) -> float:
    """
    Seconds until the refresh should fire. Short-lived tokens (lifetime below the
    buffer) refresh at the minimum interval or at expiry, whichever comes first,
    so they do not refresh in a tight loop.
    """
    if remaining <= 0:
        return 0.0
    return min(max(remaining - buffer_seconds, min_interval_seconds), remaining)


class VisibilitySignal:
    """Foreground/background signal for the app; listeners run when it becomes visible."""

    def __init__(self):
        self.visible = True
        self._listeners: list[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def set_visible(self, visible: bool) -> None:
        self.visible = bool(visible)
        if self.visible:
            for listener in list(self._listeners):
                listener()


class RefreshScheduler:
    def __init__(
        self,
        refresh: RefreshFn,
        *,
        token_getter: Callable[[], str | None] | None = None,
        visibility: VisibilitySignal | None = None,
        buffer_seconds: float = REFRESH_BUFFER_SECONDS,
        min_interval_seconds: float = MIN_REFRESH_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._refresh = refresh
        self._token_getter = token_getter
        self._visibility = visibility
        self.buffer_seconds = buffer_seconds
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self.state = RefreshState.IDLE
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: asyncio.Task | None = None
        self._visibility_disposers: list[Callable[[], None]] = []
        self._disposed = False
        # Bumped by dispose(); refreshes started under an older epoch are dropped
        self._epoch = 0

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    @property
    def refresh_in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def time_until_expiry(self, token: str | None) -> float | None:
        expires_at = get_token_expiration(token)
        if expires_at is None:
            return None
        return expires_at - self._clock()

    def init_token_refresh(self, access_token: str, on_refreshed: OnRefreshed, on_expired: OnExpired) -> None:
        """Start (or restart) proactive refresh for this token. Leaves EXPIRED."""
        self._disposed = False
        if self.state is RefreshState.EXPIRED:
            self.state = RefreshState.IDLE
        self.schedule_token_refresh(access_token, on_refreshed, on_expired)

    def schedule_token_refresh(self, access_token: str | None, on_refreshed: OnRefreshed, on_expired: OnExpired) -> None:
        self.clear_refresh_timer()
        if not access_token:
            return
        remaining = self.time_until_expiry(access_token)
        if remaining is None:
            logger.warning("Access token has no readable expiry; proactive refresh not armed")
            return
        if remaining <= 0:
            logger.info("Access token already expired; refreshing now")
            self._trigger(on_refreshed, on_expired)
            return
        delay = compute_refresh_delay(remaining, self.buffer_seconds, self.min_interval_seconds)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_timer, on_refreshed, on_expired)
        if self.state is not RefreshState.FIRING:
            self.state = RefreshState.ARMED
        logger.debug("Token refresh armed in %.1fs", delay)

    def clear_refresh_timer(self) -> None:
        """Cancel the pending timer, if any. Safe to call when nothing is armed."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.state is RefreshState.ARMED:
            self.state = RefreshState.IDLE

    def setup_visibility_handler(
        self, access_token: str, on_refreshed: OnRefreshed, on_expired: OnExpired
    ) -> Callable[[], None]:
        """Re-check the token whenever the app is foregrounded. Returns a disposer."""
        if self._visibility is None:
            return lambda: None

        def handle_visible() -> None:
            if self._disposed or self.state is RefreshState.EXPIRED:
                return
            current = self._token_getter() if self._token_getter is not None else access_token
            if not current:
                return
            remaining = self.time_until_expiry(current)
            if remaining is not None and remaining < self.buffer_seconds:
                # Expired or inside the lead window: refresh right away
                self.clear_refresh_timer()
                self._trigger(on_refreshed, on_expired)
            else:
                self.schedule_token_refresh(current, on_refreshed, on_expired)

        unsubscribe = self._visibility.subscribe(handle_visible)

        def dispose() -> None:
            unsubscribe()
            if dispose in self._visibility_disposers:
                self._visibility_disposers.remove(dispose)

        self._visibility_disposers.append(dispose)
        return dispose

    def dispose(self) -> None:
        """
        Cancel the timer and every visibility subscription. A refresh still in flight is
        detached: its result (or failure) is dropped and a later trigger starts a new one.
        """
        self.clear_refresh_timer()
        for dispose in list(self._visibility_disposers):
            dispose()
        self._disposed = True
        self._epoch += 1
        self._inflight = None
        if self.state is not RefreshState.EXPIRED:
            self.state = RefreshState.IDLE

    def _on_timer(self, on_refreshed: OnRefreshed, on_expired: OnExpired) -> None:
        self._timer = None
        self._trigger(on_refreshed, on_expired)

    def _trigger(self, on_refreshed: OnRefreshed, on_expired: OnExpired) -> asyncio.Task:
        if self.refresh_in_flight:
            logger.debug("Token refresh already in flight; coalescing trigger")
            return self._inflight
        self.state = RefreshState.FIRING
        self._inflight = asyncio.get_running_loop().create_task(
            self._run_refresh(on_refreshed, on_expired, self._epoch)
        )
        return self._inflight

    async def _run_refresh(self, on_refreshed: OnRefreshed, on_expired: OnExpired, epoch: int) -> str | None:
        try:
            new_token = await self._refresh()
            if not new_token:
                raise ProviderExchangeError("No access token in refresh response")
        except Exception as e:
            if epoch != self._epoch:
                logger.debug("Refresh failed after dispose; ignored: %s", e)
                return None
            self._inflight = None
            self.clear_refresh_timer()
            self.state = RefreshState.EXPIRED
            logger.warning("Token refresh failed; session expired: %s", e)
            on_expired()
            return None

        if epoch != self._epoch:
            logger.debug("Refresh completed after dispose; result dropped")
            return None
        self._inflight = None
        self.state = RefreshState.IDLE
        on_refreshed(new_token)
        self.schedule_token_refresh(new_token, on_refreshed, on_expired)
        return new_token
