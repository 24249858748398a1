"""
Pending login flows: state -> (nonce, code_verifier), kept between begin_login and the
callback that consumes them. Reads are one-shot. Entries expire after FLOW_TTL seconds and
at most MAX_PENDING are kept (oldest dropped first), so abandoned logins cannot pile up.
Teardown clears them all.
"""
import time
from collections import OrderedDict
from dataclasses import dataclass

FLOW_TTL = 600
MAX_PENDING = 32


@dataclass(frozen=True)
class PendingFlow:
    nonce: str
    code_verifier: str
    expires_at: float

    def expired(self, now: float | None = None) -> bool:
        return (time.monotonic() if now is None else now) >= self.expires_at


_pending: "OrderedDict[str, PendingFlow]" = OrderedDict()


def store_flow(state: str, nonce: str, code_verifier: str) -> None:
    _drop_expired()
    _pending.pop(state, None)
    _pending[state] = PendingFlow(nonce=nonce, code_verifier=code_verifier, expires_at=time.monotonic() + FLOW_TTL)
    while len(_pending) > MAX_PENDING:
        _pending.popitem(last=False)


def get_flow(state: str) -> PendingFlow | None:
    """Consume the flow for `state`; None if unknown, already used, or expired."""
    flow = _pending.pop(state, None)
    if flow is None or flow.expired():
        return None
    return flow


def clear_flows() -> None:
    _pending.clear()


def pending_count() -> int:
    _drop_expired()
    return len(_pending)


def _drop_expired() -> None:
    now = time.monotonic()
    for state in [s for s, f in _pending.items() if f.expired(now)]:
        del _pending[state]
