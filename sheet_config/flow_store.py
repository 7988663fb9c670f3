"""
In-memory store for pending logins (state -> code_verifier).
Used between /login and /callback. TTL to avoid unbounded growth.
"""
import time
from dataclasses import dataclass

# Seconds a user has to complete the consent page
FLOW_TTL = 600


@dataclass
class PendingFlow:
    code_verifier: str
    created_at: float

    def expired(self) -> bool:
        return (time.monotonic() - self.created_at) > FLOW_TTL


_pending: dict[str, PendingFlow] = {}


def store_flow(state: str, code_verifier: str) -> None:
    _clean_expired()
    _pending[state] = PendingFlow(code_verifier=code_verifier, created_at=time.monotonic())


def get_flow(state: str) -> PendingFlow | None:
    """Pop the flow for state; None if unknown or expired. Each state is usable once."""
    flow = _pending.pop(state, None)
    if flow is None or flow.expired():
        return None
    return flow


def _clean_expired() -> None:
    now = time.monotonic()
    expired = [s for s, f in list(_pending.items()) if (now - f.created_at) > FLOW_TTL]
    for s in expired:
        _pending.pop(s, None)
