"""Flow functions.

Each function takes an :class:`~bzauth.http.AuthRequest` carrying the
auth context and returns an :class:`~bzauth.http.AuthResponse`. Errors
raised inside a flow are serialized into the response; only unexpected
exceptions propagate.
"""

from __future__ import annotations

from .authorize import authorize
from .callback import callback
from .common import FlowRun
from .routes import csrf, providers, session, sign_out


__all__ = [
    "FlowRun",
    "authorize",
    "callback",
    "csrf",
    "providers",
    "session",
    "sign_out",
]
