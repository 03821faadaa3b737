"""Client layer: the relay session and its configuration.

Top of the diamond DAG together with ``nostra.__main__``.

Attributes:
    RelaySession: Single-relay protocol session. See
        [RelaySession][nostra.client.session.RelaySession].
    connect: Create and connect a session in one call.
    SessionConfig, ClientConfig: Pydantic configuration models.
"""

from .configs import ClientConfig, SessionConfig
from .session import RelaySession, SessionState, connect


__all__ = [
    "ClientConfig",
    "RelaySession",
    "SessionConfig",
    "SessionState",
    "connect",
]
