"""Utilities layer: relay transport and key loading.

Sits in the middle of the diamond DAG and depends only on
``nostra.core``, ``nostra.models`` and ``nostra.nips``.

Attributes:
    Transport, Connection: Abstract text channel used by the relay session.
    WebSocketTransport: Default aiohttp implementation.
    KeysConfig: Pydantic mixin loading an optional secret key from the
        environment.
"""

from .keys import ENV_PRIVATE_KEY, KeysConfig, load_secret_key_from_env, parse_secret_key
from .transport import Connection, Transport, WebSocketConnection, WebSocketTransport


__all__ = [
    "ENV_PRIVATE_KEY",
    "Connection",
    "KeysConfig",
    "Transport",
    "WebSocketConnection",
    "WebSocketTransport",
    "load_secret_key_from_env",
    "parse_secret_key",
]
