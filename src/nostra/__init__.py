r"""Nostra -- Nostr client protocol engine.

Builds, signs and verifies NIP-01 events, encodes NIP-19 shareable
identifiers, and speaks the relay message protocol over a WebSocket.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
          client / __main__     Relay session, CLI
             /   |   \
          core  nips  utils     Exceptions, logging, YAML; NIP-19; transport, keys
             \   |   /
              models            Frozen dataclasses (zero I/O)
```

Attributes:
    models: Keys, events, filters, subscriptions, wire messages, relay URLs.
    core: Exceptions, structured logging, YAML loading.
    nips: NIP-19 bech32 entities.
    utils: WebSocket transport, secret key loading.
    client: Relay session and configuration.

Note:
    Top-level imports (``from nostra import RelaySession``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _get_version


try:
    __version__ = _get_version("nostra")
except PackageNotFoundError:  # source checkout, not installed
    __version__ = "0.0.0"

__all__ = [
    "ClientConfig",
    "Event",
    "EventMessage",
    "Filter",
    "Logger",
    "NostraError",
    "PublicKey",
    "Relay",
    "RelaySession",
    "SecretKey",
    "SessionConfig",
    "Subscription",
    "UnsignedEvent",
    "connect",
    "create_note",
    "finalize",
    "nip19",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("nostra.core", "Logger"),
    "NostraError": ("nostra.core", "NostraError"),
    "Event": ("nostra.models", "Event"),
    "EventMessage": ("nostra.models", "EventMessage"),
    "Filter": ("nostra.models", "Filter"),
    "PublicKey": ("nostra.models", "PublicKey"),
    "Relay": ("nostra.models", "Relay"),
    "SecretKey": ("nostra.models", "SecretKey"),
    "Subscription": ("nostra.models", "Subscription"),
    "UnsignedEvent": ("nostra.models", "UnsignedEvent"),
    "create_note": ("nostra.models", "create_note"),
    "finalize": ("nostra.models", "finalize"),
    "nip19": ("nostra.nips", "nip19"),
    "ClientConfig": ("nostra.client", "ClientConfig"),
    "RelaySession": ("nostra.client", "RelaySession"),
    "SessionConfig": ("nostra.client", "SessionConfig"),
    "connect": ("nostra.client", "connect"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostra' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
