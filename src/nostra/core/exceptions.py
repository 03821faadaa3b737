"""Nostra exception hierarchy.

Provides typed exceptions for every error category of the protocol engine,
so callers can distinguish caller mistakes (rejected synchronously) from
connection failures (fatal to the current session) and bad remote data.

Exception hierarchy:

```text
NostraError (base -- never raised directly)
├── ConfigurationError          -- config validation, missing keys, bad YAML
├── RelayConnectionError        -- handshake/send failure, session not connected
├── SubscriptionError           -- subscription table misuse
│   └── DuplicateSubscriptionError  -- id already open on the session
└── ProtocolError               -- bad data at the protocol level
    ├── MalformedEncodingError  -- invalid NIP-19 text
    ├── MalformedFrameError     -- invalid inbound wire message
    └── InvalidEventError       -- id or signature mismatch
```

[RelayConnectionError][nostra.core.exceptions.RelayConnectionError] also
derives from the builtin ``ConnectionError`` and the two ``Malformed*``
errors from ``ValueError``, so generic handlers keep working.

See Also:
    [RelaySession][nostra.client.session.RelaySession]: Raises
        connection and subscription errors.
    [nostra.nips.nip19][]: Raises
        [MalformedEncodingError][nostra.core.exceptions.MalformedEncodingError].
"""

from __future__ import annotations


class NostraError(Exception):
    """Base exception for all Nostra errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostraError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class RelayConnectionError(NostraError, ConnectionError):
    """The relay connection could not be established or used.

    Raised when the transport handshake does not complete, when a send
    fails, or when an operation requires a connected session. Fatal to the
    current session; never retried internally.
    """


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class SubscriptionError(NostraError):
    """Base for subscription table errors."""


class DuplicateSubscriptionError(SubscriptionError):
    """A subscription with the same id is already open on the session.

    Caller programming error, rejected before anything is sent.
    """

    def __init__(self, subscription_id: str) -> None:
        super().__init__(f"subscription already open: {subscription_id!r}")
        self.subscription_id = subscription_id


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostraError):
    """Base for protocol-level data errors."""


class MalformedEncodingError(ProtocolError, ValueError):
    """Shareable (NIP-19) text could not be decoded.

    The input is left unchanged; no partial entity is returned.
    """


class MalformedFrameError(ProtocolError, ValueError):
    """An inbound relay frame does not have the structure of its variant.

    The session logs and drops such frames; it keeps running.
    """

    def __init__(self, reason: str, frame: str | None = None) -> None:
        super().__init__(reason)
        self.frame = frame


class InvalidEventError(ProtocolError):
    """An event's id or signature does not match its content.

    Invalid events are never treated as authentic: they are not published
    and not delivered to subscribers.
    """

    def __init__(self, event_id: str, reason: str) -> None:
        super().__init__(f"invalid event {event_id[:16]}...: {reason}")
        self.event_id = event_id
        self.reason = reason
