"""Frozen dataclasses with zero I/O for keys, events, filters and wire messages.

The models layer is the foundation of the diamond DAG. Apart from
``nostra.core.exceptions`` it depends on nothing else in the package. Every
model uses ``@dataclass(frozen=True, slots=True)`` and validates in
``__post_init__`` so invalid instances never escape the constructor.

Attributes:
    SecretKey, PublicKey: secp256k1 key material and BIP-340 signing.
    UnsignedEvent, Event: NIP-01 events, canonical serialization and ids.
    Filter, Subscription: Subscription predicates and OR-combination.
    Relay: Normalized ``ws://``/``wss://`` URL.
    RelayMessage: Closed union of inbound wire messages.

Note:
    Computed fields on frozen dataclasses are set with
    ``object.__setattr__`` in ``__post_init__``, which runs before the
    instance is exposed to any caller.

See Also:
    [nostra.nips.nip19][]: Shareable encodings of keys and event references.
    [nostra.client][]: The relay session that moves these models over the wire.
"""

from .constants import EVENT_KIND_MAX, EventKind, MessageType
from .event import (
    Event,
    UnsignedEvent,
    canonical_json,
    compute_event_id,
    create_note,
    finalize,
)
from .filter import Filter
from .keys import PublicKey, SecretKey
from .messages import (
    ClosedMessage,
    DisconnectedMessage,
    EoseMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    RelayMessage,
    UnknownMessage,
    decode_relay_message,
    encode_close,
    encode_event,
    encode_req,
)
from .relay import Relay
from .subscription import Subscription


__all__ = [
    "EVENT_KIND_MAX",
    "ClosedMessage",
    "DisconnectedMessage",
    "EoseMessage",
    "Event",
    "EventKind",
    "EventMessage",
    "Filter",
    "MessageType",
    "NoticeMessage",
    "OkMessage",
    "PublicKey",
    "Relay",
    "RelayMessage",
    "SecretKey",
    "Subscription",
    "UnknownMessage",
    "UnsignedEvent",
    "canonical_json",
    "compute_event_id",
    "create_note",
    "decode_relay_message",
    "encode_close",
    "encode_event",
    "encode_req",
    "finalize",
]
