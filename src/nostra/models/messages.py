"""
NIP-01 wire messages exchanged with a relay.

Outbound frames are produced by
[encode_event()][nostra.models.messages.encode_event],
[encode_req()][nostra.models.messages.encode_req] and
[encode_close()][nostra.models.messages.encode_close].

Inbound frames are decoded by
[decode_relay_message()][nostra.models.messages.decode_relay_message] into a
closed set of frozen dataclasses, selected by the frame's first element:

```text
["EVENT", <subscription id>, <event>]      -> EventMessage
["OK", <event id>, <bool>, <message>]      -> OkMessage
["EOSE", <subscription id>]                -> EoseMessage
["NOTICE", <message>]                      -> NoticeMessage
["CLOSED", <subscription id>, <message>]   -> ClosedMessage
[<anything else>, ...]                     -> UnknownMessage
```

A frame that is not a JSON array, or does not have the shape its tag
claims, raises [MalformedFrameError][nostra.core.exceptions.MalformedFrameError].

[DisconnectedMessage][nostra.models.messages.DisconnectedMessage] is never
decoded from the wire; the session appends it once when the connection
ends.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from nostra.core.exceptions import MalformedFrameError

from .constants import MessageType
from .event import Event


if TYPE_CHECKING:
    from .subscription import Subscription


def _dumps(frame: list[Any]) -> str:
    return json.dumps(frame, separators=(",", ":"), ensure_ascii=False)


def _split_prefix(message: str) -> str | None:
    """Machine-readable prefix of an OK/CLOSED message (``"duplicate"``, ...)."""
    prefix, sep, _ = message.partition(":")
    if not sep or not prefix or " " in prefix:
        return None
    return prefix


# =============================================================================
# Inbound variants
# =============================================================================


@dataclass(frozen=True, slots=True)
class EventMessage:
    """An event delivered for a subscription.

    Attributes:
        subscription_id: The id the relay tagged the event with.
        event: The embedded event, exactly as received.
        subscription: The locally tracked subscription with that id, or
            ``None`` when the session does not track it (never opened, or
            closed while the relay was still sending).
    """

    subscription_id: str
    event: Event
    subscription: Subscription | None = field(default=None, compare=False)

    @property
    def is_tracked(self) -> bool:
        return self.subscription is not None


@dataclass(frozen=True, slots=True)
class OkMessage:
    """The relay's verdict on a published event."""

    event_id: str
    accepted: bool
    message: str = ""

    @property
    def prefix(self) -> str | None:
        return _split_prefix(self.message)


@dataclass(frozen=True, slots=True)
class EoseMessage:
    """End of stored events: live events follow for this subscription."""

    subscription_id: str
    subscription: Subscription | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class NoticeMessage:
    """Human-readable message from the relay."""

    message: str


@dataclass(frozen=True, slots=True)
class ClosedMessage:
    """The relay ended a subscription on its side."""

    subscription_id: str
    message: str = ""
    subscription: Subscription | None = field(default=None, compare=False)

    @property
    def prefix(self) -> str | None:
        return _split_prefix(self.message)


@dataclass(frozen=True, slots=True)
class UnknownMessage:
    """A well-formed frame whose tag this client does not understand."""

    type: str
    payload: tuple[Any, ...] = ()


@dataclass(frozen=True, slots=True)
class DisconnectedMessage:
    """Terminal marker: the connection ended and no message will follow.

    Attributes:
        clean: True when the connection closed normally (either side), False
            when it failed.
        reason: Human-readable cause.
    """

    clean: bool
    reason: str = ""


RelayMessage = (
    EventMessage
    | OkMessage
    | EoseMessage
    | NoticeMessage
    | ClosedMessage
    | UnknownMessage
    | DisconnectedMessage
)


# =============================================================================
# Decoding
# =============================================================================


def _require_str(frame: list[Any], index: int, name: str, text: str) -> str:
    if len(frame) <= index or not isinstance(frame[index], str):
        raise MalformedFrameError(f"{frame[0]} frame needs a string {name}", text)
    return frame[index]


def _optional_str(frame: list[Any], index: int, name: str, text: str) -> str:
    if len(frame) <= index:
        return ""
    return _require_str(frame, index, name, text)


def decode_relay_message(text: str) -> RelayMessage:
    """Decode one inbound text frame.

    Args:
        text: Raw frame as received from the transport.

    Returns:
        The decoded variant. Unrecognized tags produce an
        [UnknownMessage][nostra.models.messages.UnknownMessage].

    Raises:
        MalformedFrameError: If the frame is not a JSON array starting with
            a string, or does not match the structure of its variant.
    """
    # ValueError covers JSONDecodeError and oversized integer literals;
    # RecursionError covers pathologically nested arrays.
    try:
        frame = json.loads(text)
    except (ValueError, RecursionError, TypeError) as e:
        raise MalformedFrameError(f"frame is not valid JSON: {e}", text) from e

    if not isinstance(frame, list) or not frame or not isinstance(frame[0], str):
        raise MalformedFrameError("frame must be an array starting with a string", text)

    tag = frame[0]

    if tag == MessageType.EVENT:
        subscription_id = _require_str(frame, 1, "subscription id", text)
        if len(frame) < 3:
            raise MalformedFrameError("EVENT frame needs an event", text)
        try:
            event = Event.from_dict(frame[2])
        except (TypeError, ValueError) as e:
            raise MalformedFrameError(f"EVENT frame carries an invalid event: {e}", text) from e
        return EventMessage(subscription_id, event)

    if tag == MessageType.OK:
        event_id = _require_str(frame, 1, "event id", text)
        if len(frame) < 3 or not isinstance(frame[2], bool):
            raise MalformedFrameError("OK frame needs a boolean status", text)
        return OkMessage(event_id, frame[2], _optional_str(frame, 3, "message", text))

    if tag == MessageType.EOSE:
        return EoseMessage(_require_str(frame, 1, "subscription id", text))

    if tag == MessageType.NOTICE:
        return NoticeMessage(_require_str(frame, 1, "message", text))

    if tag == MessageType.CLOSED:
        subscription_id = _require_str(frame, 1, "subscription id", text)
        return ClosedMessage(subscription_id, _optional_str(frame, 2, "message", text))

    return UnknownMessage(tag, tuple(frame[1:]))


# =============================================================================
# Encoding
# =============================================================================


def encode_event(event: Event) -> str:
    """``["EVENT", <event>]``"""
    return _dumps([MessageType.EVENT.value, event.to_dict()])


def encode_req(subscription: Subscription) -> str:
    """``["REQ", <subscription id>, <filter>, ...]``"""
    return _dumps(
        [MessageType.REQ.value, subscription.id, *(f.to_dict() for f in subscription.filters)]
    )


def encode_close(subscription_id: str) -> str:
    """``["CLOSE", <subscription id>]``"""
    return _dumps([MessageType.CLOSE.value, subscription_id])
