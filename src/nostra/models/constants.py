"""Shared constants for the models layer.

Defines enumerations and limits used across model modules. Placing them
here avoids circular imports between the event, filter and message models.

See Also:
    [nostra.models.event][]: Uses [EventKind][nostra.models.constants.EventKind]
        as the default kind of notes.
    [nostra.models.messages][]: Uses [MessageType][nostra.models.constants.MessageType]
        to tag wire frames.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class EventKind(IntEnum):
    """Well-known Nostr event kinds.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note (NIP-01).
        RECOMMEND_RELAY: Kind 2 -- legacy relay recommendation (deprecated).
        CONTACTS: Kind 3 -- contact list (NIP-02).
        DELETION: Kind 5 -- event deletion request (NIP-09).
        REACTION: Kind 7 -- reaction (NIP-25).
        RELAY_LIST: Kind 10002 -- relay list metadata (NIP-65).
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    RECOMMEND_RELAY = 2
    CONTACTS = 3
    DELETION = 5
    REACTION = 7
    RELAY_LIST = 10_002


class MessageType(StrEnum):
    """First element of every NIP-01 wire frame.

    ``EVENT`` is used in both directions; ``REQ`` and ``CLOSE`` only from
    client to relay; ``OK``, ``EOSE``, ``NOTICE`` and ``CLOSED`` only from
    relay to client.
    """

    EVENT = "EVENT"
    REQ = "REQ"
    CLOSE = "CLOSE"
    OK = "OK"
    EOSE = "EOSE"
    NOTICE = "NOTICE"
    CLOSED = "CLOSED"


EVENT_KIND_MAX = 65_535

SUBSCRIPTION_ID_MAX_LENGTH = 64
