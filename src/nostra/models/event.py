"""
Signed, content-addressed Nostr events (NIP-01).

An [UnsignedEvent][nostra.models.event.UnsignedEvent] is built with
[create_note()][nostra.models.event.create_note] (or directly), then turned
into an immutable [Event][nostra.models.event.Event] by
[finalize()][nostra.models.event.finalize], which stamps the author's public
key, computes the id and signs it.

The id is the SHA-256 of the canonical serialization produced by
[canonical_json()][nostra.models.event.canonical_json]:

```text
[0,"<pubkey hex>",<created_at>,<kind>,<tags>,"<content>"]
```

with no whitespace and non-ASCII characters left as literal UTF-8. Any
deviation produces a different id, so this format must stay byte-for-byte
identical to every other NIP-01 implementation.

See Also:
    [nostra.models.keys][]: Key material and Schnorr signatures.
    [nostra.models.filter.Filter][]: Predicates matched against events.
    [nostra.client.session.RelaySession][]: Publishes and receives events.
"""

from __future__ import annotations

import hashlib
import json
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from nostra.core.exceptions import InvalidEventError

from ._validation import (
    freeze_tags,
    validate_hex,
    validate_kind,
    validate_text,
    validate_timestamp,
)
from .constants import EventKind
from .keys import KEY_SIZE, SIGNATURE_SIZE, PublicKey, SecretKey


EVENT_FIELDS = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")

Tags = tuple[tuple[str, ...], ...]


# =============================================================================
# Canonical serialization
# =============================================================================


def canonical_json(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Iterable[Iterable[str]],
    content: str,
) -> str:
    """Serialize event fields into the canonical NIP-01 array.

    Strings are escaped by ``json.dumps``: ``"`` and ``\\`` get a backslash,
    ``\\n \\r \\t \\b \\f`` their short forms, other control characters
    ``\\u00XX``; everything else, non-ASCII included, is written verbatim.
    """
    data = [0, pubkey, created_at, kind, [list(tag) for tag in tags], content]
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Iterable[Iterable[str]],
    content: str,
) -> str:
    """Return the lowercase hex SHA-256 of the canonical serialization."""
    serialized = canonical_json(pubkey, created_at, kind, tags, content)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


# =============================================================================
# Unsigned events
# =============================================================================


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """Event fields before signing.

    ``tags`` accepts any nested iterable of strings and is normalized to a
    tuple of tuples. ``pubkey`` may be left ``None``; it is then derived
    from the signing key by [finalize()][nostra.models.event.finalize].

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If ``kind`` is out of range, ``created_at`` is negative,
            ``pubkey`` is not 64 lowercase hex characters, or a string is not
            valid UTF-8 text.
    """

    content: str
    kind: int = EventKind.TEXT_NOTE
    tags: Tags = ()
    created_at: int = field(default_factory=lambda: int(time.time()))
    pubkey: str | None = None

    def __post_init__(self) -> None:
        validate_text(self.content, "content")
        validate_kind(self.kind)
        validate_timestamp(self.created_at, "created_at")
        if self.pubkey is not None:
            validate_hex(self.pubkey, "pubkey", KEY_SIZE)
        # Bypass frozen restriction to store the normalized value
        object.__setattr__(self, "kind", int(self.kind))
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    def canonical_json(self, pubkey: str | None = None) -> str:
        """Canonical serialization using *pubkey* or the stamped one."""
        author = pubkey if pubkey is not None else self.pubkey
        if author is None:
            raise ValueError("pubkey is required to serialize an unsigned event")
        return canonical_json(author, self.created_at, self.kind, self.tags, self.content)


def create_note(
    content: str,
    kind: int = EventKind.TEXT_NOTE,
    tags: Iterable[Iterable[str]] = (),
    created_at: int | None = None,
) -> UnsignedEvent:
    """Build an unsigned note, timestamped now unless *created_at* is given."""
    if created_at is None:
        created_at = int(time.time())
    return UnsignedEvent(content=content, kind=kind, tags=tags, created_at=created_at)  # type: ignore[arg-type]


def finalize(unsigned: UnsignedEvent, secret_key: SecretKey) -> Event:
    """Sign *unsigned* with *secret_key* and return the complete event.

    Args:
        unsigned: Event fields to sign.
        secret_key: Signing key; never retained.

    Returns:
        An [Event][nostra.models.event.Event] whose id and signature verify.

    Raises:
        ValueError: If ``unsigned.pubkey`` is set and does not belong to
            *secret_key*.
    """
    pubkey = secret_key.public_key().to_hex()
    if unsigned.pubkey is not None and unsigned.pubkey != pubkey:
        raise ValueError("unsigned event pubkey does not match the signing key")

    event_id = compute_event_id(
        pubkey, unsigned.created_at, unsigned.kind, unsigned.tags, unsigned.content
    )
    sig = secret_key.sign(bytes.fromhex(event_id))
    return Event(
        id=event_id,
        pubkey=pubkey,
        created_at=unsigned.created_at,
        kind=unsigned.kind,
        tags=unsigned.tags,
        content=unsigned.content,
        sig=sig.hex(),
    )


# =============================================================================
# Signed events
# =============================================================================


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable, fully specified Nostr event.

    Construction checks types and formats only, so events received from a
    relay can be represented before they are authenticated. Use
    [verify()][nostra.models.event.Event.verify] (or
    [ensure_valid()][nostra.models.event.Event.ensure_valid]) before
    trusting one.

    Attributes:
        id: Lowercase hex SHA-256 of the canonical serialization.
        pubkey: Lowercase hex x-only public key of the author.
        created_at: Unix timestamp in seconds.
        kind: Event kind, ``0..65535``.
        tags: Tuple of tags, each a tuple of strings.
        content: Arbitrary text.
        sig: Lowercase hex BIP-340 signature over ``id``.

    Note:
        The dataclass is frozen: assigning to any field raises
        ``dataclasses.FrozenInstanceError``. A copy made with
        ``dataclasses.replace`` keeps the old id and signature and therefore
        fails verification.
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str
    sig: str

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 32)
        validate_hex(self.pubkey, "pubkey", KEY_SIZE)
        validate_timestamp(self.created_at, "created_at")
        validate_kind(self.kind)
        validate_text(self.content, "content")
        validate_hex(self.sig, "sig", SIGNATURE_SIZE)
        object.__setattr__(self, "kind", int(self.kind))
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    def compute_id(self) -> str:
        """Recompute the id from this event's own fields."""
        return compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def verify(self) -> bool:
        """Return True if the id matches the fields and the signature is valid."""
        if self.compute_id() != self.id:
            return False
        return PublicKey.from_hex(self.pubkey).verify(
            bytes.fromhex(self.id), bytes.fromhex(self.sig)
        )

    def ensure_valid(self) -> None:
        """Raise [InvalidEventError][nostra.core.exceptions.InvalidEventError] unless valid."""
        if self.compute_id() != self.id:
            raise InvalidEventError(self.id, "id does not match event fields")
        if not PublicKey.from_hex(self.pubkey).verify(
            bytes.fromhex(self.id), bytes.fromhex(self.sig)
        ):
            raise InvalidEventError(self.id, "signature does not verify")

    def tag_values(self, name: str) -> list[str]:
        """Values of every tag named *name* that carries a value."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 wire object."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        """Serialize as a compact JSON object for transmission or display."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """Build an event from a parsed NIP-01 object.

        Unknown keys are ignored. The event is not verified.

        Raises:
            TypeError: If *data* is not a mapping or a field has the wrong type.
            ValueError: If a field is missing or malformed.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"event must be an object, got {type(data).__name__}")
        missing = [name for name in EVENT_FIELDS if name not in data]
        if missing:
            raise ValueError(f"event is missing fields: {', '.join(missing)}")
        tags = data["tags"]
        if not isinstance(tags, list) or not all(isinstance(tag, list) for tag in tags):
            raise TypeError("tags must be an array of arrays")
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=tags,
            content=data["content"],
            sig=data["sig"],
        )

    @classmethod
    def from_json(cls, text: str) -> Event:
        """Parse an event serialized by [to_json()][nostra.models.event.Event.to_json]."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"event is not valid JSON: {e}") from e
        return cls.from_dict(data)


def serialize(event: Event) -> str:
    """Serialize *event* as a JSON object (see [Event.to_json()][nostra.models.event.Event.to_json])."""
    return event.to_json()


def verify(event: Event) -> bool:
    """Verify *event* (see [Event.verify()][nostra.models.event.Event.verify])."""
    return event.verify()
