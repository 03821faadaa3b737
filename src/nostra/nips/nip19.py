"""
NIP-19 shareable identifiers: bech32-encoded keys and event references.

Bare entities carry a single 32-byte value:

```text
npub1...   public key
nsec1...   secret key
note1...   event id
```

Bundled entities carry a TLV (type, length, value) payload:

```text
nprofile1...   0: public key, 1: relay (repeatable)
nevent1...     0: event id, 1: relay (repeatable), 2: author, 3: kind (u32 BE)
```

The 5-bit regrouping and checksum come from the ``bech32`` package. Decoding
does its own character parsing so that TLV strings longer than the
90-character BIP-173 limit are accepted, then verifies the checksum with
``bech32.bech32_verify_checksum``.

Examples:
    ```python
    text = encode(Nevent(event.id, relays=("wss://relay.damus.io",), author=event.pubkey, kind=1))
    decode(text)
    # Nevent(event_id='...', relays=('wss://relay.damus.io',), author='...', kind=1)
    ```

See Also:
    [nostra.utils.keys][]: Accepts ``nsec`` keys from the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import bech32

from nostra.core.exceptions import MalformedEncodingError
from nostra.models._validation import validate_hex, validate_int, validate_text
from nostra.models.keys import PublicKey, SecretKey


HRP_NPUB = "npub"
HRP_NSEC = "nsec"
HRP_NOTE = "note"
HRP_NPROFILE = "nprofile"
HRP_NEVENT = "nevent"

TLV_SPECIAL = 0
TLV_RELAY = 1
TLV_AUTHOR = 2
TLV_KIND = 3

_VALUE_SIZE = 32
_KIND_SIZE = 4
_TLV_MAX_LENGTH = 255
_CHECKSUM_LENGTH = 6
_MAX_TEXT_LENGTH = 5000


# =============================================================================
# Entities
# =============================================================================


def _validate_relays(relays: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(relays, str):
        raise TypeError("relays must be a sequence of str, not a str")
    relays = tuple(relays)
    for relay in relays:
        validate_text(relay, "relay")
        if not relay:
            raise ValueError("relay hint must not be empty")
        if len(relay.encode("utf-8")) > _TLV_MAX_LENGTH:
            raise ValueError(f"relay hint longer than {_TLV_MAX_LENGTH} bytes: {relay[:32]}...")
    return relays


def _check_encoded_length(hrp: str, payload_size: int) -> None:
    """Raise unless the entity's text stays within what decode() accepts."""
    length = len(hrp) + 1 + (payload_size * 8 + 4) // 5 + _CHECKSUM_LENGTH
    if length > _MAX_TEXT_LENGTH:
        raise ValueError(
            f"{hrp} would encode to {length} characters, limit is {_MAX_TEXT_LENGTH}"
        )


def _relays_size(relays: tuple[str, ...]) -> int:
    return sum(2 + len(relay.encode("utf-8")) for relay in relays)


@dataclass(frozen=True, slots=True)
class Npub:
    """Public key (``npub``)."""

    public_key: str

    def __post_init__(self) -> None:
        validate_hex(self.public_key, "public_key", _VALUE_SIZE)

    @property
    def key(self) -> PublicKey:
        return PublicKey.from_hex(self.public_key)


@dataclass(frozen=True, slots=True)
class Nsec:
    """Secret key (``nsec``). The key is hidden from ``repr``."""

    secret_key: str = field(repr=False)

    def __post_init__(self) -> None:
        validate_hex(self.secret_key, "secret_key", _VALUE_SIZE)
        SecretKey.from_hex(self.secret_key)

    @property
    def key(self) -> SecretKey:
        return SecretKey.from_hex(self.secret_key)


@dataclass(frozen=True, slots=True)
class Note:
    """Bare event id (``note``)."""

    event_id: str

    def __post_init__(self) -> None:
        validate_hex(self.event_id, "event_id", _VALUE_SIZE)


@dataclass(frozen=True, slots=True)
class Nprofile:
    """Public key with relay hints (``nprofile``).

    Raises:
        ValueError: If a hint is empty or over 255 bytes, or the hints push
            the encoded text past the length decode() accepts.
    """

    public_key: str
    relays: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_hex(self.public_key, "public_key", _VALUE_SIZE)
        relays = _validate_relays(self.relays)
        _check_encoded_length(HRP_NPROFILE, 2 + _VALUE_SIZE + _relays_size(relays))
        object.__setattr__(self, "relays", relays)


@dataclass(frozen=True, slots=True)
class Nevent:
    """Event id with optional relay hints, author and kind (``nevent``).

    Raises:
        ValueError: If a hint is invalid, the kind does not fit in four
            bytes, or the encoded text would exceed the length decode()
            accepts.
    """

    event_id: str
    relays: tuple[str, ...] = ()
    author: str | None = None
    kind: int | None = None

    def __post_init__(self) -> None:
        validate_hex(self.event_id, "event_id", _VALUE_SIZE)
        object.__setattr__(self, "relays", _validate_relays(self.relays))
        if self.author is not None:
            validate_hex(self.author, "author", _VALUE_SIZE)
        if self.kind is not None:
            validate_int(self.kind, "kind")
            if not 0 <= self.kind < 2 ** (8 * _KIND_SIZE):
                raise ValueError(f"kind must fit in {_KIND_SIZE} bytes")
            object.__setattr__(self, "kind", int(self.kind))
        size = 2 + _VALUE_SIZE + _relays_size(self.relays)
        if self.author is not None:
            size += 2 + _VALUE_SIZE
        if self.kind is not None:
            size += 2 + _KIND_SIZE
        _check_encoded_length(HRP_NEVENT, size)


ShareableEntity = Npub | Nsec | Note | Nprofile | Nevent


# =============================================================================
# bech32 framing
# =============================================================================


def _bech32_encode(hrp: str, payload: bytes) -> str:
    words = bech32.convertbits(payload, 8, 5, True)
    return bech32.bech32_encode(hrp, words)


def _bech32_decode(text: str) -> tuple[str, bytes]:
    """Split *text* into prefix and payload bytes, verifying the checksum."""
    if not isinstance(text, str):
        raise MalformedEncodingError(f"expected str, got {type(text).__name__}")
    if len(text) > _MAX_TEXT_LENGTH:
        raise MalformedEncodingError("encoded text is too long")
    if text.lower() != text and text.upper() != text:
        raise MalformedEncodingError("mixed-case bech32 string")
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise MalformedEncodingError("bech32 string contains invalid characters")

    text = text.lower()
    pos = text.rfind("1")
    if pos < 1 or pos + 1 + _CHECKSUM_LENGTH > len(text):
        raise MalformedEncodingError("missing bech32 separator or checksum")

    hrp = text[:pos]
    try:
        data = [bech32.CHARSET.index(c) for c in text[pos + 1 :]]
    except ValueError:
        raise MalformedEncodingError("bech32 data contains invalid characters") from None

    if not bech32.bech32_verify_checksum(hrp, data):
        raise MalformedEncodingError("bech32 checksum does not verify")

    payload = bech32.convertbits(data[:-_CHECKSUM_LENGTH], 5, 8, False)
    if payload is None:
        raise MalformedEncodingError("invalid bech32 padding")
    return hrp, bytes(payload)


# =============================================================================
# TLV payloads
# =============================================================================


def _tlv(tlv_type: int, value: bytes) -> bytes:
    if len(value) > _TLV_MAX_LENGTH:
        raise ValueError(f"TLV value longer than {_TLV_MAX_LENGTH} bytes")
    return bytes((tlv_type, len(value))) + value


def _parse_tlv(payload: bytes) -> list[tuple[int, bytes]]:
    entries: list[tuple[int, bytes]] = []
    i = 0
    while i < len(payload):
        if i + 2 > len(payload):
            raise MalformedEncodingError("truncated TLV header")
        tlv_type, length = payload[i], payload[i + 1]
        value = payload[i + 2 : i + 2 + length]
        if len(value) != length:
            raise MalformedEncodingError(
                f"TLV type {tlv_type} declares {length} bytes, {len(value)} available"
            )
        entries.append((tlv_type, value))
        i += 2 + length
    return entries


def _first(entries: list[tuple[int, bytes]], tlv_type: int) -> bytes | None:
    return next((value for t, value in entries if t == tlv_type), None)


def _decode_special(entries: list[tuple[int, bytes]]) -> str:
    special = _first(entries, TLV_SPECIAL)
    if special is None:
        raise MalformedEncodingError("missing TLV special field")
    if len(special) != _VALUE_SIZE:
        raise MalformedEncodingError(f"TLV special field must be {_VALUE_SIZE} bytes")
    return special.hex()


def _decode_relays(entries: list[tuple[int, bytes]]) -> tuple[str, ...]:
    try:
        return tuple(value.decode("utf-8") for t, value in entries if t == TLV_RELAY)
    except UnicodeDecodeError:
        raise MalformedEncodingError("relay hint is not valid UTF-8") from None


# =============================================================================
# Public API
# =============================================================================


def encode(entity: ShareableEntity) -> str:
    """Encode *entity* as NIP-19 text.

    Raises:
        TypeError: If *entity* is not a shareable entity.
    """
    if isinstance(entity, Npub):
        return _bech32_encode(HRP_NPUB, bytes.fromhex(entity.public_key))
    if isinstance(entity, Nsec):
        return _bech32_encode(HRP_NSEC, bytes.fromhex(entity.secret_key))
    if isinstance(entity, Note):
        return _bech32_encode(HRP_NOTE, bytes.fromhex(entity.event_id))
    if isinstance(entity, Nprofile):
        payload = _tlv(TLV_SPECIAL, bytes.fromhex(entity.public_key))
        for relay in entity.relays:
            payload += _tlv(TLV_RELAY, relay.encode("utf-8"))
        return _bech32_encode(HRP_NPROFILE, payload)
    if isinstance(entity, Nevent):
        payload = _tlv(TLV_SPECIAL, bytes.fromhex(entity.event_id))
        for relay in entity.relays:
            payload += _tlv(TLV_RELAY, relay.encode("utf-8"))
        if entity.author is not None:
            payload += _tlv(TLV_AUTHOR, bytes.fromhex(entity.author))
        if entity.kind is not None:
            payload += _tlv(TLV_KIND, entity.kind.to_bytes(_KIND_SIZE, "big"))
        return _bech32_encode(HRP_NEVENT, payload)
    raise TypeError(f"cannot encode {type(entity).__name__} as NIP-19")


def decode(text: str) -> ShareableEntity:
    """Decode NIP-19 text into the entity it represents.

    Unknown TLV types are ignored.

    Raises:
        MalformedEncodingError: If the checksum does not verify, the prefix
            is not recognized, a length does not match the available data,
            or a decoded value is invalid.
    """
    hrp, payload = _bech32_decode(text)

    try:
        if hrp in (HRP_NPUB, HRP_NSEC, HRP_NOTE):
            if len(payload) != _VALUE_SIZE:
                raise MalformedEncodingError(
                    f"{hrp} payload must be {_VALUE_SIZE} bytes, got {len(payload)}"
                )
            if hrp == HRP_NPUB:
                return Npub(payload.hex())
            if hrp == HRP_NSEC:
                return Nsec(payload.hex())
            return Note(payload.hex())

        if hrp == HRP_NPROFILE:
            entries = _parse_tlv(payload)
            return Nprofile(_decode_special(entries), _decode_relays(entries))

        if hrp == HRP_NEVENT:
            entries = _parse_tlv(payload)
            author = _first(entries, TLV_AUTHOR)
            if author is not None and len(author) != _VALUE_SIZE:
                raise MalformedEncodingError(f"TLV author must be {_VALUE_SIZE} bytes")
            kind = _first(entries, TLV_KIND)
            if kind is not None and len(kind) != _KIND_SIZE:
                raise MalformedEncodingError(f"TLV kind must be {_KIND_SIZE} bytes")
            return Nevent(
                _decode_special(entries),
                _decode_relays(entries),
                author=author.hex() if author is not None else None,
                kind=int.from_bytes(kind, "big") if kind is not None else None,
            )
    except (TypeError, ValueError) as e:
        if isinstance(e, MalformedEncodingError):
            raise
        raise MalformedEncodingError(f"invalid {hrp} value: {e}") from e

    raise MalformedEncodingError(f"unknown NIP-19 prefix: {hrp!r}")


# =============================================================================
# Shortcuts
# =============================================================================


def npub(public_key: PublicKey) -> str:
    return encode(Npub(public_key.to_hex()))


def nsec(secret_key: SecretKey) -> str:
    return encode(Nsec(secret_key.to_hex()))


def note(event_id: str) -> str:
    return encode(Note(event_id))


def nevent(
    event_id: str,
    relays: tuple[str, ...] = (),
    author: str | None = None,
    kind: int | None = None,
) -> str:
    return encode(Nevent(event_id, tuple(relays), author=author, kind=kind))
