"""
Cryptographic identity: secp256k1 keys and BIP-340 Schnorr signatures.

Thin, immutable wrappers over ``secp256k1`` (the Python binding of
libsecp256k1). All scalar and point arithmetic happens inside the C
library, which is constant-time with respect to secret data; this module
only moves bytes across the boundary and validates sizes.

Signatures are deterministic: no auxiliary randomness is passed to the
BIP-340 nonce function, so signing the same message with the same key
always yields the same 64 bytes.

See Also:
    [nostra.models.event.finalize][]: Signs event ids with
        [SecretKey][nostra.models.keys.SecretKey].
    [nostra.utils.keys][]: Loads secret keys from the environment.
    [nostra.nips.nip19][]: ``npub``/``nsec`` text encoding of keys.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field

import secp256k1

from ._validation import validate_hex, validate_instance


# Order of the secp256k1 group.
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

KEY_SIZE = 32
MESSAGE_SIZE = 32
SIGNATURE_SIZE = 64

_EVEN_Y_PREFIX = b"\x02"


def _is_valid_scalar(raw: bytes) -> bool:
    return 0 < int.from_bytes(raw, "big") < CURVE_ORDER


@dataclass(frozen=True, slots=True)
class PublicKey:
    """32-byte x-only public key (BIP-340).

    Args:
        raw: The x coordinate of the point, big-endian. The point with even
            Y is implied.

    Raises:
        TypeError: If *raw* is not ``bytes``.
        ValueError: If *raw* is not 32 bytes long.

    Note:
        Construction does not check that *raw* lies on the curve; a key that
        does not simply never verifies anything.
    """

    raw: bytes

    def __post_init__(self) -> None:
        validate_instance(self.raw, bytes, "raw")
        if len(self.raw) != KEY_SIZE:
            raise ValueError(f"public key must be {KEY_SIZE} bytes, got {len(self.raw)}")

    @classmethod
    def from_hex(cls, value: str) -> PublicKey:
        """Parse a 64-character lowercase hex public key."""
        validate_hex(value, "public key", KEY_SIZE)
        return cls(bytes.fromhex(value))

    def to_hex(self) -> str:
        return self.raw.hex()

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Check a BIP-340 signature over a 32-byte message.

        Never raises: malformed messages, signatures or keys not on the
        curve all return ``False``.
        """
        if not isinstance(message, bytes) or len(message) != MESSAGE_SIZE:
            return False
        if not isinstance(signature, bytes) or len(signature) != SIGNATURE_SIZE:
            return False
        try:
            point = secp256k1.PublicKey(_EVEN_Y_PREFIX + self.raw, raw=True)
            return bool(point.schnorr_verify(message, signature, None, raw=True))
        except Exception:  # noqa: BLE001  # secp256k1 raises bare Exception for off-curve keys
            return False

    def __str__(self) -> str:
        return self.to_hex()


@dataclass(frozen=True, slots=True)
class SecretKey:
    """32-byte secp256k1 secret scalar.

    Owned exclusively by its holder and never transmitted. The raw bytes are
    excluded from ``repr`` so keys do not leak into logs or tracebacks.

    Args:
        raw: Big-endian scalar, ``0 < k < n``.

    Raises:
        TypeError: If *raw* is not ``bytes``.
        ValueError: If *raw* is not 32 bytes or not a valid scalar.

    Examples:
        ```python
        sk = SecretKey.generate()
        pk = sk.public_key()
        sig = sk.sign(bytes(32))
        assert pk.verify(bytes(32), sig)
        ```
    """

    raw: bytes = field(repr=False)

    def __post_init__(self) -> None:
        validate_instance(self.raw, bytes, "raw")
        if len(self.raw) != KEY_SIZE:
            raise ValueError(f"secret key must be {KEY_SIZE} bytes")
        if not _is_valid_scalar(self.raw):
            raise ValueError("secret key is not a valid secp256k1 scalar")

    @classmethod
    def generate(cls) -> SecretKey:
        """Generate a key from the OS CSPRNG, retrying on invalid scalars."""
        while True:
            raw = secrets.token_bytes(KEY_SIZE)
            if _is_valid_scalar(raw):
                return cls(raw)

    @classmethod
    def from_hex(cls, value: str) -> SecretKey:
        """Parse a 64-character hex secret key (either case)."""
        if not isinstance(value, str):
            raise TypeError(f"secret key must be a str, got {type(value).__name__}")
        validate_hex(value.lower(), "secret key", KEY_SIZE)
        return cls(bytes.fromhex(value))

    def to_hex(self) -> str:
        return self.raw.hex()

    def public_key(self) -> PublicKey:
        """Derive the x-only public key (even-Y normalized)."""
        compressed = secp256k1.PrivateKey(self.raw, raw=True).pubkey.serialize(compressed=True)
        return PublicKey(compressed[1:])

    def sign(self, message: bytes) -> bytes:
        """Produce a deterministic 64-byte BIP-340 signature over *message*.

        Raises:
            ValueError: If *message* is not 32 bytes.
        """
        if not isinstance(message, bytes) or len(message) != MESSAGE_SIZE:
            raise ValueError(f"message must be {MESSAGE_SIZE} bytes")
        private = secp256k1.PrivateKey(self.raw, raw=True)
        return bytes(private.schnorr_sign(message, None, raw=True))


def generate() -> SecretKey:
    """Generate a new random [SecretKey][nostra.models.keys.SecretKey]."""
    return SecretKey.generate()


def derive_public(secret_key: SecretKey) -> PublicKey:
    """Derive the [PublicKey][nostra.models.keys.PublicKey] of *secret_key*."""
    return secret_key.public_key()


def sign(secret_key: SecretKey, message: bytes) -> bytes:
    """Sign a 32-byte message with *secret_key*."""
    return secret_key.sign(message)


def verify(public_key: PublicKey, message: bytes, signature: bytes) -> bool:
    """Verify *signature* over *message* under *public_key*; never raises."""
    return public_key.verify(message, signature)
