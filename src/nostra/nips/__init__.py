"""NIP implementations layered on top of the models.

Currently ships [nostra.nips.nip19][] (bech32 shareable identifiers).
NIP-01 itself lives in the models layer because every other layer depends
on it.
"""

from .nip19 import (
    Nevent,
    Note,
    Nprofile,
    Npub,
    Nsec,
    ShareableEntity,
    decode,
    encode,
)


__all__ = [
    "Nevent",
    "Note",
    "Nprofile",
    "Npub",
    "Nsec",
    "ShareableEntity",
    "decode",
    "encode",
]
