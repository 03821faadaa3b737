"""Shared validation helpers for frozen dataclass models.

Private module, not part of the public API. Used by ``__post_init__``
methods in sibling model modules so invalid instances never escape the
constructor.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .constants import EVENT_KIND_MAX


_HEX_DIGITS = frozenset("0123456789abcdef")


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        article = "an" if expected.__name__[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {expected.__name__}, got {type(value).__name__}")


def validate_int(value: Any, name: str) -> None:
    """Raise if *value* is not an ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    validate_int(value, name)
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_kind(value: Any, name: str = "kind") -> None:
    """Raise if *value* is not an event kind in ``0..EVENT_KIND_MAX``."""
    validate_int(value, name)
    if not 0 <= value <= EVENT_KIND_MAX:
        raise ValueError(f"{name} must be between 0 and {EVENT_KIND_MAX}, got {value}")


def validate_text(value: Any, name: str) -> None:
    """Raise if *value* is not a ``str`` that can be encoded as UTF-8.

    Lone surrogates are the only Python strings UTF-8 cannot encode; they
    would make canonical serialization fail later.
    """
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError(f"{name} is not valid UTF-8 text") from None


def validate_hex(value: Any, name: str, length: int) -> None:
    """Raise if *value* is not lowercase hex encoding exactly *length* bytes."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if len(value) != length * 2 or not _HEX_DIGITS.issuperset(value):
        raise ValueError(f"{name} must be {length * 2} lowercase hex characters")


def freeze_tags(tags: Iterable[Iterable[str]], name: str = "tags") -> tuple[tuple[str, ...], ...]:
    """Normalize nested tag sequences into a tuple of tuples of strings.

    Raises:
        TypeError: If *tags* is a string, or any tag is a string or holds a
            non-string value.
        ValueError: If any value is not valid UTF-8 text.
    """
    if isinstance(tags, str | bytes):
        raise TypeError(f"{name} must be a sequence of sequences, got {type(tags).__name__}")
    frozen: list[tuple[str, ...]] = []
    for i, tag in enumerate(tags):
        if isinstance(tag, str | bytes):
            raise TypeError(f"{name}[{i}] must be a sequence of str, got {type(tag).__name__}")
        values = tuple(tag)
        for value in values:
            validate_text(value, f"{name}[{i}]")
        frozen.append(values)
    return tuple(frozen)
