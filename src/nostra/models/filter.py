"""
Subscription filters (NIP-01) and their matching logic.

A [Filter][nostra.models.filter.Filter] is a conjunction of optional
predicates. Absent fields do not constrain, so ``Filter()`` matches every
event. Set-valued fields are stored as ``frozenset`` and serialized as
sorted lists so the same filter always produces the same ``REQ`` frame.

Examples:
    ```python
    f = Filter(kinds={1}, tags={"t": {"nostr"}}, since=1_700_000_000, limit=50)
    f.matches(event)
    f.to_dict()
    # {'kinds': [1], '#t': ['nostr'], 'since': 1700000000, 'limit': 50}
    ```

See Also:
    [nostra.models.subscription.Subscription][]: OR-combination of filters.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from string import ascii_letters
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ._validation import validate_hex, validate_kind, validate_text, validate_timestamp


if TYPE_CHECKING:
    from .event import Event


_SCALAR_KEYS = ("since", "until", "limit")


def _freeze_strings(values: Iterable[str] | None, name: str) -> frozenset[str] | None:
    if values is None:
        return None
    if isinstance(values, str):
        raise TypeError(f"{name} must be a collection of str, not a str")
    return frozenset(values)


def _freeze_tag_constraints(
    tags: Mapping[str, Iterable[str]] | None,
) -> Mapping[str, frozenset[str]]:
    frozen: dict[str, frozenset[str]] = {}
    for name, values in (tags or {}).items():
        if not isinstance(name, str) or len(name) != 1 or name not in ascii_letters:
            raise ValueError(f"tag filter name must be a single letter, got {name!r}")
        accepted = _freeze_strings(values, f"tags[{name!r}]")
        for value in accepted or ():
            validate_text(value, f"tags[{name!r}]")
        frozen[name] = accepted or frozenset()
    return MappingProxyType(frozen)


@dataclass(frozen=True, slots=True)
class Filter:
    """Immutable set of optional event predicates.

    Attributes:
        ids: Accepted event ids.
        authors: Accepted author public keys (hex).
        kinds: Accepted kinds.
        tags: Single-letter tag name to accepted values; an event must
            carry at least one matching ``[name, value, ...]`` tag for every
            entry.
        since: Inclusive lower bound on ``created_at``.
        until: Inclusive upper bound on ``created_at``.
        limit: Advisory cap on stored events replayed by the relay. Not a
            matching predicate.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If an id/author is not 64 lowercase hex characters, a
            kind is out of range, a tag name is not a single letter, or a
            bound is negative.
    """

    ids: frozenset[str] | None = None
    authors: frozenset[str] | None = None
    kinds: frozenset[int] | None = None
    tags: Mapping[str, frozenset[str]] = field(default_factory=dict)
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        ids = _freeze_strings(self.ids, "ids")
        authors = _freeze_strings(self.authors, "authors")
        for value in ids or ():
            validate_hex(value, "ids", 32)
        for value in authors or ():
            validate_hex(value, "authors", 32)

        kinds = None
        if self.kinds is not None:
            values = list(self.kinds)
            for kind in values:
                validate_kind(kind, "kinds")
            kinds = frozenset(int(kind) for kind in values)

        for name in _SCALAR_KEYS:
            value = getattr(self, name)
            if value is not None:
                validate_timestamp(value, name)

        object.__setattr__(self, "ids", ids)
        object.__setattr__(self, "authors", authors)
        object.__setattr__(self, "kinds", kinds)
        object.__setattr__(self, "tags", _freeze_tag_constraints(self.tags))

    def __hash__(self) -> int:
        tag_items = frozenset(self.tags.items())
        return hash((self.ids, self.authors, self.kinds, tag_items, self.since, self.until, self.limit))

    @property
    def is_unconstrained(self) -> bool:
        """True when no field restricts which events match."""
        return (
            self.ids is None
            and self.authors is None
            and self.kinds is None
            and not self.tags
            and self.since is None
            and self.until is None
        )

    def matches(self, event: Event) -> bool:
        """Return True if *event* satisfies every present predicate."""
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, accepted in self.tags.items():
            if not any(len(tag) > 1 and tag[0] == name and tag[1] in accepted for tag in event.tags):
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 wire object with deterministic ordering."""
        data: dict[str, Any] = {}
        if self.ids is not None:
            data["ids"] = sorted(self.ids)
        if self.authors is not None:
            data["authors"] = sorted(self.authors)
        if self.kinds is not None:
            data["kinds"] = sorted(self.kinds)
        for name in sorted(self.tags):
            data[f"#{name}"] = sorted(self.tags[name])
        for name in _SCALAR_KEYS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Filter:
        """Parse a NIP-01 filter object.

        Raises:
            TypeError: If *data* or one of its fields has the wrong type.
            ValueError: If a key is not a known filter field or a value is
                malformed.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"filter must be an object, got {type(data).__name__}")
        kwargs: dict[str, Any] = {}
        tags: dict[str, list[str]] = {}
        for key, value in data.items():
            if key in ("ids", "authors", "kinds"):
                if not isinstance(value, list):
                    raise TypeError(f"{key} must be an array")
                kwargs[key] = value
            elif key in _SCALAR_KEYS:
                kwargs[key] = value
            elif isinstance(key, str) and key.startswith("#"):
                if not isinstance(value, list):
                    raise TypeError(f"{key} must be an array")
                tags[key[1:]] = value
            else:
                raise ValueError(f"unknown filter field: {key!r}")
        return cls(tags=tags, **kwargs)
