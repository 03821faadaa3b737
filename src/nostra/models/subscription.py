"""Caller-identified standing queries made of one or more filters."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ._validation import validate_instance
from .constants import SUBSCRIPTION_ID_MAX_LENGTH
from .filter import Filter


if TYPE_CHECKING:
    from .event import Event


def validate_subscription_id(value: object) -> None:
    """Raise unless *value* is a non-empty str of at most 64 characters."""
    validate_instance(value, str, "subscription id")
    assert isinstance(value, str)  # noqa: S101  # narrowing for type checkers
    if not value:
        raise ValueError("subscription id must not be empty")
    if len(value) > SUBSCRIPTION_ID_MAX_LENGTH:
        raise ValueError(
            f"subscription id must be at most {SUBSCRIPTION_ID_MAX_LENGTH} characters"
        )


@dataclass(frozen=True, slots=True)
class Subscription:
    """A subscription id and the filters it was opened with.

    An event matches the subscription when it matches any one of its
    filters.

    Raises:
        TypeError: If ``id`` is not a str or a filter is not a
            [Filter][nostra.models.filter.Filter].
        ValueError: If ``id`` is empty or too long, or no filter is given.
    """

    id: str
    filters: tuple[Filter, ...]

    def __post_init__(self) -> None:
        validate_subscription_id(self.id)
        filters = tuple(self.filters)
        if not filters:
            raise ValueError("a subscription needs at least one filter")
        for item in filters:
            validate_instance(item, Filter, "filters")
        object.__setattr__(self, "filters", filters)

    @classmethod
    def create(cls, subscription_id: str, filters: Filter | Iterable[Filter]) -> Subscription:
        """Build a subscription from a single filter or an iterable of filters."""
        if isinstance(filters, Filter):
            filters = (filters,)
        return cls(subscription_id, tuple(filters))

    def matches(self, event: Event) -> bool:
        return any(f.matches(event) for f in self.filters)
