"""
Unit tests for models.filter module.

Tests:
- Unconstrained filters match every event
- Each predicate (ids, authors, kinds, tags, since, until)
- Validation of field types and formats
- Deterministic wire serialization and parsing
"""

import pytest

from nostra.models.filter import Filter


OTHER_PUBKEY = "f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9"


class TestUnconstrained:
    """Filters without constraining fields."""

    def test_empty_filter_matches(self, make_event, other_secret_key):
        f = Filter()
        assert f.is_unconstrained
        assert f.matches(make_event())
        assert f.matches(make_event(kind=7, content="", key=other_secret_key))

    def test_limit_only_is_unconstrained(self, sample_event):
        f = Filter(limit=10)
        assert f.is_unconstrained
        assert f.matches(sample_event)

    def test_empty_tags_mapping_is_unconstrained(self):
        assert Filter(tags={}).is_unconstrained


class TestPredicates:
    """Individual predicates."""

    def test_authors_only_matches_author(self, make_event, secret_key, other_secret_key):
        pubkey = secret_key.public_key().to_hex()
        f = Filter(authors={pubkey})
        assert f.matches(make_event())
        assert not f.matches(make_event(key=other_secret_key))

    def test_ids(self, sample_event, make_event):
        f = Filter(ids=[sample_event.id])
        assert f.matches(sample_event)
        assert not f.matches(make_event(content="other"))

    def test_kinds(self, make_event):
        f = Filter(kinds=[1, 7])
        assert f.matches(make_event(kind=1))
        assert f.matches(make_event(kind=7))
        assert not f.matches(make_event(kind=0))

    def test_empty_kinds_matches_nothing(self, sample_event):
        assert not Filter(kinds=[]).matches(sample_event)

    def test_since_inclusive(self, make_event):
        f = Filter(since=100)
        assert f.matches(make_event(created_at=100))
        assert not f.matches(make_event(created_at=99))

    def test_until_inclusive(self, make_event):
        f = Filter(until=100)
        assert f.matches(make_event(created_at=100))
        assert not f.matches(make_event(created_at=101))

    def test_tags(self, make_event):
        f = Filter(tags={"t": {"nostr", "python"}})
        assert f.matches(make_event(tags=[["t", "python"]]))
        assert not f.matches(make_event(tags=[["t", "rust"]]))
        assert not f.matches(make_event(tags=[["e", "python"]]))
        assert not f.matches(make_event(tags=[["t"]]))

    def test_multiple_tag_names_all_required(self, make_event):
        f = Filter(tags={"t": {"a"}, "p": {OTHER_PUBKEY}})
        assert f.matches(make_event(tags=[["t", "a"], ["p", OTHER_PUBKEY]]))
        assert not f.matches(make_event(tags=[["t", "a"]]))

    def test_fields_combine_with_and(self, make_event, secret_key):
        f = Filter(authors=[secret_key.public_key().to_hex()], kinds=[1], since=10)
        assert f.matches(make_event(kind=1, created_at=10))
        assert not f.matches(make_event(kind=2, created_at=10))
        assert not f.matches(make_event(kind=1, created_at=9))


class TestValidation:
    """Field validation."""

    def test_collections_frozen(self):
        f = Filter(ids=["a" * 64], authors=["b" * 64], kinds=[1], tags={"t": ["x"]})
        assert f.ids == frozenset({"a" * 64})
        assert f.authors == frozenset({"b" * 64})
        assert f.kinds == frozenset({1})
        assert f.tags["t"] == frozenset({"x"})

    def test_tags_read_only(self):
        f = Filter(tags={"t": ["x"]})
        with pytest.raises(TypeError):
            f.tags["e"] = frozenset()  # type: ignore[index]

    def test_author_string_rejected(self):
        with pytest.raises(TypeError):
            Filter(authors="b" * 64)  # type: ignore[arg-type]

    def test_uppercase_author_rejected(self):
        with pytest.raises(ValueError):
            Filter(authors=["B" * 64])

    def test_short_id_rejected(self):
        with pytest.raises(ValueError):
            Filter(ids=["abcd"])

    def test_kind_out_of_range(self):
        with pytest.raises(ValueError):
            Filter(kinds=[70_000])

    def test_bool_kind_rejected(self):
        with pytest.raises(TypeError):
            Filter(kinds=[True])

    @pytest.mark.parametrize("name", ["", "tt", "1", "#t"])
    def test_bad_tag_name(self, name):
        with pytest.raises(ValueError, match="single letter"):
            Filter(tags={name: ["x"]})

    def test_negative_since(self):
        with pytest.raises(ValueError):
            Filter(since=-1)

    def test_equal_and_hashable(self):
        a = Filter(kinds=[1, 2], tags={"t": ["x", "y"]})
        b = Filter(kinds=[2, 1], tags={"t": ["y", "x"]})
        assert a == b
        assert hash(a) == hash(b)


class TestWireFormat:
    """to_dict() / from_dict()."""

    def test_to_dict_empty(self):
        assert Filter().to_dict() == {}

    def test_to_dict_ordering(self):
        f = Filter(
            kinds=[7, 1],
            authors=["b" * 64, "a" * 64],
            tags={"t": ["z", "a"], "e": ["c" * 64]},
            since=1,
            until=2,
            limit=3,
        )
        data = f.to_dict()
        assert list(data) == ["authors", "kinds", "#e", "#t", "since", "until", "limit"]
        assert data["authors"] == ["a" * 64, "b" * 64]
        assert data["kinds"] == [1, 7]
        assert data["#t"] == ["a", "z"]

    def test_from_dict(self):
        data = {"ids": ["a" * 64], "kinds": [1], "#t": ["nostr"], "since": 5, "limit": 1}
        f = Filter.from_dict(data)
        assert f == Filter(ids=["a" * 64], kinds=[1], tags={"t": ["nostr"]}, since=5, limit=1)
        assert f.to_dict() == data

    def test_from_dict_unknown_field(self):
        with pytest.raises(ValueError, match="unknown filter field"):
            Filter.from_dict({"search": "nostr"})

    def test_from_dict_non_array(self):
        with pytest.raises(TypeError):
            Filter.from_dict({"kinds": 1})

    def test_from_dict_not_mapping(self):
        with pytest.raises(TypeError):
            Filter.from_dict([])  # type: ignore[arg-type]
