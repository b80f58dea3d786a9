from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from hypothesis import given, strategies as st

from market.services.ranking import is_boosted, rank

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@dataclass
class Row:
    key: int
    view_count: int
    boosted_until: datetime | None


boost_offsets = st.one_of(st.none(), st.integers(min_value=-72, max_value=72))


@st.composite
def rows(draw):
    specs = draw(st.lists(st.tuples(st.integers(min_value=0, max_value=5), boost_offsets), max_size=30))
    return [
        Row(key=i, view_count=views, boosted_until=None if off is None else NOW + timedelta(hours=off))
        for i, (views, off) in enumerate(specs)
    ]


@given(rows())
def test_boosted_listings_precede_all_others(listings):
    out = rank(listings, NOW)
    flags = [is_boosted(r, NOW) for r in out]
    assert flags == sorted(flags, reverse=True)


@given(rows())
def test_view_count_descends_within_tier(listings):
    out = rank(listings, NOW)
    for a, b in zip(out, out[1:]):
        if is_boosted(a, NOW) == is_boosted(b, NOW):
            assert a.view_count >= b.view_count


@given(rows())
def test_ties_keep_input_order_and_repeat_identically(listings):
    first = rank(listings, NOW)
    assert [r.key for r in rank(listings, NOW)] == [r.key for r in first]
    for a, b in zip(first, first[1:]):
        if is_boosted(a, NOW) == is_boosted(b, NOW) and a.view_count == b.view_count:
            assert a.key < b.key


@given(rows())
def test_rank_is_a_permutation_and_leaves_input_alone(listings):
    before = [(r.key, r.view_count, r.boosted_until) for r in listings]
    out = rank(listings, NOW)
    assert sorted(r.key for r in out) == [r.key for r in listings]
    assert [(r.key, r.view_count, r.boosted_until) for r in listings] == before


def test_boost_beats_popularity():
    popular = Row(key=1, view_count=1_000, boosted_until=None)
    boosted = Row(key=2, view_count=0, boosted_until=NOW + timedelta(hours=1))
    assert [r.key for r in rank([popular, boosted], NOW)] == [2, 1]


def test_expired_or_exact_boost_does_not_count():
    expired = Row(key=1, view_count=1, boosted_until=NOW - timedelta(seconds=1))
    ends_now = Row(key=2, view_count=2, boosted_until=NOW)
    assert not is_boosted(expired, NOW)
    assert not is_boosted(ends_now, NOW)
    assert [r.key for r in rank([expired, ends_now], NOW)] == [2, 1]


def test_naive_timestamps_are_treated_as_utc():
    row = Row(key=1, view_count=0, boosted_until=(NOW + timedelta(minutes=5)).replace(tzinfo=None))
    assert is_boosted(row, NOW)


def test_empty_input():
    assert rank([], NOW) == []
