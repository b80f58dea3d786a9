from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Protocol, TypeVar


class Rankable(Protocol):
    view_count: int
    boosted_until: datetime | None


T = TypeVar("T", bound=Rankable)


def as_utc(ts: datetime) -> datetime:
    # some stores hand back naive timestamps; they are UTC by convention
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def is_boosted(listing: Rankable, now: datetime) -> bool:
    return listing.boosted_until is not None and as_utc(listing.boosted_until) > as_utc(now)


def rank(listings: Sequence[T], now: datetime) -> list[T]:
    """
    Order listings for display: every boosted listing first, then by view_count
    descending within each tier. sorted() is stable, so listings with equal
    keys keep their input order and repeated calls give identical output.
    Pure: nothing is read or written besides the given snapshot.
    """
    return sorted(listings, key=lambda listing: (not is_boosted(listing, now), -listing.view_count))
