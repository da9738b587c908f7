"""
Deduplication & merge engine.

Identity rule — two reviews are duplicates iff:
  * they share the same non-empty upstream id, or
  * at least one of them has no reliable id (RSS-sourced or id-less) and
    their composite keys (author.lower(), date, rating) match.

The composite match is a heuristic: RSS feeds re-issue ids across pages and
storefronts, so author/day/rating is the best identity they offer.

Identity is carried as tagged keys (IdKey / CompositeKey) rather than
concatenated strings, so "a_b" + "c" can never collide with "a" + "b_c".

Merge semantics:
  * cached reviews are authoritative — a new review that duplicates a cached
    one is dropped, never the other way round;
  * new reviews are also deduplicated against each other (first wins);
  * output = unique-new + cached, stable-sorted by date descending, so ties
    keep insertion order and merge(merge(A, B), B) == merge(A, B).
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from rivue.schemas.fetch import DateRange
from rivue.schemas.review import Review


@dataclass(frozen=True)
class IdKey:
    value: str
    kind: str = field(default="id", init=False)


@dataclass(frozen=True)
class CompositeKey:
    author: str
    date: dt.date
    rating: int
    kind: str = field(default="composite", init=False)


IdentityKey = Union[IdKey, CompositeKey]


def composite_key(review: Review) -> CompositeKey:
    return CompositeKey(author=review.author.strip().lower(), date=review.date, rating=review.rating)


def identity_keys(review: Review) -> tuple[IdentityKey, ...]:
    """Keys a review can be matched by: its id (if any) and its composite key."""
    composite = composite_key(review)
    if review.id:
        return (IdKey(review.id), composite)
    return (composite,)


def is_duplicate(a: Review, b: Review) -> bool:
    """Pairwise form of the identity rule."""
    if a.id and b.id and a.id == b.id:
        return True
    if a.has_reliable_id and b.has_reliable_id:
        return False
    return composite_key(a) == composite_key(b)


class IdentityIndex:
    """
    Set-based equivalent of checking is_duplicate against every indexed review.

    `ids`            every non-empty id seen
    `composites`     composite keys of every review
    `weak`           composite keys of reviews without a reliable id
    """

    def __init__(self, reviews: Iterable[Review] = ()) -> None:
        self.ids: set[str] = set()
        self.composites: set[CompositeKey] = set()
        self.weak: set[CompositeKey] = set()
        for review in reviews:
            self.add(review)

    def add(self, review: Review) -> None:
        key = composite_key(review)
        if review.id:
            self.ids.add(review.id)
        self.composites.add(key)
        if not review.has_reliable_id:
            self.weak.add(key)

    def matches(self, review: Review) -> bool:
        if review.id and review.id in self.ids:
            return True
        key = composite_key(review)
        if key in self.weak:
            return True
        return not review.has_reliable_id and key in self.composites

    def __contains__(self, review: Review) -> bool:
        return self.matches(review)


def sort_newest_first(reviews: list[Review]) -> list[Review]:
    """Stable sort by date descending; equal dates keep their input order."""
    return sorted(reviews, key=lambda r: r.date, reverse=True)


def unique_new(new_reviews: Iterable[Review], cached_reviews: Iterable[Review]) -> list[Review]:
    """New reviews matching neither the cache nor an earlier new review."""
    index = IdentityIndex(cached_reviews)
    kept: list[Review] = []
    for review in new_reviews:
        if review in index:
            continue
        index.add(review)
        kept.append(review)
    return kept


def merge(new_reviews: Iterable[Review], cached_reviews: Iterable[Review]) -> list[Review]:
    """Merge fresh reviews into the cached list, deduplicated and newest-first."""
    cached = list(cached_reviews)
    return sort_newest_first(unique_new(new_reviews, cached) + cached)


def dedupe(reviews: Iterable[Review]) -> list[Review]:
    """Deduplicate one list (first occurrence wins) and sort newest-first."""
    return merge(reviews, [])


def filter_date_range(reviews: Iterable[Review], date_range: Optional[DateRange]) -> list[Review]:
    if date_range is None:
        return list(reviews)
    return [r for r in reviews if date_range.contains(r.date)]
