"""Utility helpers for cinetrack_rec."""

import logging
from typing import Iterable, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def dedupe_by_id(items: Iterable[T]) -> list[T]:
    """
    Drop items whose ``id`` was already seen, keeping the first occurrence.

    Works for dicts (``item["id"]``) and objects with an ``id`` attribute.
    """
    seen = set()
    unique = []
    for item in items:
        item_id = item["id"] if isinstance(item, dict) else item.id
        if item_id in seen:
            continue
        seen.add(item_id)
        unique.append(item)
    return unique


def exclude_ids(items: Iterable[T], *id_sets: set[int]) -> list[T]:
    """Keep only items whose id is in none of ``id_sets``."""
    blocked = set().union(*id_sets) if id_sets else set()
    return [
        item for item in items
        if (item["id"] if isinstance(item, dict) else item.id) not in blocked
    ]


def chunked(items: list[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of ``items`` with at most ``size`` elements."""
    if size < 1:
        raise ValueError("size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def parse_year(release_date: str | None) -> int | None:
    """
    Extract the year from a TMDB ``YYYY-MM-DD`` release date.

    Returns None for missing or malformed dates.
    """
    if not release_date or len(release_date) < 4:
        return None
    try:
        year = int(release_date[:4])
    except ValueError:
        logger.debug(f"Unparseable release date: '{release_date}'")
        return None
    return year if year > 0 else None
