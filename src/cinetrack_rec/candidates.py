import asyncio
import logging

from .models import Candidate, RatedMovie, TasteProfile
from .profile import top_genre_ids
from .scheduler import CancellationToken, OperationCancelled, ensure_active
from .utils import dedupe_by_id, exclude_ids
from .config import (
    TOP_GENRE_COUNT,
    STRICT_MIN_VOTE_COUNT,
    BROAD_OR_MIN_VOTE_COUNT,
    FALLBACK_MIN_VOTE_COUNT,
    GENRE_QUERY_PAGES,
    CANDIDATE_SORT,
    SIMILAR_SEED_MIN_RATING,
    SIMILAR_SEED_LIMIT,
)

logger = logging.getLogger(__name__)


def _filters(min_vote_count: int, threshold: int) -> dict:
    return {
        "sort_by": CANDIDATE_SORT,
        "vote_count.gte": min_vote_count,
        "vote_average.gte": threshold,
    }


def select_similar_seeds(rated: list[RatedMovie], limit: int = SIMILAR_SEED_LIMIT) -> list[RatedMovie]:
    """Best-loved titles (rating >= 9), highest first, at most ``limit``."""
    seeds = [m for m in rated if m.is_rated and m.rating >= SIMILAR_SEED_MIN_RATING]
    seeds.sort(key=lambda m: -m.rating)
    return seeds[:limit]


class CandidateGenerator:
    """
    Builds candidate pools from the catalog.

    Three strategies, each returning deduplicated Candidates with watched
    and watchlisted ids removed:
    - genre_focused: AND + OR discover queries over exactly three top genres
    - similar_based: catalog "similar" lists for the best-loved titles
    - broad_fallback: one relaxed query per top genre, used for widening

    A failing catalog call is logged and contributes nothing.
    """

    def __init__(self, catalog):
        self.catalog = catalog

    async def _safe_query(self, label: str, coro_factory, token: CancellationToken | None) -> list[dict]:
        ensure_active(token)
        try:
            return await coro_factory() or []
        except OperationCancelled:
            raise
        except Exception as e:
            logger.error(f"Catalog query failed ({label}): {type(e).__name__}: {e}")
            return []

    @staticmethod
    def _finalize(raw: list[dict], watched_ids: set[int], watchlist_ids: set[int]) -> list[Candidate]:
        movies = exclude_ids(dedupe_by_id(r for r in raw if r.get("id") is not None), watched_ids, watchlist_ids)
        return [Candidate.from_dict(m) for m in movies]

    async def genre_focused(
        self,
        profile: TasteProfile,
        threshold: int,
        watched_ids: set[int],
        watchlist_ids: set[int],
        token: CancellationToken | None = None,
    ) -> list[Candidate]:
        genre_ids = top_genre_ids(profile)
        if len(genre_ids) != TOP_GENRE_COUNT:
            logger.debug(f"Skipping genre-focused queries ({len(genre_ids)} top genres)")
            return []

        strict = _filters(STRICT_MIN_VOTE_COUNT, threshold)
        broad = _filters(BROAD_OR_MIN_VOTE_COUNT, threshold)
        broad["with_genres"] = "|".join(str(g) for g in genre_ids)

        queries = [
            self._safe_query(
                f"genres AND {genre_ids} page {page}",
                lambda page=page: self.catalog.query_by_genres(genre_ids, strict, page),
                token,
            )
            for page in GENRE_QUERY_PAGES
        ] + [
            self._safe_query(
                f"genres OR {genre_ids} page {page}",
                lambda page=page: self.catalog.query_discover({**broad, "page": page}),
                token,
            )
            for page in GENRE_QUERY_PAGES
        ]
        pages = await asyncio.gather(*queries)

        raw = [movie for page in pages for movie in page]
        candidates = self._finalize(raw, watched_ids, watchlist_ids)
        logger.debug(f"Genre-focused: {len(candidates)} candidates from {len(raw)} results")
        return candidates

    async def similar_based(
        self,
        rated: list[RatedMovie],
        watched_ids: set[int],
        watchlist_ids: set[int],
        token: CancellationToken | None = None,
    ) -> list[Candidate]:
        seeds = select_similar_seeds(rated)
        if not seeds:
            return []

        results = await asyncio.gather(*(
            self._safe_query(
                f"similar to {seed.id}",
                lambda seed=seed: self.catalog.query_similar(seed.id),
                token,
            )
            for seed in seeds
        ))

        raw = [movie for result in results for movie in result]
        candidates = self._finalize(raw, watched_ids, watchlist_ids)
        logger.debug(f"Similar-based: {len(candidates)} candidates from {len(seeds)} seeds")
        return candidates

    async def broad_fallback(
        self,
        profile: TasteProfile,
        threshold: int,
        watched_ids: set[int],
        watchlist_ids: set[int],
        token: CancellationToken | None = None,
    ) -> list[Candidate]:
        genre_ids = top_genre_ids(profile)
        if not genre_ids:
            return []

        relaxed = _filters(FALLBACK_MIN_VOTE_COUNT, threshold)
        results = await asyncio.gather(*(
            self._safe_query(
                f"fallback genre {genre_id}",
                lambda genre_id=genre_id: self.catalog.query_by_genres([genre_id], relaxed, 1),
                token,
            )
            for genre_id in genre_ids
        ))

        raw = [movie for result in results for movie in result]
        candidates = self._finalize(raw, watched_ids, watchlist_ids)
        logger.debug(f"Broad fallback: {len(candidates)} candidates")
        return candidates
