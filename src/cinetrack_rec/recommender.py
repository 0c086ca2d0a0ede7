import asyncio
import logging
from dataclasses import replace
from typing import Callable, Iterable

from .cache import MetadataCache
from .candidates import CandidateGenerator
from .filtering import apply_exclusions
from .models import CacheEntry, Candidate, ExclusionPreferences, RatedMovie, RecommendationResult
from .profile import build_taste_profile, min_threshold, top_genre_ids
from .ranker import rank_candidates
from .scheduler import CancellationToken, OperationCancelled, ensure_active
from .utils import dedupe_by_id
from .config import FOR_YOU_LIMIT, SECTION_LIMIT, WIDENING_TARGET

logger = logging.getLogger(__name__)


def _as_rated(movie) -> RatedMovie:
    if isinstance(movie, RatedMovie):
        return movie
    return RatedMovie.from_dict(movie)


def _movie_id(movie) -> int:
    if isinstance(movie, int):
        return movie
    if isinstance(movie, dict):
        return int(movie["id"])
    return int(movie.id)


def merge_rated(movie: RatedMovie, entry: CacheEntry | None) -> RatedMovie:
    """Overlay cached metadata; the raw history fields are the fallback."""
    if entry is None:
        return movie
    return replace(
        movie,
        genres=entry.genres or movie.genres,
        release_date=entry.release_date or movie.release_date,
        popularity=entry.popularity if entry.popularity is not None else movie.popularity,
    )


def _merge_candidate(candidate: Candidate, entry: CacheEntry | None) -> Candidate:
    if entry is None:
        return candidate
    return replace(
        candidate,
        genre_ids=[g.id for g in entry.genres] or candidate.genre_ids,
        production_countries=(
            entry.production_countries if entry.production_countries is not None
            else candidate.production_countries
        ),
        origin_country=entry.origin_country if entry.origin_country is not None else candidate.origin_country,
        release_date=entry.release_date or candidate.release_date,
        popularity=entry.popularity if entry.popularity is not None else candidate.popularity,
    )


class Recommender:
    """
    Personalized recommendations from a rated watch history.

    Pipeline: hydrate history -> taste profile -> genre-focused and
    similar-based candidates (concurrently) -> dedupe -> hydrate pool ->
    exclusions -> rank -> widen with a broad fallback when the ranked pool
    is under target.

    ``recommend`` never raises for pipeline failures; they are logged and
    the empty result is returned.
    """

    def __init__(self, catalog, cache: MetadataCache, generator: CandidateGenerator | None = None):
        self.catalog = catalog
        self.cache = cache
        self.generator = generator or CandidateGenerator(catalog)

    async def recommend(
        self,
        watched: Iterable,
        watchlist: Iterable = (),
        preferences: ExclusionPreferences | None = None,
        token: CancellationToken | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> RecommendationResult:
        """
        Args:
            watched: Rated history as RatedMovie objects or raw dicts
            watchlist: Watchlisted movies (dicts, objects with ``id``, or ids)
            preferences: Hard exclusions; None means no exclusions
            token: Cancellation token; a cancelled run returns an empty
                result flagged ``cancelled``
            on_progress: Called as ``(done, total)`` while hydrating
        """
        try:
            watched = list(watched or [])
            if not watched:
                return RecommendationResult.empty()
            return await self._run(watched, list(watchlist or []), preferences, token, on_progress)
        except OperationCancelled as e:
            logger.info(f"Recommendation request cancelled: {e}")
            return RecommendationResult.empty(cancelled=True)
        except Exception:
            logger.exception("Recommendation pipeline failed")
            return RecommendationResult.empty()

    async def _hydrate_candidates(
        self,
        candidates: list[Candidate],
        token: CancellationToken | None,
    ) -> list[Candidate]:
        if not candidates:
            return []
        entries = await self.cache.hydrate(candidates, token=token)
        return [_merge_candidate(c, entries.get(c.id)) for c in candidates]

    async def _run(
        self,
        watched: list,
        watchlist: list,
        preferences: ExclusionPreferences | None,
        token: CancellationToken | None,
        on_progress: Callable[[int, int], None] | None,
    ) -> RecommendationResult:
        rated = dedupe_by_id(_as_rated(m) for m in watched)
        watched_ids = {m.id for m in rated}
        watchlist_ids = {_movie_id(m) for m in watchlist}

        logger.info(f"Analyzing {len(rated)} watched movies...")
        entries = await self.cache.hydrate(rated, token=token, on_progress=on_progress)
        rated = [merge_rated(m, entries.get(m.id)) for m in rated]

        profile = build_taste_profile(rated)
        if not profile.has_signal:
            logger.info("Not enough rated history for recommendations")
            return RecommendationResult.empty()

        threshold = min_threshold(profile)
        logger.info(f"Top genres {top_genre_ids(profile)}, quality threshold {threshold}")

        ensure_active(token)
        genre_based, similar_based = await asyncio.gather(
            self.generator.genre_focused(profile, threshold, watched_ids, watchlist_ids, token),
            self.generator.similar_based(rated, watched_ids, watchlist_ids, token),
        )

        hydrated = await self._hydrate_candidates(dedupe_by_id(genre_based + similar_based), token)
        by_id = {c.id: c for c in hydrated}
        pool = apply_exclusions(hydrated, preferences)
        ranked = rank_candidates(pool, profile, threshold)

        if len(ranked) < WIDENING_TARGET and profile.top_genres:
            logger.info(f"Only {len(ranked)} ranked candidates, widening with single-genre queries")
            fallback = await self.generator.broad_fallback(profile, threshold, watched_ids, watchlist_ids, token)
            fallback = [c for c in fallback if c.id not in by_id]
            fallback = apply_exclusions(await self._hydrate_candidates(fallback, token), preferences)
            pool = dedupe_by_id(pool + fallback)
            ranked = rank_candidates(pool, profile, threshold)

        ensure_active(token)
        result = RecommendationResult(
            for_you=ranked[:FOR_YOU_LIMIT],
            based_on_genres=apply_exclusions(
                [by_id[c.id] for c in dedupe_by_id(genre_based)], preferences
            )[:SECTION_LIMIT],
            similar=apply_exclusions(
                [by_id[c.id] for c in dedupe_by_id(similar_based)], preferences
            )[:SECTION_LIMIT],
        )
        logger.info(
            f"Recommendations ready: {len(result.for_you)} for you, "
            f"{len(result.based_on_genres)} by genre, {len(result.similar)} similar"
        )
        return result
