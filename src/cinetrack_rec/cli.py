import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from .cache import MetadataCache
from .config import CACHE_DB_PATH, FOR_YOU_LIMIT
from .database import MetadataStore
from .models import ExclusionPreferences, RatedMovie, RecommendationResult
from .profile import build_taste_profile, min_threshold
from .recommender import Recommender, merge_rated
from .scheduler import CancellationToken
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


def _load_history(path: str) -> dict:
    """
    Read a watch-history export.

    Accepts either a list of watched movies or an object with ``watched``,
    ``watchlist`` and optional ``preferences`` keys.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, list):
        return {"watched": data, "watchlist": [], "preferences": {}}
    if not isinstance(data, dict):
        raise ValueError(f"Unsupported history format in {path}")
    movie_data = data.get("movieData", data)
    return {
        "watched": movie_data.get("watched") or [],
        "watchlist": movie_data.get("watchlist") or [],
        "preferences": data.get("preferences") or {},
    }


class _ProgressBar:
    """Adapts the (done, total) hydration callback to a tqdm bar."""

    def __init__(self, desc: str, enabled: bool = True):
        self.desc = desc
        self.enabled = enabled
        self.bar = None

    def __call__(self, done: int, total: int) -> None:
        if not self.enabled:
            return
        if self.bar is None:
            self.bar = tqdm(total=total, desc=self.desc)
        self.bar.update(done - self.bar.n)

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()


def _open_cache(db_path: str | None, catalog) -> MetadataCache:
    cache = MetadataCache(MetadataStore(db_path or CACHE_DB_PATH), catalog)
    cache.init()
    return cache


async def _recommend_async(args: argparse.Namespace, history: dict, prefs: ExclusionPreferences) -> RecommendationResult:
    token = CancellationToken()
    if args.timeout:
        asyncio.get_running_loop().call_later(args.timeout, token.cancel, f"timed out after {args.timeout}s")

    progress = _ProgressBar("Metadata", enabled=not args.no_progress)
    async with TMDBClient() as catalog:
        cache = _open_cache(args.cache_db, catalog)
        try:
            recommender = Recommender(catalog, cache)
            return await recommender.recommend(
                history["watched"],
                history["watchlist"],
                prefs,
                token=token,
                on_progress=progress,
            )
        finally:
            progress.close()
            cache.flush()
            cache.store.close()


def cmd_recommend(args: argparse.Namespace) -> None:
    """Generate recommendations for a watch-history file."""
    history = _load_history(args.history)
    prefs_data = history["preferences"]
    if args.preferences:
        prefs_data = json.loads(Path(args.preferences).read_text(encoding="utf-8"))
    prefs = ExclusionPreferences.from_dict(prefs_data)

    result = asyncio.run(_recommend_async(args, history, prefs))

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        return

    if result.cancelled:
        logger.warning("Request cancelled before completion")
        return
    if result.is_empty:
        logger.info("No recommendations (rate a few movies first)")
        return

    logger.info(f"\nTop {min(args.limit, len(result.for_you))} for you:")
    for i, movie in enumerate(result.for_you[:args.limit], 1):
        year = (movie.release_date or "")[:4] or "?"
        logger.info(f"{i:3}. {movie.title} ({year})  ★ {movie.vote_average:.1f}  [{movie.affinity_score:,.0f}]")

    for label, section in (("Based on your genres", result.based_on_genres), ("Similar to your favorites", result.similar)):
        if section:
            logger.info(f"\n{label}:")
            for movie in section[:10]:
                logger.info(f"  - {movie.title}")


async def _profile_async(args: argparse.Namespace, watched: list[RatedMovie]):
    async with TMDBClient() as catalog:
        cache = _open_cache(args.cache_db, catalog)
        try:
            entries = await cache.hydrate(watched, on_progress=_ProgressBar("Metadata", enabled=not args.no_progress))
        finally:
            cache.store.close()
    return build_taste_profile([merge_rated(m, entries.get(m.id)) for m in watched])


def cmd_profile(args: argparse.Namespace) -> None:
    """Show the taste profile inferred from a watch-history file."""
    history = _load_history(args.history)
    watched = [RatedMovie.from_dict(m) for m in history["watched"]]
    if not watched:
        logger.error(f"No watched movies in {args.history}")
        return

    profile = asyncio.run(_profile_async(args, watched))

    logger.info(f"\nProfile ({profile.total_watched} watched)")
    logger.info(f"  Average rating: {profile.avg_rating:.2f}/10")
    logger.info(f"  Prefers popular titles: {'yes' if profile.prefers_popular else 'no'}")

    if not profile.top_genres:
        logger.info("  Not enough rated movies to infer genres")
        return

    logger.info(f"  Quality threshold: {min_threshold(profile)}")
    logger.info("\nTop genres:")
    for g in profile.top_genres[:10]:
        logger.info(f"  {g.name or g.genre_id}: {g.avg_rating:.2f} avg over {g.count}")

    if profile.top_decades:
        logger.info("\nDecade preferences:")
        for d in profile.top_decades:
            logger.info(f"  {d.decade}s: {'█' * d.weight} ({d.weight})")


def cmd_cache_stats(args: argparse.Namespace) -> None:
    """Show metadata cache statistics."""
    store = MetadataStore(args.cache_db or CACHE_DB_PATH)
    store.init()
    try:
        logger.info(f"Metadata cache: {args.cache_db or CACHE_DB_PATH}")
        logger.info(f"  Entries: {store.count()}")
        logger.info(f"  Stale (missing country data): {store.count_stale()}")
    finally:
        store.close()


def cmd_cache_clear(args: argparse.Namespace) -> None:
    """Delete every cached metadata entry."""
    store = MetadataStore(args.cache_db or CACHE_DB_PATH)
    store.init()
    try:
        removed = store.clear()
    finally:
        store.close()
    logger.info(f"Removed {removed} cached entries")


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="CineTrack Recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--cache-db", help=f"Metadata cache database (default: {CACHE_DB_PATH})")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rec_parser = subparsers.add_parser("recommend", help="Generate recommendations")
    rec_parser.add_argument("history", help="JSON file with watched/watchlist data")
    rec_parser.add_argument("--preferences", help="JSON file with excludedGenres/excludedCountries")
    rec_parser.add_argument("--limit", type=int, default=20, help=f"Results to print (max {FOR_YOU_LIMIT})")
    rec_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    rec_parser.add_argument("--timeout", type=float, help="Abandon the request after N seconds")
    rec_parser.add_argument("--no-progress", action="store_true", help="Hide the hydration progress bar")
    rec_parser.set_defaults(func=cmd_recommend)

    profile_parser = subparsers.add_parser("profile", help="Show inferred taste profile")
    profile_parser.add_argument("history", help="JSON file with watched/watchlist data")
    profile_parser.add_argument("--no-progress", action="store_true", help="Hide the hydration progress bar")
    profile_parser.set_defaults(func=cmd_profile)

    stats_parser = subparsers.add_parser("cache-stats", help="Show metadata cache statistics")
    stats_parser.set_defaults(func=cmd_cache_stats)

    clear_parser = subparsers.add_parser("cache-clear", help="Delete all cached metadata")
    clear_parser.set_defaults(func=cmd_cache_clear)

    args = parser.parse_args(argv)

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        args.func(args)
    except (OSError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
