import logging
import sqlite3
from datetime import datetime
from typing import Callable, Iterable

from .database import MetadataStore
from .models import CacheEntry
from .scheduler import BatchScheduler, CancellationToken, ensure_active

logger = logging.getLogger(__name__)


class MetadataCache:
    """
    Local cache of genre/runtime/country metadata keyed by movie id.

    Wraps a persistent MetadataStore with an in-memory copy. Missing or
    stale entries are fetched from the catalog through a BatchScheduler,
    and the store is written only when something changed.

    Lifecycle: ``init()`` once before hydrating, ``flush()`` to persist
    (``hydrate`` flushes on its own when it added entries).
    """

    def __init__(self, store: MetadataStore, catalog, scheduler: BatchScheduler | None = None):
        self.store = store
        self.catalog = catalog
        self.scheduler = scheduler or BatchScheduler()
        self._entries: dict[int, CacheEntry] = {}
        self._dirty: set[int] = set()
        self._loaded = False

    def init(self) -> None:
        if self._loaded:
            return
        try:
            self.store.init()
            self._entries = self.store.load()
        except sqlite3.Error as e:
            logger.warning(f"Metadata cache unavailable, starting empty: {e}")
            self._entries = {}
        self._loaded = True
        logger.debug(f"Metadata cache ready ({len(self._entries)} entries)")

    def flush(self) -> None:
        if not self._dirty:
            return
        changed = {movie_id: self._entries[movie_id] for movie_id in self._dirty if movie_id in self._entries}
        try:
            self.store.save(changed)
        except sqlite3.Error as e:
            # Keep the dirty set so the next flush retries
            logger.warning(f"Failed to persist {len(changed)} metadata entries: {e}")
            return
        logger.info(f"Metadata cache updated ({len(changed)} entries written)")
        self._dirty.clear()

    def get(self, movie_id: int) -> CacheEntry | None:
        return self._entries.get(movie_id)

    def snapshot(self) -> dict[int, CacheEntry]:
        """Copy of everything currently cached in memory."""
        return dict(self._entries)

    def needs_fetch(self, movie_id: int) -> bool:
        entry = self._entries.get(movie_id)
        return entry is None or entry.is_stale

    def stats(self) -> dict:
        return {
            'entries': len(self._entries),
            'stale': sum(1 for e in self._entries.values() if e.is_stale),
            'pending_writes': len(self._dirty),
        }

    async def hydrate(
        self,
        movies: Iterable,
        token: CancellationToken | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> dict[int, CacheEntry]:
        """
        Ensure every movie has cached metadata and return ``id -> entry``.

        ``movies`` may be dicts or objects exposing ``id``. Movies whose
        details cannot be fetched are left out of the returned map; callers
        fall back to the fields the raw movie already carries.
        """
        self.init()

        ids = []
        seen = set()
        for movie in movies:
            movie_id = movie["id"] if isinstance(movie, dict) else movie.id
            if movie_id not in seen:
                seen.add(movie_id)
                ids.append(movie_id)

        missing = [movie_id for movie_id in ids if self.needs_fetch(movie_id)]

        if missing:
            logger.info(f"Fetching metadata for {len(missing)} movies...")
            # Entries land in memory as each fetch completes, so a cancelled
            # run still persists what earlier batches fetched.
            try:
                results = await self.scheduler.run(
                    missing,
                    lambda movie_id: self._fetch_entry(movie_id, token),
                    token=token,
                    on_batch_done=on_progress,
                )
            finally:
                self.flush()

            failed = 0
            for movie_id, result in zip(missing, results):
                if isinstance(result, Exception):
                    logger.warning(f"Failed to fetch metadata for {movie_id}: {type(result).__name__}: {result}")
                    failed += 1
                elif result is None:
                    logger.debug(f"No details for {movie_id}")
                    failed += 1

            if failed:
                logger.warning(f"Hydration complete: {len(missing) - failed}/{len(missing)} fetched, {failed} failed")

        return {movie_id: self._entries[movie_id] for movie_id in ids if movie_id in self._entries}

    async def _fetch_entry(self, movie_id: int, token: CancellationToken | None) -> CacheEntry | None:
        ensure_active(token)
        details = await self.catalog.get_details(movie_id)
        if not details:
            return None
        entry = CacheEntry.from_details(movie_id, details, fetched_at=datetime.now().isoformat())
        self._entries[movie_id] = entry
        self._dirty.add(movie_id)
        return entry
