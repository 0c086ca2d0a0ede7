import sqlite3
import json
import logging
from contextlib import contextmanager
from pathlib import Path

from .config import CACHE_DB_PATH
from .models import CacheEntry, GenreRef, ProductionCountry

logger = logging.getLogger(__name__)


def load_json(val):
    """Safely load a JSON list from a db field."""
    if not val:
        return []
    if isinstance(val, list):
        return val
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{val[:50]}...': {e}")
        return []


def _load_optional_json(val):
    """Like load_json, but NULL stays None (used to flag stale cache entries)."""
    if val is None:
        return None
    return load_json(val)


def _dump_genres(genres: list[GenreRef]) -> str:
    return json.dumps([{"id": g.id, "name": g.name} for g in genres])


def _dump_countries(countries: list[ProductionCountry] | None) -> str | None:
    if countries is None:
        return None
    return json.dumps([{"iso_3166_1": c.iso_3166_1, "name": c.name} for c in countries])


def _row_to_entry(row: sqlite3.Row) -> CacheEntry:
    countries = _load_optional_json(row['production_countries'])
    origin = _load_optional_json(row['origin_country'])
    return CacheEntry(
        movie_id=row['movie_id'],
        genres=[GenreRef(g['id'], g.get('name')) for g in load_json(row['genres'])],
        release_date=row['release_date'],
        runtime=row['runtime'] or 0,
        production_countries=(
            None if countries is None
            else [ProductionCountry(c['iso_3166_1'], c.get('name')) for c in countries]
        ),
        origin_country=None if origin is None else list(origin),
        popularity=row['popularity'],
        fetched_at=row['fetched_at'],
    )


class MetadataStore:
    """
    SQLite-backed key-value store for hydrated movie metadata.

    The pipeline runs on a single event loop thread, so one connection is
    enough. Call ``init()`` before use and ``close()`` on shutdown.
    """

    def __init__(self, db_path: Path | str = CACHE_DB_PATH):
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new database connection with optimal settings."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row

        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")

        return conn

    @contextmanager
    def _connection(self, read_only: bool = False):
        """
        Yield the store connection, committing on success and rolling back
        on error. ``read_only`` skips the commit.
        """
        if self._conn is None:
            self.init()
        conn = self._conn

        try:
            yield conn
            if not read_only:
                conn.commit()
        except Exception:
            conn.rollback()
            raise

    def init(self) -> None:
        if self._conn is not None:
            return
        self._db_path.parent.mkdir(exist_ok=True, parents=True)
        self._conn = self._create_connection()
        with self._connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS movie_metadata (
                    movie_id INTEGER PRIMARY KEY,
                    genres TEXT,                -- JSON list of {id, name}
                    release_date TEXT,
                    runtime INTEGER,
                    production_countries TEXT,  -- JSON list, NULL = never fetched
                    origin_country TEXT,        -- JSON list, NULL = never fetched
                    popularity REAL,
                    fetched_at TEXT
                );
            """)
            _migrate_metadata_table(conn)

    def load(self) -> dict[int, CacheEntry]:
        with self._connection(read_only=True) as conn:
            rows = conn.execute("SELECT * FROM movie_metadata").fetchall()

        entries = {}
        for row in rows:
            try:
                entries[row['movie_id']] = _row_to_entry(row)
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed cache row for movie {row['movie_id']}: {e}")
        logger.debug(f"Loaded {len(entries)} cached metadata entries from {self._db_path}")
        return entries

    def save(self, entries: dict[int, CacheEntry]) -> None:
        """Upsert the given entries."""
        if not entries:
            return
        with self._connection() as conn:
            conn.executemany("""
                INSERT OR REPLACE INTO movie_metadata
                (movie_id, genres, release_date, runtime, production_countries,
                 origin_country, popularity, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, [(
                e.movie_id,
                _dump_genres(e.genres),
                e.release_date,
                e.runtime,
                _dump_countries(e.production_countries),
                None if e.origin_country is None else json.dumps(e.origin_country),
                e.popularity,
                e.fetched_at,
            ) for e in entries.values()])
        logger.debug(f"Saved {len(entries)} metadata entries")

    def count(self) -> int:
        with self._connection(read_only=True) as conn:
            return conn.execute("SELECT COUNT(*) FROM movie_metadata").fetchone()[0]

    def count_stale(self) -> int:
        with self._connection(read_only=True) as conn:
            return conn.execute("""
                SELECT COUNT(*) FROM movie_metadata
                WHERE production_countries IS NULL OR origin_country IS NULL
            """).fetchone()[0]

    def clear(self) -> int:
        """Delete every entry. Returns the number of rows removed."""
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM movie_metadata")
            return cursor.rowcount

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def _migrate_metadata_table(conn):
    """Add columns introduced after the first cache schema."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA table_info(movie_metadata)")
    existing_columns = {row[1] for row in cursor.fetchall()}

    new_columns = {
        'production_countries': 'TEXT',
        'origin_country': 'TEXT',
        'popularity': 'REAL',
        'fetched_at': 'TEXT',
    }

    for col_name, col_type in new_columns.items():
        if col_name not in existing_columns:
            try:
                conn.execute(f"ALTER TABLE movie_metadata ADD COLUMN {col_name} {col_type}")
                logger.info(f"Added column '{col_name}' to movie_metadata table")
            except sqlite3.Error as e:
                logger.warning(f"Could not add column '{col_name}': {e}")
