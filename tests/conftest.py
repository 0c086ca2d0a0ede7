import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


def movie(movie_id, genre_ids, vote_average=8.0, title=None, countries=None, origin=None, **extra):
    """Catalog list payload as returned by TMDB discover/similar."""
    data = {
        "id": movie_id,
        "title": title or f"Movie {movie_id}",
        "genre_ids": list(genre_ids),
        "vote_average": vote_average,
        "vote_count": 500,
        "popularity": 20.0,
        "release_date": "2015-05-01",
    }
    if countries is not None:
        data["production_countries"] = countries
    if origin is not None:
        data["origin_country"] = origin
    data.update(extra)
    return data


def details(movie_id, genre_ids, countries=(("US", "United States of America"),), origin=("US",),
            release_date="2015-05-01", popularity=20.0):
    """TMDB /movie/{id} payload."""
    return {
        "id": movie_id,
        "genres": [{"id": g, "name": f"Genre {g}"} for g in genre_ids],
        "release_date": release_date,
        "runtime": 110,
        "production_countries": [{"iso_3166_1": code, "name": name} for code, name in countries],
        "origin_country": list(origin),
        "popularity": popularity,
    }


class FakeCatalog:
    """
    In-memory catalog implementing the recommender's catalog interface.

    ``discover`` results are keyed by the ``with_genres`` string
    ("18,35,53" for AND, "18|35|53" for OR, "18" for single genre).
    """

    def __init__(self, details=None, discover=None, similar=None, fail_details=(), fail_similar=()):
        self.details = dict(details or {})
        self.discover = dict(discover or {})
        self.similar = dict(similar or {})
        self.fail_details = set(fail_details)
        self.fail_similar = set(fail_similar)
        self.detail_calls = []
        self.discover_calls = []
        self.similar_calls = []

    async def query_by_genres(self, genre_ids, filters=None, page=1):
        params = dict(filters or {})
        params["with_genres"] = ",".join(str(g) for g in genre_ids)
        params["page"] = page
        return await self.query_discover(params)

    async def query_discover(self, filters):
        self.discover_calls.append(dict(filters))
        if filters.get("page", 1) != 1:
            return []
        return list(self.discover.get(filters.get("with_genres"), []))

    async def query_similar(self, movie_id):
        self.similar_calls.append(movie_id)
        if movie_id in self.fail_similar:
            raise RuntimeError(f"similar failed for {movie_id}")
        return list(self.similar.get(movie_id, []))

    async def get_details(self, movie_id):
        self.detail_calls.append(movie_id)
        if movie_id in self.fail_details:
            raise RuntimeError(f"details failed for {movie_id}")
        return self.details.get(movie_id)


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary cache path to keep tests isolated.
    """
    monkeypatch.setenv("CINETRACK_CACHE_DB", str(tmp_path / "cache.db"))
    import cinetrack_rec.config as config

    importlib.reload(config)
    return config


@pytest.fixture
def store(tmp_path):
    from cinetrack_rec.database import MetadataStore

    metadata_store = MetadataStore(tmp_path / "cache.db")
    metadata_store.init()
    yield metadata_store
    metadata_store.close()


@pytest.fixture
def make_cache(store):
    """Build a MetadataCache over the temp store with pacing disabled."""
    from cinetrack_rec.cache import MetadataCache
    from cinetrack_rec.scheduler import BatchScheduler

    def _make(catalog, batch_size=5):
        return MetadataCache(store, catalog, BatchScheduler(batch_size=batch_size, delay=0.0))

    return _make
