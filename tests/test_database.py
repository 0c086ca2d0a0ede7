import sqlite3

from cinetrack_rec.database import MetadataStore, load_json
from cinetrack_rec.models import CacheEntry, GenreRef, ProductionCountry


def _entry(movie_id, **overrides):
    data = dict(
        movie_id=movie_id,
        genres=[GenreRef(18, "Drama")],
        release_date="1999-10-15",
        runtime=139,
        production_countries=[ProductionCountry("US", "United States of America")],
        origin_country=["US"],
        popularity=61.4,
        fetched_at="2024-01-01T00:00:00",
    )
    data.update(overrides)
    return CacheEntry(**data)


def test_save_and_load_round_trip(store):
    store.save({550: _entry(550)})

    loaded = store.load()

    assert loaded[550] == _entry(550)
    assert store.count() == 1


def test_missing_country_columns_load_as_none(store):
    store.save({1: _entry(1, origin_country=None), 2: _entry(2, production_countries=None)})

    loaded = store.load()

    assert loaded[1].origin_country is None
    assert loaded[1].is_stale
    assert loaded[2].production_countries is None
    assert store.count_stale() == 2


def test_empty_country_lists_are_not_stale(store):
    store.save({3: _entry(3, production_countries=[], origin_country=[])})

    loaded = store.load()

    assert loaded[3].production_countries == []
    assert loaded[3].origin_country == []
    assert not loaded[3].is_stale


def test_save_upserts_and_clear_removes(store):
    store.save({1: _entry(1)})
    store.save({1: _entry(1, runtime=90), 2: _entry(2)})

    assert store.load()[1].runtime == 90
    assert store.count() == 2
    assert store.clear() == 2
    assert store.load() == {}


def test_init_migrates_legacy_table(tmp_path):
    db_path = tmp_path / "legacy.db"
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE movie_metadata (movie_id INTEGER PRIMARY KEY, genres TEXT, release_date TEXT, runtime INTEGER)")
    conn.execute(
        "INSERT INTO movie_metadata VALUES (?, ?, ?, ?)",
        (7, '[{"id": 18, "name": "Drama"}]', "2001-01-01", 100),
    )
    conn.commit()
    conn.close()

    legacy = MetadataStore(db_path)
    legacy.init()
    try:
        entry = legacy.load()[7]
    finally:
        legacy.close()

    assert entry.genres == [GenreRef(18, "Drama")]
    assert entry.is_stale


def test_load_json_handles_bad_values():
    assert load_json(None) == []
    assert load_json("not json") == []
    assert load_json('[1, 2]') == [1, 2]
    assert load_json([3]) == [3]
