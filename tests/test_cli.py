import json
import logging
import sys

import pytest

from cinetrack_rec import cli
from cinetrack_rec.database import MetadataStore
from cinetrack_rec.models import CacheEntry, Candidate, RecommendationResult


def test_cli_dispatch_cache_stats(monkeypatch):
    called = {}

    def fake_stats(args):
        called["command"] = args.command

    monkeypatch.setattr(cli, "cmd_cache_stats", fake_stats)
    monkeypatch.setattr(sys, "argv", ["prog", "cache-stats"])

    cli.main()
    assert called["command"] == "cache-stats"


def test_cli_parses_recommend_args(monkeypatch):
    captured = {}

    def fake_recommend(args):
        captured["history"] = args.history
        captured["limit"] = args.limit
        captured["json"] = args.json
        captured["timeout"] = args.timeout
        captured["cache_db"] = args.cache_db

    monkeypatch.setattr(cli, "cmd_recommend", fake_recommend)

    cli.main(["--cache-db", "x.db", "recommend", "history.json", "--limit", "5", "--json", "--timeout", "2.5"])

    assert captured == {"history": "history.json", "limit": 5, "json": True, "timeout": 2.5, "cache_db": "x.db"}


def test_load_history_formats(tmp_path):
    plain = tmp_path / "plain.json"
    plain.write_text(json.dumps([{"id": 1, "rating": 8}]))
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({
        "movieData": {"watched": [{"id": 2}], "watchlist": [{"id": 3}]},
        "preferences": {"excludedGenres": [27]},
    }))

    assert cli._load_history(str(plain)) == {"watched": [{"id": 1, "rating": 8}], "watchlist": [], "preferences": {}}
    assert cli._load_history(str(wrapped)) == {
        "watched": [{"id": 2}],
        "watchlist": [{"id": 3}],
        "preferences": {"excludedGenres": [27]},
    }


def test_load_history_rejects_scalars(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("42")

    with pytest.raises(ValueError):
        cli._load_history(str(path))


def test_missing_history_exits_nonzero(tmp_path):
    with pytest.raises(SystemExit) as exc:
        cli.main(["recommend", str(tmp_path / "missing.json")])
    assert exc.value.code == 1


def test_recommend_json_output(tmp_path, monkeypatch, capsys):
    history = tmp_path / "history.json"
    history.write_text(json.dumps({"watched": [{"id": 1, "rating": 9}], "preferences": {"excludedCountries": ["JP"]}}))
    seen = {}

    async def fake_recommend_async(args, history, prefs):
        seen["prefs"] = prefs
        return RecommendationResult(for_you=[Candidate(7, "Heat", vote_average=8.3, affinity_score=13083.0)])

    monkeypatch.setattr(cli, "_recommend_async", fake_recommend_async)

    cli.main(["recommend", str(history), "--json"])

    output = json.loads(capsys.readouterr().out)
    assert [m["id"] for m in output["forYou"]] == [7]
    assert output["deepCuts"] == []
    assert seen["prefs"].excluded_countries == frozenset({"JP"})


def test_cache_stats_and_clear(tmp_path, caplog):
    caplog.set_level(logging.INFO)
    db_path = tmp_path / "cache.db"
    store = MetadataStore(db_path)
    store.init()
    store.save({1: CacheEntry(1, production_countries=[], origin_country=[]), 2: CacheEntry(2)})
    store.close()

    cli.main(["--cache-db", str(db_path), "cache-stats"])
    assert "Entries: 2" in caplog.text
    assert "Stale (missing country data): 1" in caplog.text

    cli.main(["--cache-db", str(db_path), "cache-clear"])
    assert "Removed 2 cached entries" in caplog.text

    store = MetadataStore(db_path)
    try:
        assert store.count() == 0
    finally:
        store.close()
