from cinetrack_rec.models import (
    CacheEntry,
    Candidate,
    ExclusionPreferences,
    GenreRef,
    ProductionCountry,
    RatedMovie,
    RecommendationResult,
    normalize_genres,
    normalize_origin,
)


def test_normalize_genres_accepts_ids_objects_and_refs():
    refs = normalize_genres([18, {"id": 35, "name": "Comedy"}, GenreRef(53, "Thriller"), "27"])

    assert [g.id for g in refs] == [18, 35, 53, 27]
    assert refs[0].name == "Drama"  # filled from the genre table
    assert refs[1].name == "Comedy"


def test_normalize_genres_drops_duplicates_and_garbage():
    refs = normalize_genres([18, {"id": 18, "name": "Drama"}, None, "x", {"name": "no id"}])

    assert refs == [GenreRef(18, "Drama")]
    assert normalize_genres(None) == []


def test_rated_movie_zero_rating_means_unrated():
    assert RatedMovie.from_dict({"id": 1, "rating": 0}).is_rated is False
    assert RatedMovie.from_dict({"id": 1}).is_rated is False
    movie = RatedMovie.from_dict({"id": "7", "userRating": 9, "genre_ids": [18]})
    assert movie.id == 7
    assert movie.is_rated
    assert movie.rating == 9.0
    assert [g.id for g in movie.genres] == [18]


def test_candidate_from_details_payload_uses_genre_objects():
    cand = Candidate.from_dict({
        "id": 5,
        "title": "Five",
        "genres": [{"id": 12, "name": "Aventura"}],
        "production_countries": [{"iso_3166_1": "FR", "name": "France"}],
        "origin_country": ["FR"],
    })

    assert cand.genre_ids == [12]
    assert cand.production_countries == [ProductionCountry("FR", "France")]
    assert cand.origin_country == ["FR"]
    assert cand.vote_average == 0.0
    assert cand.affinity_score is None


def test_cache_entry_staleness():
    assert CacheEntry(1).is_stale
    assert CacheEntry(1, production_countries=[], origin_country=None).is_stale
    assert not CacheEntry(1, production_countries=[], origin_country=[]).is_stale


def test_exclusion_preferences_from_camel_case():
    prefs = ExclusionPreferences.from_dict({"excludedGenres": [27, {"id": 99}], "excludedCountries": ["IN", "Japan"]})

    assert prefs.excluded_genres == frozenset({27, 99})
    assert prefs.excluded_countries == frozenset({"IN", "Japan"})
    assert ExclusionPreferences.from_dict(None).is_empty


def test_empty_result_shape():
    result = RecommendationResult.empty()

    assert result.to_dict() == {"forYou": [], "basedOnGenres": [], "similar": [], "deepCuts": []}
    assert result.is_empty
    assert result.cancelled is False


def test_rating_must_be_positive_to_count():
    assert RatedMovie(1, rating=-2).is_rated is False
    assert RatedMovie(1, rating=float("nan")).is_rated is False
    assert RatedMovie(1, rating=0.5).is_rated is True


def test_origin_country_accepts_bare_string():
    cand = Candidate.from_dict({"id": 9, "origin_country": "US"})
    entry = CacheEntry.from_details(9, {"origin_country": "JP"})

    assert cand.origin_country == ["US"]
    assert entry.origin_country == ["JP"]
    assert not entry.is_stale
    assert normalize_origin(["KR", None, ""]) == ["KR"]
