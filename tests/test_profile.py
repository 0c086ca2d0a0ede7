from cinetrack_rec.models import GenreRef, RatedMovie
from cinetrack_rec.profile import build_taste_profile, min_threshold, top_genre_ids


def _rated(movie_id, genres, rating, release_date="2010-01-01", popularity=None):
    return RatedMovie(
        id=movie_id,
        genres=[GenreRef(g) for g in genres],
        release_date=release_date,
        rating=rating,
        popularity=popularity,
    )


def test_single_data_point_profile():
    profile = build_taste_profile([_rated(1, [18], 9)])

    assert len(profile.top_genres) == 1
    top = profile.top_genres[0]
    assert top.genre_id == 18
    assert top.avg_rating == 9
    assert top.count == 1
    assert min_threshold(profile) == 9


def test_genres_sorted_by_average_then_count():
    watched = [
        _rated(1, [18, 35], 8),
        _rated(2, [18], 8),
        _rated(3, [53], 10),
        _rated(4, [35], 8),
        _rated(5, [27], 4),
    ]
    profile = build_taste_profile(watched)

    # 53 has the best average; 18 and 35 tie at 8.0 with 2 each (first seen wins)
    assert top_genre_ids(profile, n=5) == [53, 18, 35, 27]
    assert profile.top_genres[1].sum_rating == 16
    assert min_threshold(profile) == 8  # floor((10 + 8 + 8) / 3)


def test_unrated_movies_are_ignored():
    profile = build_taste_profile([_rated(1, [18], 0), _rated(2, [35], None)])

    assert profile.top_genres == []
    assert profile.has_signal is False
    assert profile.total_watched == 2
    assert profile.avg_rating == 7.0
    assert min_threshold(profile) == 0


def test_decade_weights_favor_high_ratings():
    watched = [
        _rated(1, [18], 9, release_date="1994-09-23"),
        _rated(2, [18], 6, release_date="1999-03-31"),
        _rated(3, [18], 8, release_date="2008-07-18"),
        _rated(4, [18], 0, release_date="1972-03-24"),
        _rated(5, [18], 5, release_date=None),
    ]
    profile = build_taste_profile(watched)

    weights = {d.decade: d.weight for d in profile.top_decades}
    assert weights == {1990: 3, 2000: 2}
    assert profile.top_decades[0].decade == 1990


def test_threshold_uses_only_top_three_genres():
    watched = [
        _rated(1, [1], 9.5),
        _rated(2, [2], 8.5),
        _rated(3, [3], 7.6),
        _rated(4, [4], 2.0),
    ]
    profile = build_taste_profile(watched)

    assert top_genre_ids(profile) == [1, 2, 3]
    assert min_threshold(profile) == 8  # floor(25.6 / 3)


def test_popularity_preference_and_average():
    watched = [_rated(1, [18], 8, popularity=120.0), _rated(2, [18], 6, popularity=10.0)]
    profile = build_taste_profile(watched)

    assert profile.prefers_popular is True
    assert profile.avg_rating == 7.0
