import logging
import math
from collections import defaultdict

from .models import DecadeAffinity, GenreAffinity, RatedMovie, TasteProfile
from .utils import parse_year
from .config import (
    TOP_GENRE_COUNT,
    DECADE_WEIGHT_LOVED,
    DECADE_WEIGHT_DEFAULT,
    DECADE_LOVED_RATING,
    DEFAULT_AVG_RATING,
    POPULARITY_PREFERENCE_THRESHOLD,
)

logger = logging.getLogger(__name__)


def build_taste_profile(watched: list[RatedMovie]) -> TasteProfile:
    """
    Build a taste profile from the user's rated watch history.

    Genre affinity:
    - Only movies with a rating > 0 contribute
    - Each genre accumulates the sum and count of the user's ratings
    - Genres are ranked by average rating, then by count

    Decade affinity:
    - Rated movies add 2 when rated above 7, otherwise 1
    - Buckets are ``floor(year / 10) * 10``

    An empty ``top_genres`` means there is not enough signal to recommend.
    """
    profile = TasteProfile(total_watched=len(watched))

    genre_sums: dict[int, float] = defaultdict(float)
    genre_counts: dict[int, int] = defaultdict(int)
    genre_names: dict[int, str | None] = {}
    decade_weights: dict[int, int] = defaultdict(int)
    ratings = []

    for movie in watched:
        if not movie.is_rated:
            continue

        rating = movie.rating
        ratings.append(rating)

        for genre in movie.genres:
            genre_sums[genre.id] += rating
            genre_counts[genre.id] += 1
            if genre_names.get(genre.id) is None:
                genre_names[genre.id] = genre.name

        year = parse_year(movie.release_date)
        if year:
            decade = (year // 10) * 10
            decade_weights[decade] += DECADE_WEIGHT_LOVED if rating > DECADE_LOVED_RATING else DECADE_WEIGHT_DEFAULT

    affinities = [
        GenreAffinity(
            genre_id=genre_id,
            name=genre_names.get(genre_id),
            sum_rating=genre_sums[genre_id],
            count=genre_counts[genre_id],
            avg_rating=genre_sums[genre_id] / genre_counts[genre_id],
        )
        for genre_id in genre_sums
    ]
    # sorted() is stable, so remaining ties keep first-seen order
    profile.top_genres = sorted(affinities, key=lambda g: (-g.avg_rating, -g.count))

    profile.top_decades = [
        DecadeAffinity(decade=decade, weight=weight)
        for decade, weight in sorted(decade_weights.items(), key=lambda x: (-x[1], -x[0]))
    ]

    profile.avg_rating = sum(ratings) / len(ratings) if ratings else DEFAULT_AVG_RATING

    popularities = [m.popularity or 0 for m in watched]
    if popularities:
        profile.prefers_popular = sum(popularities) / len(popularities) > POPULARITY_PREFERENCE_THRESHOLD

    if profile.top_genres:
        logger.debug(
            f"Taste profile: top genres {[g.name or g.genre_id for g in profile.top_genres[:TOP_GENRE_COUNT]]}, "
            f"avg rating {profile.avg_rating:.2f}"
        )
    else:
        logger.info(f"No genre signal in {len(watched)} watched movies ({len(ratings)} rated)")

    return profile


def top_genre_ids(profile: TasteProfile, n: int = TOP_GENRE_COUNT) -> list[int]:
    """Ids of the best ``n`` genres, best first."""
    return [g.genre_id for g in profile.top_genres[:n]]


def min_threshold(profile: TasteProfile) -> int:
    """
    Minimum vote average a candidate needs: the floor of the mean
    avg_rating of the top three genres (fewer if fewer exist).

    Returns 0 for a profile without genres.
    """
    top = profile.top_genres[:TOP_GENRE_COUNT]
    if not top:
        return 0
    return math.floor(sum(g.avg_rating for g in top) / len(top))
