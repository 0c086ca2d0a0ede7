"""
Configuration constants for the CineTrack recommender.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Metadata cache storage
CACHE_DB_PATH = Path(os.environ.get("CINETRACK_CACHE_DB", "data/metadata_cache.db"))

# TMDB catalog
TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_LANGUAGE = os.environ.get("CINETRACK_TMDB_LANGUAGE", "es-MX")
HTTP_TIMEOUT = _get_float_env("CINETRACK_HTTP_TIMEOUT", 10.0, min_val=1.0)
MAX_CONCURRENT_REQUESTS = _get_int_env("CINETRACK_MAX_CONCURRENT", 5, min_val=1)

# Hydration pacing (TMDB rate-limit courtesy)
HYDRATION_BATCH_SIZE = _get_int_env("CINETRACK_HYDRATION_BATCH_SIZE", 5, min_val=1)
HYDRATION_BATCH_DELAY = _get_float_env("CINETRACK_HYDRATION_DELAY", 0.2, min_val=0.0)

# Taste profile
TOP_GENRE_COUNT = 3
DECADE_WEIGHT_LOVED = 2     # rating > 7
DECADE_WEIGHT_DEFAULT = 1
DECADE_LOVED_RATING = 7
DEFAULT_AVG_RATING = 7.0    # profile average when nothing is rated
POPULARITY_PREFERENCE_THRESHOLD = 50

# Candidate generation
STRICT_MIN_VOTE_COUNT = 50      # AND query across the top genres
BROAD_OR_MIN_VOTE_COUNT = 200   # OR query across the top genres
FALLBACK_MIN_VOTE_COUNT = 30    # single-genre widening
GENRE_QUERY_PAGES = (1, 2)
CANDIDATE_SORT = "vote_average.desc"
SIMILAR_SEED_MIN_RATING = 9
SIMILAR_SEED_LIMIT = 5

# Ranking. These weights are the behavioral contract; do not re-derive them.
LEVEL_SCORE_EXACT_MATCH = 1_000_000
LEVEL_SCORE_SUPERSET_MATCH = 500_000
LEVEL_SCORE_TWO_MATCHES = 100_000
LEVEL_SCORE_ONE_MATCH = 10_000
LEVEL_SCORE_NO_MATCH = -1_000_000
RANK_BONUS_UNIT = 1000
QUALITY_MULTIPLIER = 10

# Output sizes
FOR_YOU_LIMIT = 50
SECTION_LIMIT = 20
WIDENING_TARGET = 50

# TMDB movie genres (es-MX names, matching the default catalog language)
GENRES = {
    28: "Acción",
    12: "Aventura",
    16: "Animación",
    35: "Comedia",
    80: "Crimen",
    99: "Documental",
    18: "Drama",
    10751: "Familia",
    14: "Fantasía",
    36: "Historia",
    27: "Terror",
    10402: "Música",
    9648: "Misterio",
    10749: "Romance",
    878: "Ciencia ficción",
    10770: "Película de TV",
    53: "Suspense",
    10752: "Bélica",
    37: "Western",
}
