"""
Data model shared by the recommendation pipeline.

Raw watch-history and catalog payloads come in several shapes (genre ids
vs. genre objects, ``rating`` vs. ``userRating``). They are normalized here,
at the ingress boundary, so profile and scoring code only ever sees the
canonical dataclasses below.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .config import GENRES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenreRef:
    id: int
    name: str | None = None


@dataclass(frozen=True)
class ProductionCountry:
    iso_3166_1: str
    name: str | None = None


def normalize_genres(raw: Iterable[Any] | None) -> list[GenreRef]:
    """
    Convert any supported genre payload into a list of GenreRef.

    Accepts ints, ``{"id": .., "name": ..}`` dicts and GenreRef instances,
    mixed freely. Duplicates are dropped (first wins) and missing names are
    filled from the TMDB genre table.
    """
    if not raw:
        return []

    refs: list[GenreRef] = []
    seen: set[int] = set()
    for item in raw:
        if isinstance(item, GenreRef):
            ref = item
        elif isinstance(item, dict):
            if item.get("id") is None:
                continue
            ref = GenreRef(int(item["id"]), item.get("name"))
        else:
            try:
                ref = GenreRef(int(item))
            except (TypeError, ValueError):
                logger.debug(f"Ignoring unparseable genre value: {item!r}")
                continue

        if ref.id in seen:
            continue
        seen.add(ref.id)
        if ref.name is None:
            ref = GenreRef(ref.id, GENRES.get(ref.id))
        refs.append(ref)
    return refs


def normalize_countries(raw: Iterable[Any] | None) -> list[ProductionCountry]:
    """Convert TMDB ``production_countries`` payloads (dicts or codes)."""
    if not raw:
        return []

    countries = []
    for item in raw:
        if isinstance(item, ProductionCountry):
            countries.append(item)
        elif isinstance(item, dict):
            code = item.get("iso_3166_1")
            if code:
                countries.append(ProductionCountry(code, item.get("name")))
        elif isinstance(item, str):
            countries.append(ProductionCountry(item))
    return countries


def normalize_origin(raw: Any) -> list[str]:
    """TMDB ``origin_country`` as a list of codes; a bare string is one code."""
    if not raw:
        return []
    if isinstance(raw, str):
        return [raw]
    return [str(code) for code in raw if code]


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class RatedMovie:
    """
    A movie from the user's watch history.

    ``rating`` is on a 0-10 scale. None and 0 both mean "not yet rated";
    unrated movies never contribute to the taste profile.
    """
    id: int
    title: str = ""
    genres: list[GenreRef] = field(default_factory=list)
    release_date: str | None = None
    rating: float | None = None
    popularity: float | None = None

    @property
    def is_rated(self) -> bool:
        return self.rating is not None and self.rating > 0

    @classmethod
    def from_dict(cls, data: dict) -> "RatedMovie":
        rating = data.get("rating")
        if rating is None:
            rating = data.get("userRating")
        return cls(
            id=int(data["id"]),
            title=data.get("title") or "",
            genres=normalize_genres(data.get("genres") or data.get("genre_ids")),
            release_date=data.get("release_date") or None,
            rating=_optional_float(rating),
            popularity=_optional_float(data.get("popularity")),
        )


@dataclass
class Candidate:
    """A catalog movie under consideration for recommendation."""
    id: int
    title: str = ""
    genre_ids: list[int] = field(default_factory=list)
    production_countries: list[ProductionCountry] = field(default_factory=list)
    origin_country: list[str] = field(default_factory=list)
    vote_average: float = 0.0
    vote_count: int = 0
    popularity: float | None = None
    release_date: str | None = None
    poster_path: str | None = None
    overview: str = ""
    affinity_score: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Candidate":
        genres = normalize_genres(data.get("genre_ids") or data.get("genres"))
        return cls(
            id=int(data["id"]),
            title=data.get("title") or data.get("name") or "",
            genre_ids=[g.id for g in genres],
            production_countries=normalize_countries(data.get("production_countries")),
            origin_country=normalize_origin(data.get("origin_country")),
            vote_average=_optional_float(data.get("vote_average")) or 0.0,
            vote_count=int(data.get("vote_count") or 0),
            popularity=_optional_float(data.get("popularity")),
            release_date=data.get("release_date") or None,
            poster_path=data.get("poster_path"),
            overview=data.get("overview") or "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "genre_ids": list(self.genre_ids),
            "production_countries": [
                {"iso_3166_1": c.iso_3166_1, "name": c.name} for c in self.production_countries
            ],
            "origin_country": list(self.origin_country),
            "vote_average": self.vote_average,
            "vote_count": self.vote_count,
            "popularity": self.popularity,
            "release_date": self.release_date,
            "poster_path": self.poster_path,
            "overview": self.overview,
            "affinity_score": self.affinity_score,
        }


@dataclass
class GenreAffinity:
    genre_id: int
    name: str | None
    sum_rating: float
    count: int
    avg_rating: float


@dataclass
class DecadeAffinity:
    decade: int
    weight: int


@dataclass
class TasteProfile:
    """Ranked genre and decade affinities inferred from rated history."""
    top_genres: list[GenreAffinity] = field(default_factory=list)
    top_decades: list[DecadeAffinity] = field(default_factory=list)
    avg_rating: float = 7.0
    total_watched: int = 0
    prefers_popular: bool = False

    @property
    def has_signal(self) -> bool:
        return bool(self.top_genres)


@dataclass(frozen=True)
class ExclusionPreferences:
    """User-declared hard exclusions. Countries may be ISO codes or names."""
    excluded_genres: frozenset[int] = frozenset()
    excluded_countries: frozenset[str] = frozenset()

    @classmethod
    def from_dict(cls, data: dict | None) -> "ExclusionPreferences":
        data = data or {}
        genres = data.get("excludedGenres", data.get("excluded_genres")) or []
        countries = data.get("excludedCountries", data.get("excluded_countries")) or []
        return cls(
            excluded_genres=frozenset(g.id for g in normalize_genres(genres)),
            excluded_countries=frozenset(str(c) for c in countries),
        )

    @property
    def is_empty(self) -> bool:
        return not self.excluded_genres and not self.excluded_countries


@dataclass
class CacheEntry:
    """
    Hydrated catalog metadata for one movie.

    ``production_countries`` and ``origin_country`` are None when the entry
    predates country tracking; such entries are stale and get re-fetched.
    """
    movie_id: int
    genres: list[GenreRef] = field(default_factory=list)
    release_date: str | None = None
    runtime: int = 0
    production_countries: list[ProductionCountry] | None = None
    origin_country: list[str] | None = None
    popularity: float | None = None
    fetched_at: str | None = None

    @property
    def is_stale(self) -> bool:
        return self.production_countries is None or self.origin_country is None

    @classmethod
    def from_details(cls, movie_id: int, details: dict, fetched_at: str | None = None) -> "CacheEntry":
        """Build an entry from a TMDB ``/movie/{id}`` payload."""
        return cls(
            movie_id=movie_id,
            genres=normalize_genres(details.get("genres")),
            release_date=details.get("release_date") or None,
            runtime=int(details.get("runtime") or 0),
            production_countries=normalize_countries(details.get("production_countries")),
            origin_country=normalize_origin(details.get("origin_country")),
            popularity=_optional_float(details.get("popularity")),
            fetched_at=fetched_at,
        )


@dataclass
class RecommendationResult:
    for_you: list[Candidate] = field(default_factory=list)
    based_on_genres: list[Candidate] = field(default_factory=list)
    similar: list[Candidate] = field(default_factory=list)
    # Reserved section; never populated.
    deep_cuts: list[Candidate] = field(default_factory=list)
    cancelled: bool = False

    @classmethod
    def empty(cls, cancelled: bool = False) -> "RecommendationResult":
        return cls(cancelled=cancelled)

    @property
    def is_empty(self) -> bool:
        return not (self.for_you or self.based_on_genres or self.similar or self.deep_cuts)

    def to_dict(self) -> dict:
        return {
            "forYou": [c.to_dict() for c in self.for_you],
            "basedOnGenres": [c.to_dict() for c in self.based_on_genres],
            "similar": [c.to_dict() for c in self.similar],
            "deepCuts": [c.to_dict() for c in self.deep_cuts],
        }
