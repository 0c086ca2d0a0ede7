import logging
from dataclasses import dataclass, replace

from .models import Candidate, TasteProfile
from .profile import top_genre_ids
from .config import (
    LEVEL_SCORE_EXACT_MATCH,
    LEVEL_SCORE_SUPERSET_MATCH,
    LEVEL_SCORE_TWO_MATCHES,
    LEVEL_SCORE_ONE_MATCH,
    LEVEL_SCORE_NO_MATCH,
    RANK_BONUS_UNIT,
    QUALITY_MULTIPLIER,
    TOP_GENRE_COUNT,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreBreakdown:
    intersection: int
    level_score: int
    rank_bonus: int
    quality_score: float

    @property
    def total(self) -> float:
        return self.level_score + self.rank_bonus + self.quality_score


def _level_score(intersection: int, candidate_genres: set[int], top_ids: list[int]) -> int:
    if intersection == 3:
        if candidate_genres == set(top_ids):
            return LEVEL_SCORE_EXACT_MATCH
        return LEVEL_SCORE_SUPERSET_MATCH
    if intersection == 2:
        return LEVEL_SCORE_TWO_MATCHES
    if intersection == 1:
        return LEVEL_SCORE_ONE_MATCH
    return LEVEL_SCORE_NO_MATCH


def score_candidate(candidate: Candidate, top_ids: list[int]) -> ScoreBreakdown:
    """
    Tiered genre-intersection score against the top (up to three) genres.

    - Level: 3 matches and nothing else = 1,000,000; 3 matches plus extras =
      500,000; 2 = 100,000; 1 = 10,000; none = -1,000,000
    - Rank bonus: (3 - rank) * 1000 per matched genre (#1 adds 3000)
    - Quality: vote_average * 10, a tie-break within a level
    """
    top_ids = top_ids[:TOP_GENRE_COUNT]
    candidate_genres = set(candidate.genre_ids)

    matched_ranks = [rank for rank, genre_id in enumerate(top_ids) if genre_id in candidate_genres]
    intersection = len(matched_ranks)

    return ScoreBreakdown(
        intersection=intersection,
        level_score=_level_score(intersection, candidate_genres, top_ids),
        rank_bonus=sum((TOP_GENRE_COUNT - rank) * RANK_BONUS_UNIT for rank in matched_ranks),
        quality_score=candidate.vote_average * QUALITY_MULTIPLIER,
    )


def rank_candidates(candidates: list[Candidate], profile: TasteProfile, threshold: int) -> list[Candidate]:
    """
    Score, gate and order the candidate pool.

    A candidate survives only with a positive affinity score and a vote
    average of at least ``threshold``. Survivors are returned as copies with
    ``affinity_score`` set, sorted by score then vote average, both
    descending; equal keys keep pool order.
    """
    top_ids = top_genre_ids(profile)
    ranked = []
    for candidate in candidates:
        score = score_candidate(candidate, top_ids).total
        if score <= 0 or candidate.vote_average < threshold:
            continue
        ranked.append(replace(candidate, affinity_score=score))

    ranked.sort(key=lambda c: (-c.affinity_score, -c.vote_average))
    logger.debug(f"Ranked {len(ranked)}/{len(candidates)} candidates (threshold {threshold})")
    return ranked
