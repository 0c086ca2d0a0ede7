"""Hard exclusion of candidates by genre or country."""

import logging

from .models import Candidate, ExclusionPreferences

logger = logging.getLogger(__name__)


def is_excluded(candidate: Candidate, prefs: ExclusionPreferences) -> bool:
    """
    True if the candidate matches any excluded genre id, or if any of its
    production countries (ISO code or name) or origin country codes is an
    excluded country.
    """
    if prefs.excluded_genres and any(g in prefs.excluded_genres for g in candidate.genre_ids):
        return True

    if prefs.excluded_countries:
        blocked = prefs.excluded_countries
        for country in candidate.production_countries:
            if country.iso_3166_1 in blocked or (country.name and country.name in blocked):
                return True
        if any(code in blocked for code in candidate.origin_country):
            return True

    return False


def apply_exclusions(candidates: list[Candidate], prefs: ExclusionPreferences | None) -> list[Candidate]:
    if prefs is None or prefs.is_empty:
        return list(candidates)

    kept = [c for c in candidates if not is_excluded(c, prefs)]
    if len(kept) != len(candidates):
        logger.debug(f"Exclusions removed {len(candidates) - len(kept)}/{len(candidates)} candidates")
    return kept
