import asyncio
import logging

import httpx

from .config import (
    TMDB_BASE_URL,
    TMDB_API_KEY,
    TMDB_LANGUAGE,
    HTTP_TIMEOUT,
    MAX_CONCURRENT_REQUESTS,
)

logger = logging.getLogger(__name__)


class TMDBClient:
    """
    Async client for the TMDB movie catalog.

    Implements the catalog interface the recommender consumes:
    ``query_by_genres``, ``query_similar``, ``query_discover`` and
    ``get_details``. Failures never raise: list endpoints return ``[]`` and
    ``get_details`` returns None. There are no retries; a 429 is logged and
    treated as an empty answer.

    Use as an async context manager, or pass an existing ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        language: str | None = None,
        max_concurrent: int = MAX_CONCURRENT_REQUESTS,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key if api_key is not None else TMDB_API_KEY
        self.language = language or TMDB_LANGUAGE
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.client = client
        self._owns_client = False
        if not self.api_key:
            logger.warning("TMDB_API_KEY not set, catalog queries will return nothing")

    async def __aenter__(self):
        """Async context manager entry."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=TMDB_BASE_URL,
                headers={"Accept": "application/json"},
                timeout=HTTP_TIMEOUT,
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None
            self._owns_client = False
        return False

    async def _get(self, path: str, params: dict | None = None) -> dict | None:
        """GET a TMDB endpoint and return the decoded JSON body, or None."""
        if not self.api_key:
            return None
        if not self.client:
            raise RuntimeError("TMDBClient must be used as an async context manager or given a client")

        query = {"api_key": self.api_key, "language": self.language}
        query.update(params or {})

        async with self.semaphore:
            try:
                resp = await self.client.get(path, params=query)

                if resp.status_code == 404:
                    logger.debug(f"Not found: {path}")
                    return None

                if resp.status_code == 429:
                    logger.warning(
                        f"Rate limited on {path} (Retry-After: {resp.headers.get('Retry-After', '?')}s), skipping"
                    )
                    return None

                resp.raise_for_status()
                return resp.json()

            except httpx.TimeoutException:
                logger.warning(f"Timeout on {path}")
                return None

            except httpx.HTTPStatusError as exc:
                logger.error(f"HTTP {exc.response.status_code} on {path}: {exc}")
                return None

            except httpx.HTTPError as exc:
                logger.error(f"Request error on {path}: {type(exc).__name__}: {exc}")
                return None

            except ValueError as exc:
                logger.error(f"Invalid JSON from {path}: {exc}")
                return None

    async def _results(self, path: str, params: dict | None = None) -> list[dict]:
        data = await self._get(path, params)
        if not data:
            return []
        return data.get("results", [])

    async def query_discover(self, filters: dict) -> list[dict]:
        """Run ``/discover/movie`` with raw TMDB filter parameters."""
        return await self._results("/discover/movie", dict(filters))

    async def query_by_genres(self, genre_ids: list[int], filters: dict | None = None, page: int = 1) -> list[dict]:
        """Movies carrying ALL of ``genre_ids``."""
        params = dict(filters or {})
        params["with_genres"] = ",".join(str(g) for g in genre_ids)
        params["page"] = page
        return await self._results("/discover/movie", params)

    async def query_similar(self, movie_id: int) -> list[dict]:
        return await self._results(f"/movie/{movie_id}/similar")

    async def get_details(self, movie_id: int) -> dict | None:
        return await self._get(f"/movie/{movie_id}")

