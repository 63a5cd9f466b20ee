# OMDb search client
import logging
from typing import Any, Dict, Optional

import httpx

from .config import OMDB_API_URL, OMDB_TIMEOUT, omdb_api_key
from .errors import (
    CatalogCredentialsError,
    CatalogTimeoutError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from .models import SearchPage, SearchResult

logger = logging.getLogger(__name__)


def to_search_result(item: Dict[str, Any]) -> SearchResult:
    """
    Map one OMDb `Search` entry to our shape; OMDb uses "N/A" for a
    missing poster.
    """
    poster = item.get("Poster")
    return SearchResult(
        id=item["imdbID"],
        title=item.get("Title", ""),
        year=item.get("Year", ""),
        poster=None if poster in (None, "", "N/A") else poster,
        type=item.get("Type", ""),
    )


class CatalogClient:
    def __init__(
        self,
        api_url: str = OMDB_API_URL,
        timeout: float = OMDB_TIMEOUT,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport

    def _key(self) -> str:
        key = self._api_key if self._api_key is not None else omdb_api_key()
        if not key:
            logger.warning("OMDB_API_KEY is not set")
            raise CatalogCredentialsError("OMDb API key is not configured")
        return key

    async def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.api_url, params=params)
                resp.raise_for_status()
                return resp.json()
        except httpx.TimeoutException as exc:
            logger.warning("OMDb request timed out: %s", exc)
            raise CatalogTimeoutError("OMDb API request timed out") from exc
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                raise CatalogCredentialsError("Invalid OMDb API key") from exc
            logger.warning("OMDb returned %d", exc.response.status_code)
            raise UpstreamError(f"OMDb API error: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("OMDb request failed: %s", exc)
            raise UpstreamError(f"OMDb API error: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError("OMDb API returned a malformed response") from exc

    async def search(self, query: Optional[str], page: int = 1) -> SearchPage:
        """
        Search movies by title. A query OMDb has no match for yields an
        empty page, not an error.
        """
        if not query or not query.strip():
            raise ValidationError('Query parameter "q" is required')
        if page < 1:
            raise ValidationError("Invalid page number")

        data = await self._get(
            {"apikey": self._key(), "s": query.strip(), "page": page, "type": "movie"}
        )

        if data.get("Response") == "False":
            return SearchPage(results=[], total_results=0)

        try:
            total = int(data.get("totalResults") or 0)
        except (TypeError, ValueError):
            total = 0
        results = [to_search_result(item) for item in data.get("Search") or []]
        return SearchPage(results=results, total_results=total)

    async def details(self, imdb_id: str) -> Dict[str, Any]:
        if not imdb_id or not imdb_id.startswith("tt"):
            raise ValidationError("Invalid IMDb ID")

        data = await self._get({"apikey": self._key(), "i": imdb_id, "plot": "short"})
        if data.get("Response") == "False":
            raise NotFoundError(data.get("Error") or "Movie not found")
        return data
