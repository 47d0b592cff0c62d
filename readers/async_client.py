"""Async HTTP client for the Open Library catalog."""
import asyncio
import httpx
from typing import List, Optional
import logging

from readers.errors import InvalidURLError, NetworkError, DecodingError
from readers.models import Book
from readers.parse import parse_search_response, parse_work_response, DEFAULT_COVERS_BASE_URL
from readers.urls import encode_query, work_path

logger = logging.getLogger(__name__)


class AsyncOpenLibraryClient:
    """Async client for book search and work details."""

    BASE_URL = "https://openlibrary.org"
    SEARCH_LIMIT = 20

    def __init__(
        self,
        base_url: Optional[str] = None,
        covers_base_url: str = DEFAULT_COVERS_BASE_URL,
        timeout: int = 10,
        max_concurrent: int = 5,
        limit: int = SEARCH_LIMIT,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize async client.

        Args:
            base_url: Catalog host (defaults to openlibrary.org)
            covers_base_url: Cover image host
            timeout: Request timeout
            max_concurrent: Maximum concurrent requests
            limit: Result cap for searches
            client: Pre-built httpx client (tests inject a mock transport)
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.covers_base_url = covers_base_url
        self.timeout = timeout
        self.limit = limit
        self.semaphore = asyncio.Semaphore(max_concurrent)

        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def search(self, query: str) -> List[Book]:
        """
        Search for books.

        Args:
            query: Search query

        Returns:
            Up to ``limit`` books

        Raises:
            InvalidURLError, NetworkError, DecodingError
        """
        params = {"q": encode_query(query), "limit": self.limit}
        data = await self._get_json(f"{self.base_url}/search.json", params)
        books = parse_search_response(data, self.covers_base_url)
        logger.info(f"Search '{query}' returned {len(books)} books")
        return books

    async def fetch_details(self, book_id: str) -> Book:
        """
        Fetch one work by id.

        Raises:
            InvalidURLError, NetworkError, DecodingError
        """
        url = f"{self.base_url}{work_path(book_id)}"
        data = await self._get_json(url)
        return parse_work_response(book_id, data, self.covers_base_url)

    async def _get_json(self, url: str, params: Optional[dict] = None):
        async with self.semaphore:
            try:
                logger.info(f"Async request: {url} {params or ''}")
                response = await self.client.get(url, params=params)
            except httpx.InvalidURL as e:
                raise InvalidURLError(str(e)) from e
            except httpx.HTTPError as e:
                logger.error(f"Async request failed: {e}")
                raise NetworkError(str(e)) from e

        if response.status_code != 200:
            logger.warning(f"Status {response.status_code} for {url}")
            raise NetworkError(f"HTTP {response.status_code}", status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise DecodingError(str(e)) from e

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
