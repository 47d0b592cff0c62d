"""HTTP client for the Open Library catalog with resilience patterns."""
import time
import random
import requests
from typing import Optional, Dict, Any, List
import logging

from readers.errors import InvalidURLError, NetworkError, DecodingError
from readers.models import Book
from readers.parse import parse_search_response, parse_work_response, DEFAULT_COVERS_BASE_URL
from readers.urls import encode_query, work_path

logger = logging.getLogger(__name__)


class OpenLibraryClient:
    """Client for the Open Library API with timeouts, retries, and backoff."""

    BASE_URL = "https://openlibrary.org"
    SEARCH_LIMIT = 20

    def __init__(
        self,
        base_url: Optional[str] = None,
        covers_base_url: str = DEFAULT_COVERS_BASE_URL,
        timeout: int = 10,
        max_retries: int = 3,
        base_backoff: float = 1.0,
        limit: int = SEARCH_LIMIT
    ):
        """
        Initialize Open Library API client.

        Args:
            base_url: Catalog host (defaults to openlibrary.org)
            covers_base_url: Cover image host
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts
            base_backoff: Base delay for exponential backoff
            limit: Result cap for searches
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.covers_base_url = covers_base_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_backoff = base_backoff
        self.limit = limit

        # Create session for connection pooling
        self.session = requests.Session()

    def search(self, query: str) -> List[Book]:
        """
        Search for books.

        Args:
            query: Search query string

        Returns:
            Up to ``limit`` books

        Raises:
            InvalidURLError, NetworkError, DecodingError
        """
        params = {"q": encode_query(query), "limit": self.limit}
        data = self._make_request_with_retry(f"{self.base_url}/search.json", params)
        return parse_search_response(data, self.covers_base_url)

    def fetch_details(self, book_id: str) -> Book:
        """Fetch one work by id."""
        data = self._make_request_with_retry(f"{self.base_url}{work_path(book_id)}")
        return parse_work_response(book_id, data, self.covers_base_url)

    def _make_request_with_retry(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make HTTP request with retry logic.

        Args:
            url: Request URL
            params: Query parameters

        Returns:
            Decoded response JSON

        Raises:
            NetworkError: Client error, or all retries exhausted
            DecodingError: Body is not JSON
        """
        last_error: Optional[NetworkError] = None

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Request attempt {attempt + 1}/{self.max_retries}: {url}")

                response = self.session.get(
                    url,
                    params=params,
                    timeout=self.timeout
                )

            except (
                requests.exceptions.InvalidURL,
                requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema
            ) as e:
                raise InvalidURLError(str(e)) from e

            except requests.exceptions.Timeout as e:
                logger.warning(f"Timeout on attempt {attempt + 1}")
                last_error = NetworkError(f"timeout: {e}")

            except requests.exceptions.ConnectionError as e:
                logger.warning(f"Connection error on attempt {attempt + 1}: {e}")
                last_error = NetworkError(f"connection error: {e}")

            except requests.exceptions.RequestException as e:
                # Redirect loops, broken bodies and the like are not retried
                raise NetworkError(str(e)) from e

            else:
                if response.status_code == 200:
                    logger.info(f"Success: {response.status_code}")
                    try:
                        return response.json()
                    except ValueError as e:
                        raise DecodingError(str(e)) from e

                last_error = NetworkError(
                    f"HTTP {response.status_code}", status_code=response.status_code
                )

                if response.status_code == 429:
                    logger.warning(f"Rate limited (429) on attempt {attempt + 1}")
                elif response.status_code >= 500:
                    logger.warning(f"Server error ({response.status_code}) on attempt {attempt + 1}")
                else:
                    # Client errors and unexpected statuses aren't retried
                    logger.error(f"Non-retryable status ({response.status_code}): {response.text[:200]}")
                    raise last_error

            if attempt < self.max_retries - 1:
                self._backoff(attempt)

        logger.error(f"All {self.max_retries} attempts failed")
        raise last_error

    def _backoff(self, attempt: int):
        """Sleep base_backoff * 2**attempt, plus up to as much again in jitter."""
        delay = self.base_backoff * (2 ** attempt)
        delay += random.uniform(0, delay)
        logger.info(f"Retrying catalog request in {delay:.2f}s")
        time.sleep(delay)

    def close(self):
        self.session.close()

    def __enter__(self) -> "OpenLibraryClient":
        return self

    def __exit__(self, *exc_info):
        self.close()
