"""Parse and normalize Open Library API responses."""
from typing import Dict, Any, List, Optional
from readers.errors import DecodingError
from readers.models import Book

UNKNOWN_AUTHOR = "Unknown Author"
DEFAULT_COVERS_BASE_URL = "https://covers.openlibrary.org"


def cover_url(cover_id: Optional[int], size: str = "M", base_url: str = DEFAULT_COVERS_BASE_URL) -> Optional[str]:
    """
    Build a cover image URL from a numeric cover identifier.

    Args:
        cover_id: Open Library cover id (``cover_i`` / ``covers[0]``)
        size: One of S, M, L
        base_url: Covers host

    Returns:
        URL string, or None when there is no usable cover id
    """
    if cover_id is None or isinstance(cover_id, bool):
        return None
    try:
        cover_id = int(cover_id)
    except (TypeError, ValueError):
        return None
    # Open Library uses -1 for "no cover"
    if cover_id <= 0:
        return None
    return f"{base_url.rstrip('/')}/b/id/{cover_id}-{size}.jpg"


def parse_publish_year(date_text: Optional[str]) -> Optional[int]:
    """Take the leading four characters of a free-text date as the year."""
    if not date_text or not isinstance(date_text, str):
        return None
    year_text = date_text.replace(",", "")[:4]
    if len(year_text) == 4 and year_text.isdigit():
        return int(year_text)
    return None


def _first(values: Any) -> Optional[Any]:
    if isinstance(values, list) and values:
        return values[0]
    return None


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise DecodingError(f"missing or invalid '{key}'")
    return value


def parse_search_doc(doc: Dict[str, Any], covers_base_url: str = DEFAULT_COVERS_BASE_URL) -> Book:
    """
    Parse a single entry of the ``docs`` array of a search response.

    Raises:
        DecodingError: If ``key`` or ``title`` is missing
    """
    if not isinstance(doc, dict):
        raise DecodingError("search doc is not an object")

    key = _require_str(doc, "key")
    title = _require_str(doc, "title")

    author = _first(doc.get("author_name"))
    if not isinstance(author, str) or not author:
        author = UNKNOWN_AUTHOR

    publish_year = doc.get("first_publish_year")
    if not isinstance(publish_year, int) or isinstance(publish_year, bool):
        publish_year = None

    return Book(
        id=key,
        title=title,
        author=author,
        cover_image_url=cover_url(doc.get("cover_i"), "M", covers_base_url),
        publish_year=publish_year,
        description=_first(doc.get("description")),
        isbn=_first(doc.get("isbn")),
    )


def parse_search_response(response_json: Any, covers_base_url: str = DEFAULT_COVERS_BASE_URL) -> List[Book]:
    """
    Parse a full search response.

    Args:
        response_json: Decoded ``/search.json`` body

    Returns:
        List of Book objects, in response order

    Raises:
        DecodingError: If ``docs`` is missing or any doc is malformed
    """
    if not isinstance(response_json, dict):
        raise DecodingError("search response is not an object")
    docs = response_json.get("docs")
    if not isinstance(docs, list):
        raise DecodingError("missing 'docs' array")

    return [parse_search_doc(doc, covers_base_url) for doc in docs]


def parse_work_response(
    book_id: str,
    response_json: Any,
    covers_base_url: str = DEFAULT_COVERS_BASE_URL
) -> Book:
    """
    Parse a ``/works/<id>.json`` response into a Book.

    Raises:
        DecodingError: If the body is not an object or has no title
    """
    if not isinstance(response_json, dict):
        raise DecodingError("work response is not an object")

    title = _require_str(response_json, "title")

    first_author = _first(response_json.get("authors"))
    author = first_author.get("name") if isinstance(first_author, dict) else None
    if not isinstance(author, str) or not author:
        author = UNKNOWN_AUTHOR

    # Works carry either {"type": ..., "value": "..."} or a bare string
    description = response_json.get("description")
    if isinstance(description, dict):
        description = description.get("value")
    elif not isinstance(description, str):
        description = None

    return Book(
        id=book_id,
        title=title,
        author=author,
        cover_image_url=cover_url(_first(response_json.get("covers")), "L", covers_base_url),
        publish_year=parse_publish_year(response_json.get("first_publish_date")),
        description=description,
        isbn=None,
    )


def deduplicate_books(books: List[Book]) -> List[Book]:
    """
    Remove duplicate books by ID, keeping the first occurrence.

    Args:
        books: List of Book objects

    Returns:
        Deduplicated list of books
    """
    seen_ids = set()
    unique_books = []

    for book in books:
        if book.id not in seen_ids:
            seen_ids.add(book.id)
            unique_books.append(book)

    return unique_books
