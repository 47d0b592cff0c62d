"""Request URL helpers shared by the sync and async catalog clients."""
from urllib.parse import quote
from readers.errors import InvalidURLError

WORKS_PREFIX = "/works/"


def encode_query(query: str) -> str:
    """
    Check that a search query can be carried in a URL.

    Raises:
        InvalidURLError: If the query is not encodable as UTF-8
    """
    if not isinstance(query, str):
        raise InvalidURLError("query must be a string")
    try:
        quote(query, safe="")
    except UnicodeEncodeError as e:
        raise InvalidURLError(f"cannot encode query: {e}") from e
    return query


def normalize_work_id(book_id: str) -> str:
    """Accept both ``OL45804W`` and the ``/works/OL45804W`` search key."""
    if not isinstance(book_id, str):
        raise InvalidURLError("book id must be a string")
    work_id = book_id.strip()
    if work_id.startswith(WORKS_PREFIX):
        work_id = work_id[len(WORKS_PREFIX):]
    if not work_id or any(c in work_id for c in "/?#") or any(c.isspace() for c in work_id):
        raise InvalidURLError(f"invalid book id: {book_id!r}")
    return work_id


def work_path(book_id: str) -> str:
    """Path of the works endpoint for a book id."""
    work_id = normalize_work_id(book_id)
    try:
        return f"{WORKS_PREFIX}{quote(work_id)}.json"
    except UnicodeEncodeError as e:
        raise InvalidURLError(f"cannot encode book id: {e}") from e
