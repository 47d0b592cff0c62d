"""Tests for parsing functions."""
import pytest
from readers.errors import DecodingError
from readers.models import Book
from readers.parse import (
    cover_url,
    deduplicate_books,
    parse_publish_year,
    parse_search_doc,
    parse_search_response,
    parse_work_response,
)


def test_parse_search_doc_complete():
    """Test parsing a search doc with all fields present."""
    doc = {
        "key": "/works/OL468431W",
        "title": "The Great Gatsby",
        "author_name": ["F. Scott Fitzgerald", "Someone Else"],
        "cover_i": 12345,
        "first_publish_year": 1925,
        "description": ["A novel of the Jazz Age"],
        "isbn": ["9780743273565", "0743273567"],
    }

    book = parse_search_doc(doc)

    assert book.id == "/works/OL468431W"
    assert book.title == "The Great Gatsby"
    assert book.author == "F. Scott Fitzgerald"
    assert book.cover_image_url == "https://covers.openlibrary.org/b/id/12345-M.jpg"
    assert book.publish_year == 1925
    assert book.description == "A novel of the Jazz Age"
    assert book.isbn == "9780743273565"


def test_parse_search_doc_missing_fields():
    """Test parsing a doc with only the required fields."""
    book = parse_search_doc({"key": "/works/OL1W", "title": "Mystery Book"})

    assert book.author == "Unknown Author"
    assert book.cover_image_url is None
    assert book.publish_year is None
    assert book.description is None
    assert book.isbn is None


def test_parse_search_doc_empty_author_list():
    book = parse_search_doc({"key": "k", "title": "t", "author_name": []})
    assert book.author == "Unknown Author"


def test_parse_search_doc_non_string_author():
    book = parse_search_doc({"key": "k", "title": "t", "author_name": [42, "Someone"]})
    assert book.author == "Unknown Author"


def test_cover_url_ends_with_size_suffix():
    book = parse_search_doc({"key": "k", "title": "t", "cover_i": 12345})
    assert book.cover_image_url.endswith("/12345-M.jpg")


def test_cover_url_ignores_missing_ids():
    assert cover_url(None) is None
    assert cover_url(-1) is None
    assert cover_url("abc") is None
    assert cover_url(7, "L", "https://img.example.com/") == "https://img.example.com/b/id/7-L.jpg"


def test_parse_search_doc_without_title_fails():
    """Docs missing required fields don't match the schema."""
    with pytest.raises(DecodingError):
        parse_search_doc({"key": "/works/OL1W"})


def test_parse_search_response():
    """Test parsing complete API response."""
    response = {
        "numFound": 2,
        "docs": [
            {"key": "/works/1", "title": "Book 1"},
            {"key": "/works/2", "title": "Book 2"},
        ],
    }

    books = parse_search_response(response)

    assert len(books) == 2
    assert books[0].title == "Book 1"
    assert books[1].title == "Book 2"


def test_parse_search_response_without_docs_fails():
    with pytest.raises(DecodingError):
        parse_search_response({"numFound": 0})
    with pytest.raises(DecodingError):
        parse_search_response(["not", "an", "object"])


def test_parse_work_response():
    """Test parsing a works endpoint body."""
    response = {
        "title": "The Great Gatsby",
        "authors": [{"name": "F. Scott Fitzgerald"}],
        "covers": [8432047, 1],
        "first_publish_date": "April 10, 1925",
        "description": {"type": "/type/text", "value": "Jay Gatsby throws parties."},
    }

    book = parse_work_response("OL468431W", response)

    assert book.id == "OL468431W"
    assert book.author == "F. Scott Fitzgerald"
    assert book.cover_image_url.endswith("/8432047-L.jpg")
    assert book.description == "Jay Gatsby throws parties."
    assert book.isbn is None


def test_parse_work_response_plain_description_and_unknown_author():
    book = parse_work_response("OL1W", {"title": "T", "description": "Plain text"})

    assert book.description == "Plain text"
    assert book.author == "Unknown Author"
    assert book.cover_image_url is None
    assert book.publish_year is None


def test_parse_publish_year():
    assert parse_publish_year("1925") == 1925
    assert parse_publish_year("1925-04-10") == 1925
    assert parse_publish_year("2,001 edition") == 2001
    assert parse_publish_year("April 10, 1925") is None
    assert parse_publish_year("  1925") is None
    assert parse_publish_year("") is None
    assert parse_publish_year(None) is None


def test_deduplicate_books():
    """Test deduplication by book ID."""
    books = [
        Book("1", "Book A", "X"),
        Book("2", "Book B", "Y"),
        Book("1", "Book A Duplicate", "X"),
    ]

    unique = deduplicate_books(books)

    assert len(unique) == 2
    assert unique[0].id == "1"
    assert unique[0].title == "Book A"
    assert unique[1].id == "2"
