"""Data models for books, favorites, reviews and users."""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Book:
    """Normalized book representation."""
    id: str
    title: str
    author: str
    cover_image_url: Optional[str] = None
    publish_year: Optional[int] = None
    description: Optional[str] = None
    isbn: Optional[str] = None

    @property
    def display_title(self) -> str:
        """Title with the publish year appended when known."""
        if self.publish_year is not None:
            return f"{self.title} ({self.publish_year})"
        return self.title

    @property
    def formatted_year(self) -> str:
        return str(self.publish_year) if self.publish_year is not None else ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Book":
        """
        Rebuild a book from its persisted form.

        Raises:
            KeyError: If a required field is missing
        """
        return cls(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            cover_image_url=data.get("cover_image_url"),
            publish_year=data.get("publish_year"),
            description=data.get("description"),
            isbn=data.get("isbn"),
        )


def composite_id(user_id: str, book_id: str) -> str:
    """Key shared by favorites and reviews: one record per user per book."""
    return f"{user_id}_{book_id}"


@dataclass
class UserFavorite:
    """A book saved by a user."""
    user_id: str
    book_id: str
    date_added: datetime = field(default_factory=utcnow)

    @property
    def id(self) -> str:
        return composite_id(self.user_id, self.book_id)


@dataclass
class Review:
    """A user's review of a book. Rating is clamped to 1-5."""
    user_id: str
    book_id: str
    rating: int
    review_text: str
    date_created: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.rating = max(1, min(5, int(self.rating)))

    @property
    def id(self) -> str:
        return composite_id(self.user_id, self.book_id)

    @property
    def is_valid_rating(self) -> bool:
        return 1 <= self.rating <= 5

    @property
    def is_valid_review(self) -> bool:
        return bool(self.review_text.strip())


@dataclass
class User:
    """Registered user profile."""
    id: str
    display_name: str
    email: str
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    date_joined: datetime = field(default_factory=utcnow)
