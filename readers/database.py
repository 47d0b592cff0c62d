"""Remote store for users, favorites and reviews."""
import uuid
from contextlib import contextmanager
import psycopg2
from psycopg2 import pool
from typing import Optional, List, Dict, Any
from werkzeug.security import check_password_hash, generate_password_hash
import logging

from readers.errors import AuthError, StoreError
from readers.models import User, UserFavorite, Review, composite_id, utcnow

logger = logging.getLogger(__name__)

PASSWORD_METHOD = "pbkdf2:sha256"


def hash_password(password: str, method: str = PASSWORD_METHOD) -> str:
    return generate_password_hash(password, method=method)


def check_password(password: str, encoded: str) -> bool:
    """False for a wrong password and for a stored hash werkzeug cannot read."""
    try:
        return check_password_hash(encoded, password)
    except ValueError as e:
        logger.warning(f"Unreadable password hash: {e}")
        return False


class RemoteStore:
    """PostgreSQL-backed store with connection pooling.

    Favorites and reviews are keyed by ``"<user_id>_<book_id>"`` and upserted,
    so a user holds at most one of each per book.
    """

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        try:
            self.connection_pool = psycopg2.pool.SimpleConnectionPool(
                min_conn,
                max_conn,
                connection_string
            )
        except psycopg2.Error as e:
            raise StoreError(f"Failed to create connection pool: {e}") from e

        logger.info("Database connection pool created successfully")

    @contextmanager
    def _cursor(self):
        """Yield a cursor inside a transaction; driver errors become StoreError."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Store operation failed: {e}")
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self.connection_pool.putconn(conn)

    def init_schema(self):
        """Create database tables if they don't exist."""
        with self._cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id VARCHAR(128) PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    bio TEXT,
                    profile_image_url TEXT,
                    date_joined TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    email TEXT PRIMARY KEY,
                    user_id VARCHAR(128) NOT NULL UNIQUE REFERENCES users (id),
                    password_hash TEXT NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS user_book_lists (
                    id VARCHAR(512) PRIMARY KEY,
                    user_id VARCHAR(128) NOT NULL,
                    book_id VARCHAR(255) NOT NULL,
                    date_added TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS reviews (
                    id VARCHAR(512) PRIMARY KEY,
                    user_id VARCHAR(128) NOT NULL,
                    book_id VARCHAR(255) NOT NULL,
                    rating SMALLINT NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    review_text TEXT NOT NULL,
                    date_created TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_favorites_user
                ON user_book_lists (user_id)
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_reviews_book
                ON reviews (book_id, date_created DESC)
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_reviews_user
                ON reviews (user_id, date_created DESC)
            """)

        logger.info("Database schema initialized successfully")

    # Accounts

    def create_account(self, email: str, password: str, display_name: str) -> User:
        """
        Register a new account and its user record.

        Raises:
            AuthError: If the email is already registered
            StoreError: On database failure
        """
        email = email.strip().lower()
        user = User(id=uuid.uuid4().hex, display_name=display_name, email=email)

        with self._cursor() as cur:
            cur.execute("SELECT 1 FROM accounts WHERE email = %s", (email,))
            if cur.fetchone():
                raise AuthError(f"An account already exists for {email}")

            self._upsert_user(cur, user)
            cur.execute("""
                INSERT INTO accounts (email, user_id, password_hash)
                VALUES (%s, %s, %s)
            """, (email, user.id, hash_password(password)))

        logger.info(f"Created account {user.id}")
        return user

    def verify_credentials(self, email: str, password: str) -> str:
        """
        Check an email/password pair.

        Returns:
            The account's user id

        Raises:
            AuthError: If the email is unknown or the password is wrong
        """
        email = email.strip().lower()
        with self._cursor() as cur:
            cur.execute(
                "SELECT user_id, password_hash FROM accounts WHERE email = %s",
                (email,)
            )
            row = cur.fetchone()

        if not row or not check_password(password, row[1]):
            raise AuthError("Invalid email or password")
        return row[0]

    # Users

    def _upsert_user(self, cur, user: User):
        cur.execute("""
            INSERT INTO users (id, display_name, email, bio, profile_image_url, date_joined)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                display_name = EXCLUDED.display_name,
                email = EXCLUDED.email,
                bio = EXCLUDED.bio,
                profile_image_url = EXCLUDED.profile_image_url
        """, (
            user.id, user.display_name, user.email, user.bio,
            user.profile_image_url, user.date_joined
        ))

    def save_user(self, user: User) -> None:
        """Insert or update a user record."""
        with self._cursor() as cur:
            self._upsert_user(cur, user)

    def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by ID."""
        with self._cursor() as cur:
            cur.execute("""
                SELECT id, display_name, email, bio, profile_image_url, date_joined
                FROM users WHERE id = %s
            """, (user_id,))
            row = cur.fetchone()

        return User(*row) if row else None

    # Favorites

    def add_favorite(self, user_id: str, book_id: str) -> UserFavorite:
        favorite = UserFavorite(user_id=user_id, book_id=book_id)
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO user_book_lists (id, user_id, book_id, date_added)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
            """, (favorite.id, user_id, book_id, favorite.date_added))
        return favorite

    def remove_favorite(self, user_id: str, book_id: str) -> bool:
        """
        Delete a favorite.

        Returns:
            True if a record was removed
        """
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM user_book_lists WHERE id = %s",
                (composite_id(user_id, book_id),)
            )
            return cur.rowcount > 0

    def get_user_favorites(self, user_id: str) -> List[UserFavorite]:
        with self._cursor() as cur:
            cur.execute("""
                SELECT user_id, book_id, date_added
                FROM user_book_lists
                WHERE user_id = %s
                ORDER BY date_added
            """, (user_id,))
            rows = cur.fetchall()

        return [UserFavorite(*row) for row in rows]

    def is_favorite(self, user_id: str, book_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "SELECT 1 FROM user_book_lists WHERE id = %s",
                (composite_id(user_id, book_id),)
            )
            return cur.fetchone() is not None

    # Reviews

    def save_review(self, review: Review) -> None:
        """Insert a review, replacing the user's earlier review of the same book."""
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO reviews (id, user_id, book_id, rating, review_text, date_created)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    rating = EXCLUDED.rating,
                    review_text = EXCLUDED.review_text,
                    date_created = EXCLUDED.date_created
            """, (
                review.id, review.user_id, review.book_id, review.rating,
                review.review_text, review.date_created
            ))

    def _get_reviews(self, column: str, value: str) -> List[Review]:
        with self._cursor() as cur:
            cur.execute(f"""
                SELECT user_id, book_id, rating, review_text, date_created
                FROM reviews
                WHERE {column} = %s
                ORDER BY date_created DESC
            """, (value,))
            rows = cur.fetchall()

        return [Review(*row) for row in rows]

    def get_book_reviews(self, book_id: str) -> List[Review]:
        """Reviews of a book, newest first."""
        return self._get_reviews("book_id", book_id)

    def get_user_reviews(self, user_id: str) -> List[Review]:
        """Reviews written by a user, newest first."""
        return self._get_reviews("user_id", user_id)

    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM users")
            user_count = cur.fetchone()[0]

            cur.execute("SELECT COUNT(*) FROM user_book_lists")
            favorite_count = cur.fetchone()[0]

            cur.execute("SELECT COUNT(*) FROM reviews")
            review_count = cur.fetchone()[0]

        return {
            "total_users": user_count,
            "total_favorites": favorite_count,
            "total_reviews": review_count,
            "checked_at": utcnow().isoformat(),
        }

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
