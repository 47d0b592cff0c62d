"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""

    # Remote store
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "readersdb")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Catalog API
    CATALOG_BASE_URL = os.getenv("CATALOG_BASE_URL", "https://openlibrary.org")
    COVERS_BASE_URL = os.getenv("COVERS_BASE_URL", "https://covers.openlibrary.org")
    SEARCH_LIMIT = int(os.getenv("SEARCH_LIMIT", "20"))

    # Search pipeline
    SEARCH_DEBOUNCE_MS = int(os.getenv("SEARCH_DEBOUNCE_MS", "500"))
    SEARCH_MIN_LENGTH = int(os.getenv("SEARCH_MIN_LENGTH", "2"))

    # Local state (favorites list, profile images)
    DATA_DIR = os.getenv("READERS_DATA_DIR", os.path.expanduser("~/.readers"))

    # Favorites sync
    SYNC_MAX_RETRIES = int(os.getenv("SYNC_MAX_RETRIES", "0"))
    SYNC_RETRY_DELAY = float(os.getenv("SYNC_RETRY_DELAY", "1.0"))

    # Defaults
    DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "10"))
    DEFAULT_MAX_RETRIES = int(os.getenv("DEFAULT_MAX_RETRIES", "3"))
