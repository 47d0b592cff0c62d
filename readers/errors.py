"""Exception types raised by the catalog clients and the remote store."""
from typing import Optional


class CatalogError(Exception):
    """Base class for catalog API failures."""

    message = "Catalog request failed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)


class InvalidURLError(CatalogError):
    """The query or identifier could not be encoded into a request URL."""

    message = "Invalid URL"


class NetworkError(CatalogError):
    """Non-success HTTP status or transport failure."""

    message = "Invalid response from server"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(detail)


class DecodingError(CatalogError):
    """Response body did not match the expected schema."""

    message = "Failed to decode response"


class StoreError(Exception):
    """Remote store failure, carrying the driver's message."""


class AuthError(Exception):
    """Bad credentials, duplicate account, or no active session."""
