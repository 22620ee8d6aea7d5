"""
Error taxonomy for the catalog pipeline.

Library-level errors (httpx, lxml, SQLAlchemy, pydantic) are wrapped into these
at the seam that owns them so callers only ever deal with three failure kinds.
"""


class CatalogError(Exception):
    """Base class for all catalog pipeline errors"""
    pass


class FormatError(CatalogError, ValueError):
    """Raised when playlist or guide text is malformed"""
    pass


class NetworkError(CatalogError):
    """Raised when a feed cannot be fetched"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StorageError(CatalogError):
    """Raised when the key-value store cannot be read or written"""
    pass
