"""Exceptions raised by the asset search engine.

Only two failures ever reach a caller: ``SearchValidationError`` for a
malformed request and ``SearchFailedError`` for everything that went wrong
at runtime. The latter always carries the same generic message; the root
cause is chained for server-side logs.
"""

GENERIC_SEARCH_ERROR = (
    "Failed to search campaign assets. "
    "Please try again or contact support if the issue persists."
)


class SearchError(Exception):
    """Base exception for search engine operations."""
    pass


class SearchValidationError(SearchError, ValueError):
    """Request rejected before any I/O."""
    pass


class SearchFailedError(SearchError):
    """Runtime search failure with a caller-safe message."""

    def __init__(self, message: str = GENERIC_SEARCH_ERROR):
        super().__init__(message)


class EmbeddingError(SearchError):
    """The embedding provider returned no vector for the query."""
    pass
