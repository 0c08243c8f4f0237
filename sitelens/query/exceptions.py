"""
Query Layer Exceptions

Raised inside the query layer and converted to per-result errors by the
batch executor. They never reach API callers directly.
"""


class QueryLayerError(Exception):
    """Base exception for query layer errors."""
    pass


class QueryCompileError(QueryLayerError):
    """A request could not be compiled into SQL and parameters."""
    pass


class ResultSplitError(QueryLayerError):
    """A merged result set could not be routed back to its query types."""
    pass


class CatalogError(QueryLayerError):
    """The query catalog is missing or contains an invalid entry."""
    pass
