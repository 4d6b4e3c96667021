"""Error family raised by the retrieval engine.

Degenerate inputs (an empty query vector, zero expected terms, a zero context
budget) are not errors; they are handled where they occur.
"""


class RetrievalEngineError(Exception):
    """Base class for fatal retrieval-engine errors."""


class ConsistencyError(RetrievalEngineError):
    """Index and corpus are out of sync (dangling chunk/document reference)."""


class ConfigurationError(RetrievalEngineError):
    """Invalid configuration value, reported before any work starts."""


class ResourceError(RetrievalEngineError):
    """A required on-disk resource is missing or unreadable."""
