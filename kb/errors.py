"""
Shared error types for the kb core.
"""


class KBError(Exception):
    """Base class for every error raised by the kb core."""


class InvalidInput(KBError, ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type


class NotFound(KBError, LookupError):
    def __init__(self, message: str, kind: str = "entry", ref: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.ref = ref


class ConflictRetryable(KBError):
    """Raised when an upsert keeps losing a uniqueness race after bounded retries."""


class StorageUnavailable(KBError):
    """Raised when the underlying store is unreachable or corrupt."""


class ClassificationUnavailable(KBError):
    """Raised when the classifier provider is unavailable."""


class EmbeddingUnavailable(KBError):
    """Raised when the embedding provider is unavailable."""
