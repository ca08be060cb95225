"""Domain errors and failure typing."""


class SyncError(Exception):
    """Base class for synchronisation failures."""

    error_code = "SYNC_ERROR"


class ConfigError(SyncError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class TransportError(SyncError):
    """Raised when a remote call cannot be completed."""

    error_code = "TRANSPORT_ERROR"


class ReadError(SyncError):
    """Retryable failure of an authoritative read."""

    error_code = "READ_ERROR"

    def __init__(self, collection: str, message: str) -> None:
        super().__init__(message)
        self.collection = collection


class MutationError(SyncError):
    """Raised when a mutation cannot be applied."""

    error_code = "MUTATION_ERROR"


class DuplicateMutationError(MutationError):
    """An identical mutation for the same targets is still in flight."""

    error_code = "MUTATION_IN_FLIGHT"


class UnknownRecordError(MutationError):
    error_code = "UNKNOWN_RECORD"


class PartialBatchError(MutationError):
    """Some remote calls in a batch committed while others failed."""

    error_code = "PARTIAL_BATCH"

    def __init__(self, message: str, *, committed: list, failed: list) -> None:
        super().__init__(message)
        self.committed = committed
        self.failed = failed
