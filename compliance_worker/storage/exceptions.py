from compliance_worker.errors import ErrorKind, PipelineError


class StorageError(PipelineError):
    """Raised when a blob cannot be read or written."""

    kind = ErrorKind.TRANSPORT


class BlobNotFoundError(StorageError):
    """Raised when a blob does not exist at the given reference."""


class InvalidBlobRefError(StorageError):
    """Raised when a blob reference is empty or escapes the storage root."""


class UnsupportedStorageBackendError(StorageError):
    """Raised when settings name a storage backend with no adapter."""
