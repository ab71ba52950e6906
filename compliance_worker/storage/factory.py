from compliance_worker.config.settings import Settings
from compliance_worker.storage.base import BaseBlobStore
from compliance_worker.storage.exceptions import UnsupportedStorageBackendError
from compliance_worker.storage.local_blob_store import LocalBlobStore


class BlobStoreFactory:
    """Creates the blob store adapter named in settings."""

    BACKENDS = ("local",)

    @classmethod
    def create(cls, settings: Settings) -> BaseBlobStore:
        backend = settings.storage_backend.lower()
        if backend == "local":
            return LocalBlobStore(files_root=settings.files_root)
        raise UnsupportedStorageBackendError(
            f"storage_backend '{backend}' is not supported. Choose from: {list(cls.BACKENDS)}"
        )
