from abc import ABC, abstractmethod


class BaseBlobStore(ABC):
    """Contract for blob storage adapters holding input files and rendered reports."""

    @abstractmethod
    def fetch_text(self, ref: str) -> str:
        """Read a blob as UTF-8 text.

        Raises:
            BlobNotFoundError: if nothing is stored at ``ref``.
            StorageError: on any other read failure.
        """

    @abstractmethod
    def store(self, ref: str, content: str, content_type: str) -> None:
        """Write ``content`` at ``ref``, replacing any previous blob.

        Raises:
            StorageError: if the write fails.
        """

    @abstractmethod
    def delete(self, ref: str) -> None:
        """Delete the blob at ``ref``. Best effort: never raises."""
