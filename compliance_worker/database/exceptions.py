class RepositoryError(Exception):
    """Base exception for document store errors."""


class AnalysisNotFoundError(RepositoryError):
    """Raised when an analysis record does not exist."""


class UnknownFieldError(RepositoryError):
    """Raised when an update names a column the analyses table does not have."""
