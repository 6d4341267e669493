"""Exception types shared across the photobook package."""


class PhotobookError(Exception):
    """Base class for recoverable photobook errors."""


class AnalysisError(PhotobookError):
    """Raised when an image cannot be decoded or scored."""


class LayoutError(PhotobookError, ValueError):
    """Raised when the layout registry is modified inconsistently."""


class StorageError(PhotobookError):
    """Raised by a book store when a read or write fails."""


class EnrichmentError(PhotobookError):
    """Raised by an enrichment provider when the remote analysis fails."""
