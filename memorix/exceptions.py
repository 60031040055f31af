"""
Custom exception hierarchy for memorix.

Scanning errors and storage errors share one root so callers can catch
everything this package raises with a single clause.
"""
from typing import Optional


class MemorixError(Exception):
    """Base exception for all memorix errors."""
    pass


class ScanRootError(MemorixError):
    """Raised when the root of a scan cannot be traversed."""

    def __init__(self, root, cause: str):
        self.root = root
        self.cause = cause
        super().__init__(f"cannot scan {root}: {cause}")


class MetadataExtractionError(MemorixError):
    """Raised when metadata cannot be extracted from a file."""
    pass


class StorageError(MemorixError):
    """
    Raised when an upload fails.

    Carries the operation that failed and the destination it was working on
    so the caller can log something actionable.
    """

    def __init__(self, message: str, operation: Optional[str] = None, path: Optional[str] = None):
        self.operation = operation
        self.path = path
        if operation and path:
            message = f"{operation} {path}: {message}"
        elif operation:
            message = f"{operation}: {message}"
        super().__init__(message)


class StorageConfigError(StorageError):
    """Raised when a storage configuration lacks a field its backend needs."""
    pass


class UnsupportedStorageTypeError(StorageError):
    """Raised when a configuration names a storage type with no backend."""

    def __init__(self, storage_type):
        self.storage_type = storage_type
        super().__init__(f"unsupported storage type: {storage_type!r}")


class StorageConnectionError(StorageError):
    """Raised when the transport to a remote backend cannot be established."""
    pass


class AuthenticationError(StorageConnectionError):
    """Raised when a remote backend rejects the configured credentials."""
    pass


class DestinationExistsError(StorageError):
    """Raised when the destination file already exists."""
    pass


class DestinationNotDirectoryError(StorageError):
    """Raised when the destination directory exists but is not a directory."""
    pass
