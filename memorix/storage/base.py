"""
Storage backend contract.

A backend takes a readable byte stream, a destination file name and a
StorageConfig, and writes every byte of the stream to durable storage at a
location derived from the two. Nothing here is transactional: a failure
part way through may leave a partial file behind.
"""
import posixpath
from abc import ABC, abstractmethod
from typing import BinaryIO, Callable, Optional

from .. import config
from ..exceptions import StorageError
from ..models import StorageConfig


class StorageBackend(ABC):
    """Abstract base class for upload destinations."""

    @abstractmethod
    def upload(self, stream: BinaryIO, filename: str, storage_config: StorageConfig) -> str:
        """
        Copies `stream` to the destination and returns where it was written.
        Raises a StorageError subclass on failure.
        """
        pass


def check_filename(filename: str) -> str:
    """
    Destination names are plain file names; directories come from the config.
    """
    if not filename or not filename.strip():
        raise StorageError("destination file name is empty", operation="upload")
    if '/' in filename or '\\' in filename or filename in ('.', '..'):
        raise StorageError(f"invalid destination file name {filename!r}", operation="upload", path=filename)
    return filename


def to_posix(path: str) -> str:
    """Normalises a configured directory to forward-slash form."""
    path = (path or '').replace('\\', '/')
    if not path:
        return '.'
    normalized = posixpath.normpath(path)
    # normpath keeps a leading '//' as-is on POSIX
    if normalized.startswith('//'):
        normalized = '/' + normalized.lstrip('/')
    return normalized


def copy_stream(src: BinaryIO, dst, chunk_size: int = config.COPY_CHUNK_SIZE,
                progress: Optional[Callable[[int], None]] = None) -> int:
    """Copies src into dst until EOF. Returns the number of bytes written."""
    total = 0
    while True:
        chunk = src.read(chunk_size)
        if not chunk:
            break
        dst.write(chunk)
        total += len(chunk)
        if progress:
            progress(len(chunk))
    return total
