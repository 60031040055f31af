import logging
from pathlib import Path
from typing import BinaryIO

from ..exceptions import DestinationExistsError, DestinationNotDirectoryError, StorageConfigError, StorageError
from ..models import StorageConfig
from .base import StorageBackend, check_filename, copy_stream


class LocalBackend(StorageBackend):
    """Writes uploads to a directory on the local filesystem."""

    def upload(self, stream: BinaryIO, filename: str, storage_config: StorageConfig) -> str:
        check_filename(filename)
        base = storage_config.remote_dir
        if not base:
            raise StorageConfigError("local storage has no base path", operation="upload")

        base_path = Path(base).expanduser()
        dest = self._full_path(base_path, filename)

        try:
            base_path.mkdir(parents=True, exist_ok=True)
        except (FileExistsError, NotADirectoryError) as e:
            raise DestinationNotDirectoryError("destination is not a directory",
                                               operation="mkdir", path=str(base_path)) from e
        except OSError as e:
            raise StorageError(str(e), operation="mkdir", path=str(base_path)) from e

        try:
            # 'xb' refuses to replace a file that is already there
            with dest.open('xb') as f:
                written = copy_stream(stream, f)
        except FileExistsError as e:
            raise DestinationExistsError("already exists", operation="create", path=str(dest)) from e
        except OSError as e:
            raise StorageError(str(e), operation="write", path=str(dest)) from e

        logging.info(f"Stored {written} bytes at {dest}")
        return str(dest)

    def _full_path(self, base_path: Path, filename: str) -> Path:
        """Get full path and ensure it stays within the base directory."""
        full_path = base_path / filename
        try:
            full_path.resolve().relative_to(base_path.resolve())
        except ValueError:
            raise StorageError("path is outside base directory", operation="upload", path=filename) from None
        return full_path
