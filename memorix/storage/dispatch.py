import logging
from typing import BinaryIO, Dict, Optional

from ..models import StorageConfig, StorageType
from .base import StorageBackend
from .local import LocalBackend
from .nas import NasBackend
from .object_storage import ObjectStorageBackend


class BackendDispatcher:
    """
    Routes an upload to the backend registered for the config's storage type.

    The registry below is the one place a new backend gets wired in.
    """

    def __init__(self, backends: Optional[Dict[StorageType, StorageBackend]] = None):
        self.backends: Dict[StorageType, StorageBackend] = {
            StorageType.LOCAL: LocalBackend(),
            StorageType.NAS: NasBackend(),
            StorageType.OBJECT_STORAGE: ObjectStorageBackend(),
        }
        if backends:
            self.backends.update(backends)

    def backend_for(self, storage_config: StorageConfig) -> StorageBackend:
        """Raises UnsupportedStorageTypeError for tags outside the closed set."""
        return self.backends[StorageType.parse(storage_config.type)]

    def dispatch(self, stream: BinaryIO, filename: str, storage_config: StorageConfig) -> str:
        backend = self.backend_for(storage_config)
        logging.debug(f"Uploading {filename} via {type(backend).__name__}")
        return backend.upload(stream, filename, storage_config)
