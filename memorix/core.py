import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List, Optional, Protocol, Set

from tqdm import tqdm

from .exceptions import StorageConfigError
from .models import MediaRecord, ScanWarning, StorageConfig
from .scanning.filesystem import DiskScanner
from .storage.dispatch import BackendDispatcher


class SourceConfigRepository(Protocol):
    def get_source_config(self, config_id) -> StorageConfig: ...


class FileRepository(Protocol):
    def save_file(self, record: MediaRecord) -> None: ...


@dataclass
class IngestSummary:
    scanned: int = 0
    saved: int = 0
    failed: int = 0
    warnings: List[ScanWarning] = field(default_factory=list)


class MediaIngestService:
    """
    Glue between the scanner/backends and the persistence collaborators.

    Persistence is not done here: records go to `files.save_file` one by
    one and configs come from `source_configs.get_source_config`.
    """

    def __init__(self,
                 source_configs: SourceConfigRepository,
                 files: FileRepository,
                 scanner: Optional[DiskScanner] = None,
                 dispatcher: Optional[BackendDispatcher] = None):
        self.source_configs = source_configs
        self.files = files
        self.scanner = scanner or DiskScanner()
        self.dispatcher = dispatcher or BackendDispatcher()

    def scan_and_save(self,
                      source_config_id,
                      skip_dirs: Optional[Set[Path]] = None,
                      show_progress: bool = False) -> IngestSummary:
        """
        Scans the default path of a source config and saves every record.

        A failed save is logged and counted; the rest of the batch is still
        saved. Scan warnings are passed through in the summary.
        """
        source_config = self.source_configs.get_source_config(source_config_id)
        if not source_config.default_path:
            raise StorageConfigError(f"default path not set for source config {source_config_id}",
                                     operation="scan")

        logging.info(f"Scanning {source_config.default_path} (source config {source_config_id})...")
        result = self.scanner.scan(Path(source_config.default_path), skip_dirs=skip_dirs)

        summary = IngestSummary(scanned=len(result.records), warnings=list(result.warnings))
        for record in tqdm(result.records, desc="Saving", disable=not show_progress):
            try:
                self.files.save_file(record)
            except Exception as e:
                logging.error(f"Error saving file metadata for {record.title}: {e}")
                summary.failed += 1
                continue
            summary.saved += 1

        logging.info(f"Ingest complete. Saved {summary.saved}/{summary.scanned} files "
                     f"({summary.failed} failed, {len(summary.warnings)} warnings).")
        return summary

    def upload(self, stream: BinaryIO, filename: str, storage_config: StorageConfig) -> str:
        return self.dispatcher.dispatch(stream, filename, storage_config)
