import os
import logging
from pathlib import Path
from typing import Callable, Iterator, Optional, Set, Tuple

from .. import config
from ..exceptions import MetadataExtractionError, ScanRootError
from ..metadata.extract import MetadataExtractor
from ..models import MediaKind, ScanResult, ScanWarning

# on_event(kind, path) with kind one of 'dir', 'file', 'error'
ScanEventCallback = Callable[[str, Path], None]


def classify(path: Path) -> Optional[MediaKind]:
    """Returns the media kind for a path by extension, or None if it is ignored."""
    name = path.name
    if name.startswith("._"):
        # AppleDouble resource forks share the media extension
        return None
    kind = config.EXT_TO_KIND.get(path.suffix.lower())
    return MediaKind(kind) if kind else None


class DiskScanner:
    def __init__(self, extractor: Optional[MetadataExtractor] = None):
        self.metadata = extractor or MetadataExtractor()

    def scan(self,
             root: Path,
             skip_dirs: Optional[Set[Path]] = None,
             on_event: Optional[ScanEventCallback] = None) -> ScanResult:
        """
        Walks root and returns a MediaRecord for every photo/video found.

        Files that fail extraction and sub-directories that cannot be listed
        end up in ScanResult.warnings; the walk carries on past them. Only an
        unusable root raises (ScanRootError).

        Args:
            skip_dirs: Directories whose subtrees are not walked.
            on_event: Progress callback, called with ('dir' | 'file' | 'error', path).
        """
        root = Path(root)
        skip_dirs = skip_dirs or set()
        result = ScanResult(root=root)

        for path, kind in self._iter_media(root, skip_dirs, result, on_event):
            try:
                record = self.metadata.extract(path, kind)
            except MetadataExtractionError as e:
                logging.warning(f"Error extracting {kind.value} metadata from {path}: {e}")
                self._warn(result, on_event, path, str(e), e)
                continue
            result.records.append(record)

        if result.warnings:
            logging.warning(f"Completed scan of {root} with {len(result.warnings)} non-fatal errors")
        logging.info(f"Scan of {root} found {len(result.records)} media files")
        return result

    def _iter_media(self,
                    root: Path,
                    skip_dirs: Set[Path],
                    result: ScanResult,
                    on_event: Optional[ScanEventCallback]) -> Iterator[Tuple[Path, MediaKind]]:
        for path in self._iter_files(root, skip_dirs, result, on_event):
            kind = classify(path)
            if kind is None:
                continue
            if on_event:
                on_event('file', path)
            yield path, kind

    def _iter_files(self,
                    root: Path,
                    skip_dirs: Set[Path],
                    result: ScanResult,
                    on_event: Optional[ScanEventCallback]) -> Iterator[Path]:
        """
        Depth-first walker using os.scandir for speed.

        A directory's files come before its sub-directories, all in name
        order, so the same tree always yields the same sequence.
        """
        if self._is_skipped(root, skip_dirs):
            logging.info(f"Root {root} is in skip_dirs, nothing to scan")
            return

        entries = self._list_root(root)
        if on_event:
            on_event('dir', root)

        stack = []
        yield from self._split_entries(root, entries, stack, skip_dirs, result, on_event)

        while stack:
            current = stack.pop()
            if on_event:
                on_event('dir', current)
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Cannot read directory, skipped: {current} ({e})")
                self._warn(result, on_event, current, f"cannot read directory: {e}", e)
                continue

            yield from self._split_entries(current, entries, stack, skip_dirs, result, on_event)

    def _list_root(self, root: Path) -> list:
        if not root.exists():
            raise ScanRootError(root, "does not exist")
        if not root.is_dir():
            raise ScanRootError(root, "not a directory")
        try:
            with os.scandir(root) as it:
                return list(it)
        except OSError as e:
            raise ScanRootError(root, str(e)) from e

    def _is_skipped(self, path: Path, skip_dirs: Set[Path]) -> bool:
        return any(sd == path or sd in path.parents for sd in skip_dirs)

    def _split_entries(self, current: Path, entries, stack, skip_dirs, result, on_event) -> Iterator[Path]:
        # Sort for stable traversal order
        entries.sort(key=lambda e: (e.name.lower(), e.name))

        dirs = []
        files = []
        for e in entries:
            try:
                if e.is_dir(follow_symlinks=False):
                    dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False):
                    files.append(Path(e.path))
            except OSError as err:
                logging.warning(f"Cannot stat entry, skipped: {e.path} ({err})")
                self._warn(result, on_event, Path(e.path), f"cannot stat entry: {err}", err)

        # Push dirs to stack (reversed so we process A before Z)
        for d in reversed(dirs):
            if skip_dirs and self._is_skipped(d, skip_dirs):
                continue
            stack.append(d)

        for f in files:
            yield f

    def _warn(self, result: ScanResult, on_event, path: Path, cause: str, error: BaseException):
        result.warnings.append(ScanWarning(path=path, cause=cause, error=error))
        if on_event:
            on_event('error', path)
