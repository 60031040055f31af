import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from .exceptions import MemorixError
from .models import StorageConfig
from .reporting import write_scan_report
from .scanning.filesystem import DiskScanner
from .storage.dispatch import BackendDispatcher


def setup_logging(verbose: bool, log_file: Optional[Path] = None):
    """Sets up logging to the console and, optionally, a file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("paramiko").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="memorix: scan media folders and upload to storage")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")
    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan a directory for photos and videos")
    scan.add_argument("root", type=Path, help="Directory to scan")
    scan.add_argument("--skip-dirs-file", type=Path, default=None, help="File containing paths to ignore")
    scan.add_argument("--report-csv", type=Path, default=None, help="Write a CSV report of the scan here")

    upload = sub.add_parser("upload", help="Upload a file to a configured storage")
    upload.add_argument("file", type=Path, help="File to upload")
    upload.add_argument("--config", type=Path, required=True, help="JSON storage configuration")
    upload.add_argument("--name", default=None, help="Destination file name (default: the file's name)")

    return p.parse_args(argv)


def load_skip_dirs(skip_file: Optional[Path]) -> set:
    if not skip_file or not skip_file.exists():
        return set()

    skips = set()
    with skip_file.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                skips.add(Path(line))
    return skips


def load_storage_config(config_file: Path) -> StorageConfig:
    with config_file.open("r", encoding="utf-8") as f:
        return StorageConfig.from_dict(json.load(f))


def run_scan(args) -> int:
    root = args.root.resolve()
    logging.info(f"Scanning {root}")
    result = DiskScanner().scan(root, skip_dirs=load_skip_dirs(args.skip_dirs_file))

    if args.report_csv:
        write_scan_report(result, args.report_csv)

    logging.info(f"Found {len(result.records)} media files, {len(result.warnings)} warnings")
    return 0


def run_upload(args) -> int:
    storage_config = load_storage_config(args.config)
    filename = args.name or args.file.name
    size = args.file.stat().st_size

    with args.file.open("rb") as f:
        with tqdm.wrapattr(f, "read", total=size, desc=f"Uploading {filename}") as stream:
            location = BackendDispatcher().dispatch(stream, filename, storage_config)

    logging.info(f"Uploaded {args.file} -> {location}")
    return 0


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        if args.command == "scan":
            code = run_scan(args)
        else:
            code = run_upload(args)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except (MemorixError, OSError, ValueError) as e:
        logging.error(f"{args.command} failed: {e}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
