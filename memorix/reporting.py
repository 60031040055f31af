import csv
import logging
from pathlib import Path
from typing import Union

from .models import MediaKind, MediaRecord, ScanResult

HEADERS = [
    "Source Path",
    "Status",
    "Kind",
    "Size",
    "Created",
    "Width",
    "Height",
    "Camera / Codec",
    "Duration (s)",
    "Notes",
]


def write_scan_report(result: ScanResult, output_csv: Union[str, Path]) -> int:
    """
    Writes one CSV row per record and per warning.
    Returns the number of rows written (excluding the header).
    """
    rows = 0
    with open(output_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(HEADERS)

        for record in result.records:
            writer.writerow(_record_row(record))
            rows += 1

        for warning in result.warnings:
            writer.writerow([str(warning.path), "warning", "", "", "", "", "", "", "", warning.cause])
            rows += 1

    logging.info(f"Report complete: {output_csv} ({len(result.records)} records, "
                 f"{len(result.warnings)} warnings)")
    return rows


def _record_row(record: MediaRecord) -> list:
    width = height = detail = duration = ""
    if record.kind == MediaKind.PHOTO and record.photo:
        width = record.photo.width or ""
        height = record.photo.height or ""
        detail = record.photo.camera or ""
    elif record.kind == MediaKind.VIDEO and record.video:
        width = record.video.width or ""
        height = record.video.height or ""
        detail = record.video.codec or ""
        duration = f"{record.video.duration:.2f}" if record.video.duration else ""

    return [
        str(record.path),
        "ok",
        record.kind.value,
        record.size,
        record.created.isoformat(sep=" "),
        width,
        height,
        detail,
        duration,
        "",
    ]
