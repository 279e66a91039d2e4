"""
Backup file naming and folder scanning.

Backup files are named ``<YYYYMMDD_HHMM><extension>``. A backup that matched
the previous one is replaced by a zero-length placeholder carrying the
``.SameAsPrevious`` marker before its extension.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


FILE_DATE_FORMAT = '%Y%m%d_%H%M'
FILE_DATE_WIDTH = len('YYYYMMDD_HHMM')
SAME_AS_PREVIOUS_MARKER = '.SameAsPrevious'
ZIP_EXTENSION = '.zip'


@dataclass
class BackupFileInfo:
    """A dated backup file found in a job's backup folder."""
    file_name: str
    backup_date: datetime
    is_zip: bool = False
    same_as_previous: bool = False
    keep: bool = False


def normalize_extension(extension: str) -> str:
    """Trim an extension and make sure it starts with a dot."""
    extension = (extension or '').strip()
    if extension and not extension.startswith('.'):
        extension = f'.{extension}'
    return extension


def is_zip_extension(extension: str) -> bool:
    """Check whether an extension already denotes a zip archive."""
    return normalize_extension(extension).lower().endswith(ZIP_EXTENSION)


def build_backup_filename(scheduled_for: datetime, extension: str) -> str:
    """
    Generate the file name for a run.

    Format: {YYYYMMDD_HHMM}{.ext}

    Args:
        scheduled_for: Scheduled time of the run
        extension: Configured file extension, with or without leading dot

    Returns:
        Filename (without path)
    """
    return f"{scheduled_for.strftime(FILE_DATE_FORMAT)}{normalize_extension(extension)}"


def parse_backup_date(file_name: str) -> Optional[datetime]:
    """
    Parse the timestamp prefix of a backup file name.

    Args:
        file_name: File name (without path)

    Returns:
        Parsed datetime, or None if the name is not a recognized backup file
    """
    if file_name.find('.') != FILE_DATE_WIDTH:
        return None

    try:
        return datetime.strptime(file_name[:FILE_DATE_WIDTH], FILE_DATE_FORMAT)
    except ValueError:
        return None


def same_as_previous_name(file_name: str, zip_results: bool) -> str:
    """
    Build the placeholder name for a backup that matched the previous one.

    The marker goes before the last extension. Jobs that zip their results
    get a ``.zip`` placeholder so it lines up with the zipped siblings.
    """
    stem, extension = os.path.splitext(file_name)
    return f"{stem}{SAME_AS_PREVIOUS_MARKER}{ZIP_EXTENSION if zip_results else extension}"


def scan_backup_folder(folder: str, output_is_zip: bool = False) -> List[BackupFileInfo]:
    """
    List the recognized backup files of a folder.

    Files whose names do not start with a parseable timestamp are ignored.

    Args:
        folder: Backup folder to scan
        output_is_zip: Treat every backup as a zip container (e.g. .bacpac)

    Returns:
        BackupFileInfo records, unsorted
    """
    records = []

    for entry in os.scandir(folder):
        if not entry.is_file():
            continue

        backup_date = parse_backup_date(entry.name)
        if backup_date is None:
            continue

        records.append(BackupFileInfo(
            file_name=entry.name,
            backup_date=backup_date,
            is_zip=output_is_zip or entry.name.lower().endswith(ZIP_EXTENSION),
            same_as_previous=SAME_AS_PREVIOUS_MARKER in entry.name,
        ))

    return records
