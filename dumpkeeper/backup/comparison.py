"""
Content-aware comparison of backup artifacts.

Two artifacts are the same when they hold the same bytes, looking through
zip containers:

- raw vs raw: sizes, then bytes
- zip vs raw: the zip must hold exactly one entry matching the raw file
- zip vs zip: same entry count; a single entry is compared regardless of
  its name, several entries are matched by name

Comparison streams both sides in bounded chunks, so memory use does not
depend on the artifact size.
"""

import logging
import os
import zipfile
from collections import defaultdict
from typing import BinaryIO, Dict, List


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def files_are_same(path_a: str, is_zip_a: bool, path_b: str, is_zip_b: bool) -> bool:
    """
    Compare two backup artifacts.

    Any error while reading either side is logged and reported as a
    difference, never as a match.

    Args:
        path_a: Path of the first artifact
        is_zip_a: Treat the first artifact as a zip container
        path_b: Path of the second artifact
        is_zip_b: Treat the second artifact as a zip container

    Returns:
        True if both artifacts contain the same data
    """
    try:
        if is_zip_a and is_zip_b:
            return _compare_zip_to_zip(path_a, path_b)
        if is_zip_a:
            return _compare_zip_to_raw(path_a, path_b)
        if is_zip_b:
            return _compare_zip_to_raw(path_b, path_a)
        return _compare_raw_files(path_a, path_b)
    except Exception:
        logger.exception(f"Error comparing \"{path_a}\" and \"{path_b}\"")
        return False


def compare_streams(stream_a: BinaryIO, stream_b: BinaryIO, length: int,
                    chunk_size: int = CHUNK_SIZE) -> bool:
    """
    Compare the first ``length`` bytes of two streams chunk by chunk.

    Args:
        stream_a: First readable binary stream
        stream_b: Second readable binary stream
        length: Expected length of both streams
        chunk_size: Upper bound of a single read

    Returns:
        True if both streams yield identical bytes; a short read on either
        side counts as a difference
    """
    remaining = length

    while remaining > 0:
        size = min(remaining, chunk_size)
        chunk_a = _read_exactly(stream_a, size)
        chunk_b = _read_exactly(stream_b, size)

        if chunk_a != chunk_b or len(chunk_a) != size:
            return False

        remaining -= size

    return True


def _read_exactly(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, looping over short reads until EOF."""
    parts = []
    remaining = size

    while remaining > 0:
        data = stream.read(remaining)
        if not data:
            break
        parts.append(data)
        remaining -= len(data)

    return b''.join(parts)


def _compare_raw_files(path_a: str, path_b: str) -> bool:
    size = os.path.getsize(path_a)
    if size != os.path.getsize(path_b):
        return False

    with open(path_a, 'rb') as stream_a, open(path_b, 'rb') as stream_b:
        return compare_streams(stream_a, stream_b, size)


def _compare_zip_to_raw(zip_path: str, raw_path: str) -> bool:
    with zipfile.ZipFile(zip_path, 'r') as archive:
        entries = archive.infolist()

        # A multi-entry archive can never match a single raw file
        if len(entries) != 1:
            return False

        size = os.path.getsize(raw_path)
        if entries[0].file_size != size:
            return False

        with archive.open(entries[0], 'r') as entry_stream, open(raw_path, 'rb') as raw_stream:
            return compare_streams(entry_stream, raw_stream, size)


def _compare_zip_to_zip(path_a: str, path_b: str) -> bool:
    with zipfile.ZipFile(path_a, 'r') as archive_a, zipfile.ZipFile(path_b, 'r') as archive_b:
        entries_a = archive_a.infolist()
        entries_b = archive_b.infolist()

        if len(entries_a) != len(entries_b):
            return False

        # Single payload: entry names carry the run timestamp, ignore them
        if len(entries_a) == 1:
            return _compare_entries(archive_a, entries_a[0], archive_b, entries_b[0])

        by_name_a = _entries_by_name(entries_a)
        by_name_b = _entries_by_name(entries_b)

        # Same names with the same multiplicity on both sides
        if {name: len(group) for name, group in by_name_a.items()} != \
                {name: len(group) for name, group in by_name_b.items()}:
            return False

        for name, group_a in by_name_a.items():
            for entry_a, entry_b in zip(group_a, by_name_b[name]):
                if not _compare_entries(archive_a, entry_a, archive_b, entry_b):
                    return False

        return True


def _entries_by_name(entries: List[zipfile.ZipInfo]) -> Dict[str, List[zipfile.ZipInfo]]:
    """Group archive entries by name, keeping archive order within a name."""
    groups = defaultdict(list)
    for entry in entries:
        groups[entry.filename].append(entry)
    return groups


def _compare_entries(archive_a: zipfile.ZipFile, entry_a: zipfile.ZipInfo,
                     archive_b: zipfile.ZipFile, entry_b: zipfile.ZipInfo) -> bool:
    if entry_a.file_size != entry_b.file_size:
        return False

    with archive_a.open(entry_a, 'r') as stream_a, archive_b.open(entry_b, 'r') as stream_b:
        return compare_streams(stream_a, stream_b, entry_a.file_size)
