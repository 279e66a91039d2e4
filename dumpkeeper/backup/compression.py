"""
Post-run compression of backup artifacts.

A finished backup file is packed into a sibling zip archive holding a single
entry named after the original file, then the original is removed. Keeping
the original name inside the archive lets later comparisons line the entry
up against raw backups byte for byte.
"""

import os
import zipfile

from .files import ZIP_EXTENSION


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


def zip_backup_file(source_path: str) -> str:
    """
    Compress a backup file into ``<stem>.zip`` next to it.

    Uses deflate at the highest compression level. The original file is
    deleted once the archive is complete.

    Args:
        source_path: Path to the backup file

    Returns:
        Full path to the created archive file

    Raises:
        CompressionError: If archive creation fails
    """
    if not os.path.isfile(source_path):
        raise CompressionError(f"Backup file not found: {source_path}")

    archive_path = zip_path_for(source_path)

    try:
        with zipfile.ZipFile(archive_path, 'w', zipfile.ZIP_DEFLATED, compresslevel=9) as zipf:
            zipf.write(source_path, os.path.basename(source_path))
    except Exception as e:
        # Clean up partial archive on failure
        if os.path.exists(archive_path):
            try:
                os.remove(archive_path)
            except OSError:
                pass
        raise CompressionError(f"Failed to create archive: {e}")

    os.remove(source_path)
    return archive_path


def zip_path_for(source_path: str) -> str:
    """Sibling archive path: the last extension is replaced by .zip"""
    return os.path.splitext(source_path)[0] + ZIP_EXTENSION


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")
