"""
Tiered retention for a job's backup folder.

Each pass rebuilds the list of dated backup files from the folder, collapses
the newest backup into a zero-length placeholder when it matches the previous
one, marks what every retention tier wants to keep and deletes the rest.

Tiers (each independently marks files to keep):
- the newest backup, always
- the ``keep_most_recent`` newest backups
- the earliest backup of each of the last ``keep_days`` days
- the earliest backup of each of the last ``keep_weeks`` weeks (Sunday start)
- the earliest backup of each of the last ``keep_months`` months
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..recurrence import add_months
from .comparison import files_are_same
from .files import BackupFileInfo, same_as_previous_name, scan_backup_folder


logger = logging.getLogger(__name__)


@dataclass
class RetentionResult:
    """Outcome of one retention pass."""
    current_file: Optional[str] = None
    same_as_previous: bool = False
    kept: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)


class RetentionManager:
    """
    Applies the retention policy of one backup job to its folder.

    Deletion errors are not caught: a partially applied pass must surface.
    """

    def __init__(self, job, comparator: Callable[[str, bool, str, bool], bool] = files_are_same):
        """
        Initialize retention manager.

        Args:
            job: BackupJob whose folder and keep settings are used
            comparator: Content comparison function
        """
        self.job = job
        self.comparator = comparator

    def enforce(self) -> RetentionResult:
        """
        Run a retention pass over the job's backup folder.

        Returns:
            RetentionResult describing the collapse and the deletions

        Raises:
            OSError: If a file cannot be deleted or the placeholder created
        """
        folder = self.job.backup_folder
        records = sorted(
            scan_backup_folder(folder, self.job.output_is_zip),
            key=lambda r: r.backup_date
        )
        result = RetentionResult()

        if not records:
            logger.info(f"No backups found in {folder}")
            return result

        current = records[-1]
        previous = self._find_previous(records, current)

        if previous is not None and not current.same_as_previous:
            self._collapse_if_same(current, previous)

        result.current_file = current.file_name
        result.same_as_previous = current.same_as_previous

        self.mark_records(records, current)

        for record in records:
            if record.keep:
                result.kept.append(record.file_name)
                continue
            os.remove(os.path.join(folder, record.file_name))
            result.deleted.append(record.file_name)
            logger.info(f"Deleted backup {record.file_name} from {folder}")

        return result

    def mark_records(self, records: List[BackupFileInfo], current: BackupFileInfo):
        """
        Set the keep flag on every record some tier wants to keep.

        Args:
            records: All records of the folder, sorted oldest first
            current: The newest record
        """
        current.keep = True

        if self.job.keep_most_recent > 0:
            for record in records[-self.job.keep_most_recent:]:
                record.keep = True

        # Windows are relative to the newest backup, not the wall clock
        day_zero = datetime(current.backup_date.year, current.backup_date.month, current.backup_date.day)

        for i in range(self.job.keep_days):
            _keep_earliest(records, day_zero - timedelta(days=i), day_zero - timedelta(days=i - 1))

        week_start = day_zero - timedelta(days=(day_zero.weekday() + 1) % 7)
        for i in range(self.job.keep_weeks):
            _keep_earliest(records, week_start - timedelta(weeks=i), week_start - timedelta(weeks=i - 1))

        month_start = day_zero.replace(day=1)
        for i in range(self.job.keep_months):
            _keep_earliest(records, add_months(month_start, -i), add_months(month_start, 1 - i))

        # A kept placeholder needs the real backup it stands for
        for record in [r for r in records if r.keep and r.same_as_previous]:
            antecedent = _find_antecedent(records, record)
            if antecedent is not None:
                antecedent.keep = True

    @staticmethod
    def _find_previous(records: List[BackupFileInfo], current: BackupFileInfo) -> Optional[BackupFileInfo]:
        """Newest real (non-placeholder) backup other than the current one."""
        for record in reversed(records):
            if record is not current and not record.same_as_previous:
                return record
        return None

    def _collapse_if_same(self, current: BackupFileInfo, previous: BackupFileInfo):
        """Replace the current backup by a placeholder when it matches the previous one."""
        folder = self.job.backup_folder
        current_path = os.path.join(folder, current.file_name)

        if not self.comparator(current_path, current.is_zip,
                               os.path.join(folder, previous.file_name), previous.is_zip):
            return

        os.remove(current_path)
        current.file_name = same_as_previous_name(current.file_name, self.job.zip_results)

        # Zero-length placeholder
        open(os.path.join(folder, current.file_name), 'wb').close()
        current.same_as_previous = True

        logger.info(f"Backup {os.path.basename(current_path)} is the same as {previous.file_name}, "
                    f"replaced by {current.file_name}")


def _keep_earliest(records: List[BackupFileInfo], start: datetime, end: datetime):
    """Keep the oldest record dated within [start, end)."""
    for record in records:
        if start <= record.backup_date < end:
            record.keep = True
            return


def _find_antecedent(records: List[BackupFileInfo], placeholder: BackupFileInfo) -> Optional[BackupFileInfo]:
    """Nearest earlier real backup of a placeholder."""
    for record in reversed(records):
        if record.backup_date < placeholder.backup_date and not record.same_as_previous:
            return record
    return None

