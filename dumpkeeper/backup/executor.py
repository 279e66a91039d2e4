"""
Backup executor - runs one scheduled backup of a job.

Workflow:
1. Create BackupRun record (status: running)
2. Run the backup program with the dated target path
3. On failure, remove any partial output
4. Apply the retention policy (deduplicates against the previous backup)
5. Zip the result (if configured)
6. Update BackupRun (status: success/failed)

Steps 4 and 5 are skipped once a shutdown has been requested.
"""

import logging
import os
from datetime import datetime
from typing import Callable, Optional

from dumpkeeper import db
from dumpkeeper.models import BackupRun
from .comparison import files_are_same
from .compression import zip_backup_file, get_archive_size
from .files import build_backup_filename, is_zip_extension
from .process import run_program, substitute_filename, ProcessStartError
from .retention import RetentionManager


logger = logging.getLogger(__name__)


class BackupError(Exception):
    """Raised when the backup program reports a failure."""
    pass


class BackupExecutor:
    """
    Runs the complete backup workflow for one scheduled run of a job.
    """

    def __init__(self, job, scheduled_for: datetime,
                 is_cancelled: Optional[Callable[[], bool]] = None,
                 comparator=files_are_same):
        """
        Initialize backup executor.

        Args:
            job: BackupJob to run
            scheduled_for: Scheduled time of the run, used to name the file
            is_cancelled: Returns True once a shutdown has been requested
            comparator: Content comparison used for deduplication
        """
        self.job = job
        self.scheduled_for = scheduled_for
        self.is_cancelled = is_cancelled or (lambda: False)
        self.comparator = comparator
        self.history_record = None
        self.file_path = None
        self.logs = []

    def execute(self) -> BackupRun:
        """
        Execute the backup run.

        Returns:
            BackupRun record with execution results
        """
        self.history_record = BackupRun(
            job_id=self.job.id,
            job_name=self.job.name,
            status='running',
            scheduled_for=self.scheduled_for,
            started_at=datetime.now()
        )
        db.session.add(self.history_record)
        db.session.commit()

        self._log(f"Starting backup job: {self.job.name}")

        try:
            self._execute_workflow()

            self.history_record.status = 'success'
            self._log("Backup completed successfully")

        except Exception as e:
            self.history_record.status = 'failed'
            self.history_record.error_message = str(e)
            self._log(f"Backup failed: {e}", level=logging.ERROR, exc_info=True)

        finally:
            self.history_record.completed_at = datetime.now()
            self.history_record.logs = '\n'.join(self.logs)
            db.session.commit()

        return self.history_record

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        # Step 1: Target path
        file_name = build_backup_filename(self.scheduled_for, self.job.file_extension)
        os.makedirs(self.job.backup_folder, exist_ok=True)
        self.file_path = os.path.abspath(os.path.join(self.job.backup_folder, file_name))

        # Step 2: Run the backup program
        parameters = substitute_filename(self.job.program_parameters, self.file_path)
        self._log(f"Running {self.job.program}")
        try:
            result = run_program(self.job.program, parameters)
        except ProcessStartError:
            self._remove_partial_output()
            raise

        self.history_record.exit_code = result.exit_code
        self._log(f"Program finished in {result.duration} with exit code {result.exit_code}")
        self._flush_logs_to_db()

        if not result.succeeded:
            self._remove_partial_output()
            raise BackupError(f"The backup for \"{self.job.name}\" failed with exit code {result.exit_code}")

        self.history_record.file_name = file_name

        if self.is_cancelled():
            self._log("Shutdown requested, skipping retention and compression")
            return

        # Step 3: Retention (may collapse this backup into a placeholder)
        retention = RetentionManager(self.job, self.comparator).enforce()
        self.history_record.deleted_count = len(retention.deleted)
        if retention.same_as_previous and not os.path.exists(self.file_path):
            self.history_record.same_as_previous = True
            self.history_record.file_name = retention.current_file
            self._log(f"Backup is the same as the previous one, kept placeholder {retention.current_file}")
        if retention.deleted:
            self._log(f"Retention removed {len(retention.deleted)} old backups")

        if self.is_cancelled():
            self._log("Shutdown requested, skipping compression")
            return

        # Step 4: Zip the result
        if (self.job.zip_results
                and not is_zip_extension(self.job.file_extension)
                and os.path.exists(self.file_path)):
            self._log("Compressing backup")
            self.file_path = zip_backup_file(self.file_path)
            self.history_record.file_name = os.path.basename(self.file_path)

        final_path = os.path.join(self.job.backup_folder, self.history_record.file_name)
        if os.path.exists(final_path):
            self.history_record.file_size_bytes = get_archive_size(final_path)

    def _remove_partial_output(self):
        """Delete whatever the failed program left at the target path."""
        if self.file_path and os.path.exists(self.file_path):
            os.remove(self.file_path)
            self._log(f"Removed partial output {os.path.basename(self.file_path)}")

    def _log(self, message: str, level: int = logging.INFO, exc_info: bool = False):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
            exc_info: Attach the current traceback to the module log
        """
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, f"[{self.job.name}] {message}", exc_info=exc_info)

    def _flush_logs_to_db(self):
        """Flush accumulated logs to database for real-time visibility."""
        if self.history_record:
            self.history_record.logs = '\n'.join(self.logs)
            db.session.commit()


def execute_backup_job(job, scheduled_for: datetime,
                       is_cancelled: Optional[Callable[[], bool]] = None) -> BackupRun:
    """
    Execute one scheduled run of a backup job.

    Args:
        job: BackupJob to run
        scheduled_for: Scheduled time of the run
        is_cancelled: Returns True once a shutdown has been requested

    Returns:
        BackupRun record with execution results
    """
    executor = BackupExecutor(job, scheduled_for, is_cancelled=is_cancelled)
    return executor.execute()
