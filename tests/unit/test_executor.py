"""
Unit tests for backup executor (dumpkeeper/backup/executor.py).

Tests BackupExecutor for one scheduled run: program invocation, failure
cleanup, retention, compression and run history.
"""

import os
import zipfile
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from dumpkeeper.backup.executor import BackupExecutor, execute_backup_job
from dumpkeeper.backup.process import ProcessResult, ProcessStartError
from dumpkeeper.models import BackupRun


SCHEDULED = datetime(2024, 1, 15, 2, 0)


def fake_program(content=b'backup payload', exit_code=0):
    """Side effect for run_program that writes the target file."""
    def _run(program, parameters):
        target = parameters.split('"')[1]
        if content is not None:
            with open(target, 'wb') as f:
                f.write(content)
        return ProcessResult(exit_code, datetime(2024, 1, 15, 2, 0), datetime(2024, 1, 15, 2, 1))
    return _run


class TestBackupExecutor:
    """Test BackupExecutor class."""

    def test_executor_initialization(self, make_job):
        job = make_job()
        executor = BackupExecutor(job, SCHEDULED)

        assert executor.job == job
        assert executor.scheduled_for == SCHEDULED
        assert executor.history_record is None
        assert executor.logs == []
        assert executor.is_cancelled() is False

    @patch('dumpkeeper.backup.executor.run_program')
    def test_successful_backup(self, mock_run, db, backup_folder, make_job):
        mock_run.side_effect = fake_program()

        result = BackupExecutor(make_job(), SCHEDULED).execute()

        assert result.status == 'success'
        assert result.exit_code == 0
        assert result.file_name == '20240115_0200.bak'
        assert result.file_size_bytes == len(b'backup payload')
        assert result.completed_at is not None
        assert 'Backup completed successfully' in result.logs
        assert os.listdir(backup_folder) == ['20240115_0200.bak']

    @patch('dumpkeeper.backup.executor.run_program')
    def test_filename_substituted_into_parameters(self, mock_run, db, backup_folder, make_job):
        mock_run.side_effect = fake_program()

        BackupExecutor(make_job(program_parameters='--out "%FILENAME%" --db x'), SCHEDULED).execute()

        expected_path = os.path.abspath(os.path.join(str(backup_folder), '20240115_0200.bak'))
        mock_run.assert_called_once_with('/usr/bin/dump', f'--out "{expected_path}" --db x')

    @patch('dumpkeeper.backup.executor.run_program')
    def test_creates_missing_folder(self, mock_run, db, tmp_path, make_job):
        mock_run.side_effect = fake_program()
        folder = tmp_path / 'new' / 'nested'

        result = BackupExecutor(make_job(backup_folder=str(folder)), SCHEDULED).execute()

        assert result.status == 'success'
        assert (folder / '20240115_0200.bak').exists()

    @patch('dumpkeeper.backup.executor.run_program')
    def test_nonzero_exit_removes_partial_output(self, mock_run, db, backup_folder, make_job, write_backup):
        write_backup(datetime(2024, 1, 14, 2, 0), b'older')
        mock_run.side_effect = fake_program(b'partial', exit_code=2)

        result = BackupExecutor(make_job(), SCHEDULED).execute()

        assert result.status == 'failed'
        assert result.exit_code == 2
        assert 'exit code 2' in result.error_message
        # Retention did not run: the older backup is still there
        assert os.listdir(backup_folder) == ['20240114_0200.bak']

    @patch('dumpkeeper.backup.executor.RetentionManager')
    @patch('dumpkeeper.backup.executor.run_program')
    def test_start_failure_skips_retention(self, mock_run, mock_retention, db, backup_folder, make_job):
        mock_run.side_effect = ProcessStartError('Failed to start /usr/bin/dump: not found')

        result = BackupExecutor(make_job(), SCHEDULED).execute()

        assert result.status == 'failed'
        assert 'Failed to start' in result.error_message
        assert result.exit_code is None
        mock_retention.assert_not_called()

    @patch('dumpkeeper.backup.executor.run_program')
    def test_same_as_previous_recorded(self, mock_run, db, backup_folder, make_job, write_backup):
        write_backup(datetime(2024, 1, 14, 2, 0), b'backup payload')
        mock_run.side_effect = fake_program(b'backup payload')

        result = BackupExecutor(make_job(keep_most_recent=2), SCHEDULED).execute()

        assert result.status == 'success'
        assert result.same_as_previous is True
        assert result.file_name == '20240115_0200.SameAsPrevious.bak'
        assert result.file_size_bytes == 0
        assert sorted(os.listdir(backup_folder)) == ['20240114_0200.bak', '20240115_0200.SameAsPrevious.bak']

    @patch('dumpkeeper.backup.executor.run_program')
    def test_retention_deletions_counted(self, mock_run, db, backup_folder, make_job, write_backup):
        write_backup(datetime(2024, 1, 13, 2, 0), b'one')
        write_backup(datetime(2024, 1, 14, 2, 0), b'two')
        mock_run.side_effect = fake_program(b'three')

        result = BackupExecutor(make_job(), SCHEDULED).execute()

        assert result.deleted_count == 2
        assert os.listdir(backup_folder) == ['20240115_0200.bak']

    @patch('dumpkeeper.backup.executor.RetentionManager')
    @patch('dumpkeeper.backup.executor.run_program')
    def test_retention_error_marks_run_failed(self, mock_run, mock_retention, db, backup_folder, make_job):
        mock_run.side_effect = fake_program()
        mock_retention.return_value.enforce.side_effect = PermissionError('locked')

        result = BackupExecutor(make_job(), SCHEDULED).execute()

        assert result.status == 'failed'
        assert 'locked' in result.error_message


class TestCompressionStep:
    """Test zipping of finished backups."""

    @patch('dumpkeeper.backup.executor.run_program')
    def test_zip_results(self, mock_run, db, backup_folder, make_job):
        mock_run.side_effect = fake_program()

        result = BackupExecutor(make_job(zip_results=True), SCHEDULED).execute()

        assert result.file_name == '20240115_0200.zip'
        assert os.listdir(backup_folder) == ['20240115_0200.zip']
        with zipfile.ZipFile(backup_folder / '20240115_0200.zip') as zipf:
            assert zipf.namelist() == ['20240115_0200.bak']
            assert zipf.read('20240115_0200.bak') == b'backup payload'

    @patch('dumpkeeper.backup.executor.run_program')
    def test_zipped_previous_deduplicates_next_run(self, mock_run, db, backup_folder, make_job):
        job = make_job(zip_results=True, keep_most_recent=5)
        mock_run.side_effect = fake_program()

        BackupExecutor(job, datetime(2024, 1, 14, 2, 0)).execute()
        result = BackupExecutor(job, SCHEDULED).execute()

        assert result.same_as_previous is True
        assert sorted(os.listdir(backup_folder)) == ['20240114_0200.zip', '20240115_0200.SameAsPrevious.zip']

    @patch('dumpkeeper.backup.executor.zip_backup_file')
    @patch('dumpkeeper.backup.executor.run_program')
    def test_zip_extension_is_not_zipped_again(self, mock_run, mock_zip, db, backup_folder, make_job):
        mock_run.side_effect = fake_program()

        result = BackupExecutor(make_job(zip_results=True, file_extension='.zip'), SCHEDULED).execute()

        mock_zip.assert_not_called()
        assert result.file_name == '20240115_0200.zip'


class TestCancellation:
    """Shutdown requested while the program was running."""

    @patch('dumpkeeper.backup.executor.zip_backup_file')
    @patch('dumpkeeper.backup.executor.RetentionManager')
    @patch('dumpkeeper.backup.executor.run_program')
    def test_cancelled_run_skips_retention_and_zip(self, mock_run, mock_retention, mock_zip,
                                                   db, backup_folder, make_job):
        mock_run.side_effect = fake_program()

        result = BackupExecutor(make_job(zip_results=True), SCHEDULED, is_cancelled=lambda: True).execute()

        assert result.status == 'success'
        mock_retention.assert_not_called()
        mock_zip.assert_not_called()
        assert os.listdir(backup_folder) == ['20240115_0200.bak']

    @patch('dumpkeeper.backup.executor.zip_backup_file')
    @patch('dumpkeeper.backup.executor.run_program')
    def test_cancelled_after_retention_skips_zip(self, mock_run, mock_zip, db, backup_folder, make_job):
        mock_run.side_effect = fake_program()
        cancelled = MagicMock(side_effect=[False, True])

        BackupExecutor(make_job(zip_results=True), SCHEDULED, is_cancelled=cancelled).execute()

        mock_zip.assert_not_called()


class TestExecuteBackupJob:
    """Test execute_backup_job helper."""

    @patch('dumpkeeper.backup.executor.run_program')
    def test_history_persisted(self, mock_run, db, make_job):
        mock_run.side_effect = fake_program()

        execute_backup_job(make_job(), SCHEDULED)

        runs = BackupRun.query.all()
        assert len(runs) == 1
        assert runs[0].job_id == 1
        assert runs[0].job_name == 'test_db'
        assert runs[0].scheduled_for == SCHEDULED
        assert runs[0].status == 'success'
