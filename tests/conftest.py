"""
Shared pytest fixtures for Dumpkeeper tests.

This module provides fixtures for:
- Flask app and test client
- Database setup with in-memory SQLite
- Backup job factory and backup folders
- Helpers for writing dated backup files and zip archives
"""

import json
import os
import zipfile
from datetime import datetime, time, timedelta

import pytest

from dumpkeeper import create_app, db as _db
from dumpkeeper.settings import BackupJob


@pytest.fixture(scope='function')
def settings_file(tmp_path):
    """Settings file with a single daily job."""
    path = tmp_path / 'backup_settings.json'
    path.write_text(json.dumps({
        'backup_jobs': [
            {
                'name': 'test_db',
                'program': '/usr/bin/true',
                'program_parameters': '%filename%',
                'frequency': '1.00:00:00',
                'time_of_day': '02:00',
                'keep_most_recent': 2,
                'backup_folder': str(tmp_path / 'backups'),
                'file_extension': '.bak'
            }
        ]
    }))
    return path


@pytest.fixture(scope='function')
def app(tmp_path, settings_file):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database and never starts the scheduler.
    """
    app = create_app('testing', {
        'LOG_DIR': str(tmp_path / 'logs'),
        'BACKUP_SETTINGS_FILE': str(settings_file),
    })
    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def backup_folder(tmp_path):
    """Empty backup folder."""
    folder = tmp_path / 'backups'
    folder.mkdir(exist_ok=True)
    return folder


@pytest.fixture
def make_job(backup_folder):
    """
    Factory for BackupJob instances pointing at the backup folder.

    Defaults: daily at midnight, no retention tiers, .bak files.
    """
    def _make_job(**overrides):
        values = {
            'id': 1,
            'name': 'test_db',
            'program': '/usr/bin/dump',
            'backup_folder': str(backup_folder),
            'program_parameters': '--out "%filename%"',
            'frequency': timedelta(days=1),
            'time_of_day': time(0, 0),
            'file_extension': '.bak',
        }
        values.update(overrides)
        return BackupJob(**values)

    return _make_job


@pytest.fixture
def write_backup(backup_folder):
    """
    Write a dated backup file into the backup folder.

    Returns the file name. ``zip_entry`` wraps the content in a single-entry
    zip archive named ``<stamp>.zip``.
    """
    def _write_backup(when: datetime, content: bytes = b'', extension: str = '.bak',
                      zip_entry: str = None, marker: bool = False):
        stamp = when.strftime('%Y%m%d_%H%M')
        if marker:
            name = f"{stamp}.SameAsPrevious{extension}"
            (backup_folder / name).write_bytes(b'')
            return name
        if zip_entry is not None:
            name = f"{stamp}.zip"
            with zipfile.ZipFile(backup_folder / name, 'w', zipfile.ZIP_DEFLATED) as zipf:
                zipf.writestr(zip_entry, content)
            return name
        name = f"{stamp}{extension}"
        (backup_folder / name).write_bytes(content)
        return name

    return _write_backup
