"""
Backup job settings.

Jobs are read from a JSON file shaped like::

    {
        "backup_jobs": [
            {
                "name": "Inventory DB",
                "program": "/usr/bin/pg_dump",
                "program_parameters": "-f \\"%filename%\\" inventory",
                "frequency": "1.00:00:00",
                "time_of_day": "2:00 AM",
                "keep_most_recent": 3,
                "keep_days": 7,
                "keep_weeks": 4,
                "keep_months": 12,
                "backup_folder": "/var/backups/inventory",
                "file_extension": ".sql",
                "zip_results": true,
                "output_is_zip": false
            }
        ]
    }

Jobs get a 1-based id in file order, stable for the life of the process.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional

from dumpkeeper.backup.files import normalize_extension


class SettingsError(Exception):
    """Raised when the backup settings cannot be loaded."""
    pass


@dataclass(frozen=True)
class BackupJob:
    """A configured recurring backup task."""
    id: int
    name: str
    program: str
    backup_folder: str
    program_parameters: str = ''
    frequency: timedelta = timedelta(days=1)
    time_of_day: time = time(0, 0)
    keep_most_recent: int = 0
    keep_days: int = 0
    keep_weeks: int = 0
    keep_months: int = 0
    file_extension: str = ''
    zip_results: bool = False
    output_is_zip: bool = False

    def __repr__(self):
        return f'<BackupJob {self.id} {self.name}>'


_TIMESPAN_RE = re.compile(r'^(?:(\d+)\.)?(\d{1,2}):(\d{2})(?::(\d{2}))?$')


def parse_frequency(value: Any) -> timedelta:
    """
    Parse a frequency.

    Accepts an integer number of minutes, ``"HH:MM[:SS]"`` or
    ``"D.HH:MM:SS"``.

    Raises:
        SettingsError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise SettingsError(f"Invalid frequency: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return timedelta(minutes=value)
        except (OverflowError, ValueError) as e:
            raise SettingsError(f"Invalid frequency: {value!r}: {e}")

    match = _TIMESPAN_RE.match(str(value).strip())
    if not match:
        raise SettingsError(f"Invalid frequency: {value!r}")

    days, hours, minutes, seconds = (int(part or 0) for part in match.groups())
    if hours > 23 or minutes > 59 or seconds > 59:
        raise SettingsError(f"Invalid frequency: {value!r}: hours, minutes or seconds out of range")

    try:
        return timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
    except OverflowError as e:
        raise SettingsError(f"Invalid frequency: {value!r}: {e}")


def parse_time_of_day(value: Optional[str]) -> time:
    """
    Parse the time-of-day anchor.

    Accepts ``"HH:MM"`` (24 hour) or ``"h:MM AM"``/``"h:MM PM"``.
    Missing values mean midnight.

    Raises:
        SettingsError: If the value cannot be parsed
    """
    if value is None or str(value).strip() == '':
        return time(0, 0)

    text = str(value).strip().upper()
    for fmt in ('%H:%M', '%H:%M:%S', '%I:%M %p', '%I:%M:%S %p', '%I:%M%p'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue

    raise SettingsError(f"Invalid time of day: {value!r}")


def _parse_count(raw: Dict[str, Any], key: str) -> int:
    value = raw.get(key, 0) or 0
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise SettingsError(f"Invalid {key}: {value!r}")
    if count < 0:
        raise SettingsError(f"{key} cannot be negative: {count}")
    return count


def parse_job(raw: Dict[str, Any], job_id: int) -> BackupJob:
    """
    Build a BackupJob from one settings entry.

    Args:
        raw: Settings dict for the job
        job_id: Id to assign

    Returns:
        BackupJob instance

    Raises:
        SettingsError: If a required field is missing or a value is invalid
    """
    if not isinstance(raw, dict):
        raise SettingsError(f"Backup job #{job_id} must be an object")

    for key in ('name', 'program', 'backup_folder'):
        if not str(raw.get(key) or '').strip():
            raise SettingsError(f"Backup job #{job_id} is missing '{key}'")

    return BackupJob(
        id=job_id,
        name=raw['name'].strip(),
        program=raw['program'].strip(),
        backup_folder=raw['backup_folder'].strip(),
        program_parameters=raw.get('program_parameters') or '',
        frequency=parse_frequency(raw.get('frequency', '1.00:00:00')),
        time_of_day=parse_time_of_day(raw.get('time_of_day')),
        keep_most_recent=_parse_count(raw, 'keep_most_recent'),
        keep_days=_parse_count(raw, 'keep_days'),
        keep_weeks=_parse_count(raw, 'keep_weeks'),
        keep_months=_parse_count(raw, 'keep_months'),
        file_extension=normalize_extension(raw.get('file_extension', '')),
        zip_results=bool(raw.get('zip_results', False)),
        output_is_zip=bool(raw.get('output_is_zip', False)),
    )


def load_backup_jobs(path: str) -> List[BackupJob]:
    """
    Load backup jobs from a settings file.

    Args:
        path: Path of the JSON settings file

    Returns:
        Jobs in file order with ids 1..n

    Raises:
        SettingsError: If the file cannot be read or is invalid
    """
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise SettingsError(f"Settings file not found: {path}")
    except (OSError, ValueError) as e:
        raise SettingsError(f"Failed to read settings file {path}: {e}")

    raw_jobs = data.get('backup_jobs', []) if isinstance(data, dict) else None
    if not isinstance(raw_jobs, list):
        raise SettingsError("'backup_jobs' must be a list")

    return [parse_job(raw, index) for index, raw in enumerate(raw_jobs, start=1)]
