"""
Backup module for Dumpkeeper.

This module handles the core backup functionality including:
- Running the external backup program
- Content comparison of backup artifacts
- Retention policy enforcement with same-as-previous placeholders
- Post-run compression
- Execution orchestration
"""

from .executor import BackupExecutor, execute_backup_job
from .comparison import files_are_same
from .compression import zip_backup_file
from .retention import RetentionManager
from .process import run_program

__all__ = [
    'BackupExecutor',
    'execute_backup_job',
    'files_are_same',
    'zip_backup_file',
    'RetentionManager',
    'run_program'
]
