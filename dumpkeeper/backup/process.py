"""
Invocation of the external backup program.

The program is opaque: it receives the target file path through its
parameter string and is judged only by its exit code.
"""

import os
import re
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime
from typing import List, Union


FILENAME_PLACEHOLDER = '%filename%'


class ProcessStartError(Exception):
    """Raised when the backup program cannot be started."""
    pass


@dataclass
class ProcessResult:
    """Exit information of a finished backup program."""
    exit_code: int
    started_at: datetime
    exited_at: datetime

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def duration(self):
        return self.exited_at - self.started_at


def substitute_filename(parameters: str, file_path: str) -> str:
    """
    Replace every ``%filename%`` placeholder (any letter case) with a path.

    Args:
        parameters: Parameter template
        file_path: Absolute path of the backup file

    Returns:
        Parameter string ready to be passed to the program
    """
    if not parameters:
        return ''
    return re.sub(re.escape(FILENAME_PLACEHOLDER), lambda _: file_path, parameters, flags=re.IGNORECASE)


def build_command(program: str, parameters: str) -> Union[str, List[str]]:
    """
    Build the command for subprocess.

    On Windows the parameter string is passed through untouched as part of
    the command line; elsewhere it is split with shell quoting rules.
    """
    if os.name == 'nt':
        command_line = subprocess.list2cmdline([program])
        return f"{command_line} {parameters}" if parameters else command_line
    return [program] + shlex.split(parameters or '')


def run_program(program: str, parameters: str) -> ProcessResult:
    """
    Run a backup program and wait for it to exit.

    Args:
        program: Path of the executable
        parameters: Parameter string, placeholders already substituted

    Returns:
        ProcessResult with exit code and timing

    Raises:
        ProcessStartError: If the program cannot be started
    """
    try:
        command = build_command(program, parameters)
    except ValueError as e:
        raise ProcessStartError(f"Invalid parameters for {program}: {e}")

    started_at = datetime.now()

    try:
        process = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL
        )
    except OSError as e:
        raise ProcessStartError(f"Failed to start {program}: {e}")

    exit_code = process.wait()

    return ProcessResult(
        exit_code=exit_code,
        started_at=started_at,
        exited_at=datetime.now()
    )
