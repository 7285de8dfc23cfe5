"""Centralized exit codes for all CLI commands.

Exit code ranges:
    0: Success
    1-9: General errors
    10-19: Validation and configuration errors
    20-29: Lookup errors
    40-49: Operation errors
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for VNO CLI commands."""

    # Success (0)
    SUCCESS = 0

    # General errors (1-9)
    GENERAL_ERROR = 1
    INTERRUPTED = 2  # Ctrl+C / SIGINT

    # Validation errors (10-19)
    VALIDATION_ERROR = 10
    CONFIG_ERROR = 11

    # Lookup errors (20-29)
    NOT_FOUND = 20

    # Operation errors (40-49)
    OPERATION_FAILED = 40
    CONFLICT = 41
    DATABASE_ERROR = 42
