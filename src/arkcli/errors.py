"""Error types and codes for ark-cli.

Every failure that should stop a command is raised as an ArkError carrying
an ErrorCode. The CLI renders them either as a one-line message or, with
--json-errors, as a JSON object:

    {"error": {"code": "CONFLICTING_OPTIONS", "message": "..."}}
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for programmatic consumers."""

    # Configuration errors: detected before touching the filesystem
    CONFLICTING_OPTIONS = "CONFLICTING_OPTIONS"
    MISSING_ARGUMENT = "MISSING_ARGUMENT"

    # Resolution errors
    HOME_UNAVAILABLE = "HOME_UNAVAILABLE"
    ROOT_NOT_FOUND = "ROOT_NOT_FOUND"
    INDEX_UNAVAILABLE = "INDEX_UNAVAILABLE"
    ROOTS_CONFIG_UNREADABLE = "ROOTS_CONFIG_UNREADABLE"

    # Backup
    BACKUP_FAILED = "BACKUP_FAILED"

    # Attribute storage
    STORAGE_NOT_FOUND = "STORAGE_NOT_FOUND"
    STORAGE_ERROR = "STORAGE_ERROR"
    INVALID_RESOURCE_ID = "INVALID_RESOURCE_ID"


class ArkError(Exception):
    """Base exception with an error code and optional details."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class ConfigurationError(ArkError):
    """Raised when command options contradict each other or are missing."""


class ResolutionError(ArkError):
    """Raised when a home directory, root, index or roots config is unavailable."""


class StorageError(ArkError):
    """Raised when an attribute storage cannot be read or written."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.STORAGE_ERROR, message, details)


def format_error_json(code: str, message: str, details: dict | None = None) -> str:
    """Format an error as JSON for --json-errors output."""
    error: dict[str, dict[str, object]] = {"error": {"code": code, "message": message}}
    if details:
        error["error"]["details"] = details
    return json.dumps(error)
