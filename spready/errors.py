"""Structured error codes for spready.

All errors follow the format SPRDY-{category}{number}:
- SPRDY-SCN*: Fatal scan errors (scan root, output directories)
- SPRDY-CKP*: Checkpoint errors (always degrade to a cold start)
- SPRDY-ENM*: Enumeration log errors
- SPRDY-CFG*: Configuration errors

Per-item enumeration failures are not exceptions; they are recorded on the
scan result as EnumerationError values.
"""

from __future__ import annotations

from typing import Any


class SpreadyError(Exception):
    """An error that stops a spready command.

    The CLI catches these at the command boundary: ``message`` goes to
    stderr, and with ``--json`` the ``code`` is reported alongside it in the
    envelope's ``errors`` list. Keyword context (the path, the offending
    setting) is kept in ``context`` and is also readable as attributes, e.g.
    ``err.path``.
    """

    code: str = "SPRDY-000"

    # Context keys that would shadow the error's own fields
    _SHADOWED = frozenset({"code", "message", "context", "args"})

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        for key, value in context.items():
            if key not in self._SHADOWED:
                setattr(self, key, value)
        super().__init__(f"[{self.code}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Dict form with context values stringified so paths serialize."""
        return {
            "code": self.code,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }


# Scan Errors (SPRDY-SCN*)
class ScanError(SpreadyError):
    """Base class for fatal scan errors."""

    code = "SPRDY-SCN000"


class ScanRootNotFoundError(ScanError):
    """Raised when the scan root does not exist.

    Error code: SPRDY-SCN001
    """

    code = "SPRDY-SCN001"

    def __init__(self, path: str) -> None:
        super().__init__(f"Path does not exist: {path}", path=path)


class ScanRootNotADirectoryError(ScanError):
    """Raised when the scan root is not a directory.

    Error code: SPRDY-SCN002
    """

    code = "SPRDY-SCN002"

    def __init__(self, path: str) -> None:
        super().__init__(f"Path is not a directory: {path}", path=path)


class ScanRootAccessError(ScanError):
    """Raised when the scan root itself cannot be listed.

    Error code: SPRDY-SCN003
    """

    code = "SPRDY-SCN003"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot access scan root {path}: {reason}", path=path, reason=reason)


class OutputDirectoryError(ScanError):
    """Raised when a required state/output directory cannot be created.

    Error code: SPRDY-SCN004
    """

    code = "SPRDY-SCN004"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Cannot create output directory {path}: {reason}", path=path, reason=reason
        )


# Checkpoint Errors (SPRDY-CKP*)
class CheckpointError(SpreadyError):
    """Base class for checkpoint errors."""

    code = "SPRDY-CKP000"


class CheckpointCorruptError(CheckpointError):
    """Raised when a checkpoint file cannot be parsed.

    Error code: SPRDY-CKP001
    """

    code = "SPRDY-CKP001"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Checkpoint {path} is unreadable: {reason}", path=path, reason=reason)


class CheckpointMismatchError(CheckpointError):
    """Raised when a checkpoint belongs to a different scan.

    Error code: SPRDY-CKP002
    """

    code = "SPRDY-CKP002"

    def __init__(self, field_name: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Checkpoint {field_name} '{actual}' does not match '{expected}'",
            field_name=field_name,
            expected=expected,
            actual=actual,
        )


# Enumeration Log Errors (SPRDY-ENM*)
class EnumerationLogError(SpreadyError):
    """Base class for enumeration log errors."""

    code = "SPRDY-ENM000"


class EnumerationLogCorruptError(EnumerationLogError):
    """Raised when an enumeration log line cannot be decoded.

    Error code: SPRDY-ENM001
    """

    code = "SPRDY-ENM001"

    def __init__(self, path: str, line: int, reason: str) -> None:
        super().__init__(
            f"Enumeration log {path} line {line} is malformed: {reason}",
            path=path,
            line=line,
            reason=reason,
        )


# Configuration Errors (SPRDY-CFG*)
class ConfigError(SpreadyError):
    """Base class for configuration errors."""

    code = "SPRDY-CFG000"


class InvalidSettingError(ConfigError):
    """Raised when a setting value cannot be interpreted.

    Error code: SPRDY-CFG001
    """

    code = "SPRDY-CFG001"

    def __init__(self, key: str, value: Any, expected: str) -> None:
        super().__init__(
            f"Invalid value {value!r} for setting '{key}': expected {expected}",
            key=key,
            value=value,
            expected=expected,
        )
