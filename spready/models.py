"""Core value types shared by the scan engine.

Items and Issues are immutable; ``ScanResult`` is the frozen summary handed to
report renderers once a scan finishes (or is cancelled).
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any


class Severity(Enum):
    """Issue severity levels."""

    CRITICAL = "Critical"
    WARNING = "Warning"
    INFO = "Info"

    @property
    def rank(self) -> int:
        """Sort rank, most severe first."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}


class IssueType(Enum):
    """Kinds of compatibility findings."""

    PATH_TOO_LONG = "path_too_long"
    NAME_TOO_LONG = "name_too_long"
    INVALID_CHARACTERS = "invalid_characters"
    RESERVED_NAME = "reserved_name"
    BLOCKED_FILE_TYPE = "blocked_file_type"
    PROBLEMATIC_FILE = "problematic_file"
    FILE_SIZE = "file_size"
    NAME_CONFLICT = "name_conflict"
    HIDDEN_ITEM = "hidden_item"
    SYSTEM_ITEM = "system_item"


_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(size: int) -> str:
    """Human-readable byte count (1024-based)."""
    value = float(size)
    for unit in _SIZE_UNITS:
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


@dataclass(frozen=True)
class ItemAttributes:
    """Attribute flags read from the file system."""

    hidden: bool = False
    system: bool = False
    reparse: bool = False


@dataclass(frozen=True)
class Item:
    """One file-system entry produced by an item source."""

    path: str
    relative_path: str
    name: str
    is_dir: bool
    size: int = 0
    attributes: ItemAttributes = field(default_factory=ItemAttributes)

    @property
    def parent(self) -> str:
        """Relative path of the containing folder ('' for the scan root)."""
        head, _, _ = self.relative_path.rpartition("/")
        return head

    @property
    def item_type(self) -> str:
        return "Folder" if self.is_dir else "File"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the enumeration-log line format."""
        return {
            "path": self.path,
            "rel": self.relative_path,
            "dir": self.is_dir,
            "size": self.size,
            "hidden": self.attributes.hidden,
            "system": self.attributes.system,
            "reparse": self.attributes.reparse,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Item:
        rel = data["rel"]
        return cls(
            path=data["path"],
            relative_path=rel,
            name=rel.rpartition("/")[2],
            is_dir=bool(data["dir"]),
            size=int(data.get("size", 0)),
            attributes=ItemAttributes(
                hidden=bool(data.get("hidden", False)),
                system=bool(data.get("system", False)),
                reparse=bool(data.get("reparse", False)),
            ),
        )


@dataclass(frozen=True)
class Issue:
    """A compatibility finding for one item.

    Attributes:
        path: Absolute path of the item.
        relative_path: Path relative to the scan root, '/'-separated.
        name: Item name.
        is_directory: True when the item is a folder.
        issue_type: Kind of finding; at most one Issue per (item, kind).
        severity: How serious the finding is.
        category: Category label used for aggregate counts.
        description: Human-readable explanation.
        suggestion: Remediation hint.
        size: Item size in bytes, for file findings.
        details: Extra detail such as measured lengths.
    """

    path: str
    relative_path: str
    name: str
    is_directory: bool
    issue_type: IssueType
    severity: Severity
    category: str
    description: str
    suggestion: str | None = None
    size: int | None = None
    details: str | None = None

    @property
    def item_type(self) -> str:
        return "Folder" if self.is_directory else "File"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        d: dict[str, Any] = {
            "path": self.path,
            "relative_path": self.relative_path,
            "name": self.name,
            "item_type": self.item_type,
            "type": self.issue_type.value,
            "severity": self.severity.value,
            "category": self.category,
            "description": self.description,
        }
        if self.suggestion is not None:
            d["suggestion"] = self.suggestion
        if self.size is not None:
            d["size"] = self.size
        if self.details is not None:
            d["details"] = self.details
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Issue:
        return cls(
            path=data["path"],
            relative_path=data["relative_path"],
            name=data["name"],
            is_directory=data.get("item_type") == "Folder",
            issue_type=IssueType(data["type"]),
            severity=Severity(data["severity"]),
            category=data["category"],
            description=data["description"],
            suggestion=data.get("suggestion"),
            size=data.get("size"),
            details=data.get("details"),
        )


@dataclass(frozen=True)
class EnumerationError:
    """A non-fatal failure to read one entry during enumeration."""

    path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


@dataclass(frozen=True)
class FileEntry:
    """A file retained by a largest-files tracker."""

    relative_path: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {"relative_path": self.relative_path, "size": self.size}


@dataclass(frozen=True)
class FolderSummary:
    """A folder retained by the largest-folders tracker."""

    relative_path: str
    size: int
    file_count: int
    largest_files: tuple[FileEntry, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "relative_path": self.relative_path,
            "size": self.size,
            "file_count": self.file_count,
            "largest_files": [f.to_dict() for f in self.largest_files],
        }


@dataclass
class ScanResult:
    """Final (or partial, when cancelled) outcome of a scan."""

    source_root: Path
    destination: str
    started_at: datetime
    finished_at: datetime
    total_items: int
    total_files: int
    total_folders: int
    total_bytes: int
    issues: list[Issue]
    issue_log_path: Path
    issues_truncated: bool
    total_issues: int
    by_severity: dict[str, int]
    by_category: dict[str, int]
    by_type: dict[str, int]
    largest_files: list[FileEntry] = field(default_factory=list)
    largest_folders: list[FolderSummary] = field(default_factory=list)
    enumeration_errors: list[EnumerationError] = field(default_factory=list)
    enumeration_error_count: int = 0
    cancelled: bool = False
    resumed: bool = False
    name_conflicts_disabled: bool = False
    item_limit_reached: bool = False

    @property
    def duration(self) -> timedelta:
        return self.finished_at - self.started_at

    @property
    def has_critical(self) -> bool:
        """True if any Critical issue was found."""
        return self.by_severity.get(Severity.CRITICAL.value, 0) > 0

    @property
    def needs_issue_log(self) -> bool:
        """True when the in-memory issues do not cover every issue found."""
        return self.issues_truncated or len(self.issues) < self.total_issues

    def iter_issues(self) -> Iterator[Issue]:
        """Yield every issue, streaming the issue log when memory was capped."""
        if not self.needs_issue_log:
            yield from self.issues
            return

        from spready.issue_store import IssueLog

        yield from IssueLog.read(self.issue_log_path)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary (without the issue list)."""
        return {
            "source_root": str(self.source_root),
            "destination": self.destination,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration.total_seconds(), 3),
            "summary": {
                "total_items": self.total_items,
                "total_files": self.total_files,
                "total_folders": self.total_folders,
                "total_bytes": self.total_bytes,
                "total_issues": self.total_issues,
                "issues_in_memory": len(self.issues),
                "by_severity": dict(self.by_severity),
                "by_category": dict(self.by_category),
                "by_type": dict(self.by_type),
            },
            "issue_log": str(self.issue_log_path),
            "issues_truncated": self.issues_truncated,
            "largest_files": [f.to_dict() for f in self.largest_files],
            "largest_folders": [f.to_dict() for f in self.largest_folders],
            "enumeration_errors": [e.to_dict() for e in self.enumeration_errors],
            "enumeration_error_count": self.enumeration_error_count,
            "cancelled": self.cancelled,
            "resumed": self.resumed,
            "name_conflicts_disabled": self.name_conflicts_disabled,
            "item_limit_reached": self.item_limit_reached,
        }
