"""Validation rule base class and the built-in destination-platform rules.

Each rule checks one aspect of an item and returns zero or more Issues. Rules
are pure functions of the item and a read-only RuleContext, so they can run on
any worker thread. The one stateful check, NameConflictRule, is driven by the
pipeline runner against a shared NameCollisionIndex.
"""

from __future__ import annotations

import fnmatch
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote, urlsplit

from spready.constants import (
    BLOCKED_FILE_PREFIXES,
    BLOCKED_FILE_TYPES,
    BLOCKED_FOLDER_PREFIXES,
    BLOCKED_PATTERNS,
    DEFAULT_PATH_WARNING_PERCENT,
    EMAIL_ARCHIVE_CRITICAL_BYTES,
    FILE_SIZE_CRITICAL_BYTES,
    FILE_SIZE_INFO_BYTES,
    FILE_SIZE_WARNING_BYTES,
    INVALID_CHARACTERS,
    MAX_NAME_LENGTH,
    MAX_PATH_LENGTH,
    OTHER_PROBLEMATIC_FILES,
    PROBLEMATIC_FILE_TYPES,
    PROBLEMATIC_REMEDIATION,
    RESERVED_NAMES,
    SECRET_FILE_MESSAGE,
    SECRET_FILE_PATTERNS,
    URL_EXPANDED_WIDTH,
    URL_EXPANDING_CHARACTERS,
)
from spready.models import Issue, IssueType, Item, Severity, format_size

if TYPE_CHECKING:
    from spready.aggregate import NameCollisionIndex


# =============================================================================
# Length helpers
# =============================================================================


def encoded_length(relative_path: str) -> int:
    """Length of a path once transmitted inside a URL.

    Space, '#', '%', '&', '+' and every non-ASCII character count as 3 units;
    everything else counts as 1. Backslashes are normalised to '/'.
    """
    total = 0
    for ch in relative_path.replace("\\", "/"):
        if ch in URL_EXPANDING_CHARACTERS or ord(ch) > 127:
            total += URL_EXPANDED_WIDTH
        else:
            total += 1
    return total


def destination_length(destination: str) -> int:
    """Length a destination URL contributes in front of every item path.

    Query string and fragment are ignored; the path is measured escaped and
    without a trailing slash. Non-URL identifiers count their raw length.
    """
    trimmed = destination.rstrip("/")
    if not trimmed:
        return 0

    parts = urlsplit(trimmed)
    if not parts.scheme or not parts.netloc:
        return len(trimmed)

    base = f"{parts.scheme}://{parts.netloc}"
    escaped_path = quote(unquote(parts.path), safe="/:@!$&'()*+,;=").rstrip("/")
    return len(base) + len(escaped_path)


def _extension(name: str) -> str:
    return os.path.splitext(name)[1].lower()


# =============================================================================
# Context
# =============================================================================


@dataclass(frozen=True)
class RuleContext:
    """Read-only values shared by every rule during one scan."""

    prefix_length: int = 0
    warning_percent: int = DEFAULT_PATH_WARNING_PERCENT
    max_path_length: int = MAX_PATH_LENGTH

    @property
    def warning_threshold(self) -> int:
        """Encoded length at which the path-length warning starts."""
        return (self.max_path_length * self.warning_percent) // 100


# =============================================================================
# Base class
# =============================================================================


class ValidationRule(ABC):
    """Base class for all item rules.

    Subclasses must define:
        name: Check key used to enable/disable the rule
        description: Human-readable explanation for --verbose
        applies_to_directories: Whether folders are evaluated

    Subclasses must implement:
        check(): Evaluate one item and return its issues
    """

    name: str
    description: str
    applies_to_directories: bool = True

    def applies(self, item: Item) -> bool:
        return self.applies_to_directories or not item.is_dir

    @abstractmethod
    def check(self, item: Item, context: RuleContext) -> list[Issue]:
        """Evaluate a single item.

        Args:
            item: The item to check.
            context: Shared read-only scan parameters.

        Returns:
            Issues found, at most one per issue type.
        """
        ...

    @staticmethod
    def _issue(
        item: Item,
        issue_type: IssueType,
        severity: Severity,
        category: str,
        description: str,
        *,
        suggestion: str | None = None,
        details: str | None = None,
        with_size: bool = False,
    ) -> Issue:
        """Helper to create an issue for an item."""
        return Issue(
            path=item.path,
            relative_path=item.relative_path,
            name=item.name,
            is_directory=item.is_dir,
            issue_type=issue_type,
            severity=severity,
            category=category,
            description=description,
            suggestion=suggestion,
            size=item.size if with_size and not item.is_dir else None,
            details=details,
        )


# =============================================================================
# Built-in rules
# =============================================================================


class PathLengthRule(ValidationRule):
    """Check encoded path length against the destination limit, and name length."""

    name = "path_length"
    description = "Path (with destination prefix) and name must fit the platform limits"

    def check(self, item: Item, context: RuleContext) -> list[Issue]:
        issues: list[Issue] = []

        total = context.prefix_length + encoded_length(item.relative_path)
        limit = context.max_path_length
        details = f"{total} / {limit} characters"
        if total > limit:
            issues.append(
                self._issue(
                    item,
                    IssueType.PATH_TOO_LONG,
                    Severity.CRITICAL,
                    "Path Length",
                    f"Path exceeds {limit} character limit",
                    suggestion=(
                        f"Shorten path by at least {total - limit} characters. Consider "
                        "shortening folder names or reducing nesting depth."
                    ),
                    details=details,
                )
            )
        elif total >= context.warning_threshold:
            issues.append(
                self._issue(
                    item,
                    IssueType.PATH_TOO_LONG,
                    Severity.WARNING,
                    "Path Length",
                    f"Path is at {(total * 100) // limit}% of {limit} character limit",
                    suggestion=(
                        f"Only {limit - total} characters remaining. Consider shortening "
                        "the path to leave room for future growth."
                    ),
                    details=details,
                )
            )

        if len(item.name) > MAX_NAME_LENGTH:
            issues.append(
                self._issue(
                    item,
                    IssueType.NAME_TOO_LONG,
                    Severity.CRITICAL,
                    "Path Length",
                    f"File or folder name exceeds {MAX_NAME_LENGTH} character limit",
                    suggestion=(
                        f"Rename to {MAX_NAME_LENGTH} characters or fewer. "
                        f"Current length: {len(item.name)} chars."
                    ),
                    details=f"{len(item.name)} / {MAX_NAME_LENGTH} characters",
                )
            )

        return issues


class InvalidCharactersRule(ValidationRule):
    """Flag forbidden characters; one issue lists every character found."""

    name = "invalid_characters"
    description = "Names must not contain characters the destination rejects"

    def check(self, item: Item, context: RuleContext) -> list[Issue]:
        found: list[str] = []
        for ch in item.name:
            if ch in INVALID_CHARACTERS and ch not in found:
                found.append(ch)
        if not found:
            return []

        char_list = " ".join(found)
        return [
            self._issue(
                item,
                IssueType.INVALID_CHARACTERS,
                Severity.CRITICAL,
                "Invalid Characters",
                f"Contains invalid characters for SharePoint: {char_list}",
                suggestion=f"Remove or replace these characters: {char_list}",
                details=f"Invalid characters found: {char_list}",
            )
        ]


class ReservedNameRule(ValidationRule):
    """Reserved names, always-blocked substrings and blocked prefixes."""

    name = "reserved_names"
    description = "Names must not be reserved or carry blocked patterns or prefixes"

    def check(self, item: Item, context: RuleContext) -> list[Issue]:
        reasons: list[str] = []
        critical = False

        candidates = {item.name.upper()}
        if not item.is_dir:
            candidates.add(os.path.splitext(item.name)[0].upper())
        reserved = sorted(c for c in candidates if c in RESERVED_NAMES)
        if reserved:
            critical = True
            reasons.append(f"'{reserved[0]}' is a reserved name")

        name_lower = item.name.lower()
        for pattern in BLOCKED_PATTERNS:
            if pattern in name_lower:
                critical = True
                reasons.append(f"blocked pattern '{pattern}' found in name")

        prefixes = BLOCKED_FOLDER_PREFIXES if item.is_dir else BLOCKED_FILE_PREFIXES
        for prefix in prefixes:
            if item.name.startswith(prefix):
                reasons.append(f"{item.item_type.lower()}s starting with '{prefix}' may not sync")

        if not reasons:
            return []

        return [
            self._issue(
                item,
                IssueType.RESERVED_NAME,
                Severity.CRITICAL if critical else Severity.WARNING,
                "Reserved Name",
                "Name is not allowed in SharePoint: " + "; ".join(reasons),
                suggestion="Rename to a different name. Reserved names cannot be used in SharePoint.",
            )
        ]


class BlockedFileTypeRule(ValidationRule):
    """Extensions the destination commonly refuses to store."""

    name = "blocked_file_types"
    description = "File extensions blocked for security reasons"
    applies_to_directories = False

    def check(self, item: Item, context: RuleContext) -> list[Issue]:
        ext = _extension(item.name)
        if not ext:
            return []
        for category, extensions, message, remediation in BLOCKED_FILE_TYPES:
            if ext in extensions:
                return [
                    self._issue(
                        item,
                        IssueType.BLOCKED_FILE_TYPE,
                        Severity.WARNING,
                        category,
                        message,
                        suggestion=remediation,
                        with_size=True,
                    )
                ]
        return []


class ProblematicFileRule(ValidationRule):
    """Extensions that upload but behave badly once stored."""

    name = "problematic_files"
    description = "File types with known sync or collaboration problems"
    applies_to_directories = False

    def check(self, item: Item, context: RuleContext) -> list[Issue]:
        ext = _extension(item.name)

        for category, severity_name, extensions, message, min_size in PROBLEMATIC_FILE_TYPES:
            if ext not in extensions:
                continue
            if min_size is not None and item.size <= min_size:
                return []
            severity = Severity(severity_name)
            if category == "Email Archive" and item.size > EMAIL_ARCHIVE_CRITICAL_BYTES:
                severity = Severity.CRITICAL
            return [self._problem(item, severity, category, message)]

        if ext in OTHER_PROBLEMATIC_FILES:
            return [self._problem(item, Severity.INFO, "Other", OTHER_PROBLEMATIC_FILES[ext])]

        name_lower = item.name.lower()
        if any(fnmatch.fnmatchcase(name_lower, p) for p in SECRET_FILE_PATTERNS):
            return [self._problem(item, Severity.WARNING, "Security", SECRET_FILE_MESSAGE)]

        return []

    def _problem(self, item: Item, severity: Severity, category: str, message: str) -> Issue:
        return self._issue(
            item,
            IssueType.PROBLEMATIC_FILE,
            severity,
            category,
            message,
            suggestion=PROBLEMATIC_REMEDIATION.get(category),
            with_size=True,
        )


class FileSizeRule(ValidationRule):
    """Three ascending size thresholds."""

    name = "file_size"
    description = "Files must stay under the upload size limit"
    applies_to_directories = False

    def check(self, item: Item, context: RuleContext) -> list[Issue]:
        size = item.size
        if size > FILE_SIZE_CRITICAL_BYTES:
            severity = Severity.CRITICAL
            description = "File exceeds 250 GB size limit"
            suggestion = "Split the file or use alternative storage for files over 250 GB."
        elif size > FILE_SIZE_WARNING_BYTES:
            severity = Severity.WARNING
            description = "Very large file may have sync issues"
            suggestion = "Files over 15 GB may experience slow sync or timeouts."
        elif size > FILE_SIZE_INFO_BYTES:
            severity = Severity.INFO
            description = "Large file detected"
            suggestion = None
        else:
            return []

        return [
            self._issue(
                item,
                IssueType.FILE_SIZE,
                severity,
                "File Size",
                description,
                suggestion=suggestion,
                details=format_size(size),
                with_size=True,
            )
        ]


class HiddenItemRule(ValidationRule):
    """Hidden and system attributes, reported for review."""

    name = "hidden_files"
    description = "Hidden or system items that may not need migrating"

    def check(self, item: Item, context: RuleContext) -> list[Issue]:
        issues: list[Issue] = []
        if item.attributes.hidden or item.name.startswith("."):
            issues.append(
                self._issue(
                    item,
                    IssueType.HIDDEN_ITEM,
                    Severity.INFO,
                    "Hidden",
                    "Hidden file or folder",
                    suggestion="Review if this hidden item needs to be migrated.",
                )
            )
        if item.attributes.system:
            issues.append(
                self._issue(
                    item,
                    IssueType.SYSTEM_ITEM,
                    Severity.INFO,
                    "System",
                    "System file or folder",
                    suggestion="Exclude system files from migration.",
                )
            )
        return issues


class NameConflictRule:
    """Case-insensitive sibling collisions.

    Stateful: reads and writes the shared collision index, so the runner
    calls it in enumeration order rather than from worker threads.
    """

    name = "name_conflicts"
    description = "Siblings whose names differ only by case collide at the destination"

    def check(self, item: Item, index: NameCollisionIndex) -> list[Issue]:
        first = index.register(item.parent, item.name, item.relative_path)
        if first is None:
            return []
        return [
            ValidationRule._issue(
                item,
                IssueType.NAME_CONFLICT,
                Severity.CRITICAL,
                "Name Conflict",
                f"Name conflicts with '{first}' (names are case-insensitive in SharePoint)",
                suggestion="Rename one of the items so names differ by more than letter case.",
                details=f"First seen: {first}",
                with_size=True,
            )
        ]
