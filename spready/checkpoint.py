"""Checkpoint persistence and applicability checks.

One checkpoint exists per scan root, named after a stable hash of the root
path, alongside the issue log and the default enumeration log:

    <state_dir>/checkpoint_<hash>.json
    <state_dir>/issues_<hash>.jsonl
    <state_dir>/enumeration_<hash>.jsonl

A checkpoint is only trusted when its recorded scan root and destination
match the current invocation exactly. Anything unreadable is treated as
"no checkpoint" and the scan starts cold.

Lifecycle:
    IDLE -> ACTIVE -> (CHECKPOINTED)* -> COMPLETED | ABANDONED
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from spready.constants import CHECKPOINT_MAP_CAP, CHECKPOINT_SCHEMA_VERSION
from spready.errors import CheckpointCorruptError, CheckpointMismatchError
from spready.issue_store import LogPosition
from spready.sources import LogIdentity, SourceCursor

logger = logging.getLogger(__name__)


class CheckpointState(Enum):
    """Where the manager is in the scan lifecycle."""

    IDLE = "idle"
    ACTIVE = "active"
    CHECKPOINTED = "checkpointed"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


def root_hash(source_root: Path) -> str:
    """Stable 12-character identifier for a scan root."""
    normalized = os.path.normcase(os.path.abspath(str(source_root)))
    return hashlib.sha256(normalized.encode("utf-8", "surrogateescape")).hexdigest()[:12]


# =============================================================================
# Checkpoint record
# =============================================================================


@dataclass(frozen=True)
class EnumerationLogRecord:
    """What a checkpoint knows about the enumeration log it was reading."""

    path: str
    complete: bool
    identity: LogIdentity | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "complete": self.complete,
            "identity": self.identity.to_dict() if self.identity else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EnumerationLogRecord | None:
        if not data or "path" not in data:
            return None
        return cls(
            path=str(data["path"]),
            complete=bool(data.get("complete", False)),
            identity=LogIdentity.from_dict(data.get("identity")),
        )


@dataclass
class Checkpoint:
    """Durable snapshot of a scan in progress.

    Attributes:
        source_root: Scan root, as given to the scan.
        destination: Destination identifier the scan validates against.
        cursor: Item source position after the last folded item.
        aggregate: AggregateState snapshot.
        issue_log: Issue log position matching the aggregate.
        issues_truncated: Whether the in-memory issue cap had been hit.
        processed_dirs: Directories whose subtrees were fully enumerated.
        enumeration_log: Enumeration log the cursor refers to, if any.
        enumeration_errors: Recorded enumeration errors so far.
        enumeration_error_count: Total enumeration errors, including unrecorded ones.
        name_conflicts_disabled: Whether low memory turned the conflict check off.
        created_at: When the snapshot was taken.
        schema_version: Format version of the record.
    """

    source_root: str
    destination: str
    cursor: SourceCursor = field(default_factory=SourceCursor)
    aggregate: dict[str, Any] = field(default_factory=dict)
    issue_log: LogPosition = field(default_factory=LogPosition)
    issues_truncated: bool = False
    processed_dirs: list[str] = field(default_factory=list)
    enumeration_log: EnumerationLogRecord | None = None
    enumeration_errors: list[dict[str, str]] = field(default_factory=list)
    enumeration_error_count: int = 0
    name_conflicts_disabled: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    schema_version: int = CHECKPOINT_SCHEMA_VERSION

    @property
    def items_processed(self) -> int:
        return int(self.aggregate.get("counters", {}).get("total_items", 0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "created_at": self.created_at.isoformat(),
            "source_root": self.source_root,
            "destination": self.destination,
            "cursor": self.cursor.to_dict(),
            "aggregate": self.aggregate,
            "issue_log": self.issue_log.to_dict(),
            "issues_truncated": self.issues_truncated,
            "processed_dirs": self.processed_dirs[-CHECKPOINT_MAP_CAP:],
            "enumeration_log": self.enumeration_log.to_dict() if self.enumeration_log else None,
            "enumeration_errors": self.enumeration_errors,
            "enumeration_error_count": self.enumeration_error_count,
            "name_conflicts_disabled": self.name_conflicts_disabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        """Parse a record; unknown fields are ignored and missing ones default."""
        created_raw = data.get("created_at")
        created_at = (
            datetime.fromisoformat(created_raw) if created_raw else datetime.now(timezone.utc)
        )
        return cls(
            source_root=str(data["source_root"]),
            destination=str(data.get("destination", "")),
            cursor=SourceCursor.from_dict(data.get("cursor")),
            aggregate=dict(data.get("aggregate") or {}),
            issue_log=LogPosition.from_dict(data.get("issue_log")) or LogPosition(),
            issues_truncated=bool(data.get("issues_truncated", False)),
            processed_dirs=[str(p) for p in data.get("processed_dirs") or []],
            enumeration_log=EnumerationLogRecord.from_dict(data.get("enumeration_log")),
            enumeration_errors=list(data.get("enumeration_errors") or []),
            enumeration_error_count=int(data.get("enumeration_error_count", 0)),
            name_conflicts_disabled=bool(data.get("name_conflicts_disabled", False)),
            created_at=created_at,
            schema_version=int(data.get("schema_version", CHECKPOINT_SCHEMA_VERSION)),
        )


# =============================================================================
# Manager
# =============================================================================


class CheckpointManager:
    """Loads, validates, writes and removes the checkpoint for one scan root."""

    def __init__(self, state_dir: Path, source_root: Path, destination: str) -> None:
        self.state_dir = Path(state_dir)
        self.source_root = Path(source_root)
        self.destination = destination
        self.state = CheckpointState.IDLE
        self.rejection: str | None = None

        key = root_hash(self.source_root)
        self.checkpoint_path = self.state_dir / f"checkpoint_{key}.json"
        self.issue_log_path = self.state_dir / f"issues_{key}.jsonl"
        self.enumeration_log_path = self.state_dir / f"enumeration_{key}.jsonl"

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def read(self) -> Checkpoint:
        """Read and parse the checkpoint file.

        Raises:
            CheckpointCorruptError: If the file is unreadable or malformed.
        """
        try:
            content = self.checkpoint_path.read_text(encoding="utf-8")
            data = json.loads(content)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CheckpointCorruptError(str(self.checkpoint_path), str(e)) from e
        if not isinstance(data, dict):
            raise CheckpointCorruptError(str(self.checkpoint_path), "not a JSON object")
        try:
            checkpoint = Checkpoint.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise CheckpointCorruptError(str(self.checkpoint_path), str(e)) from e
        if checkpoint.schema_version != CHECKPOINT_SCHEMA_VERSION:
            raise CheckpointCorruptError(
                str(self.checkpoint_path),
                f"unsupported schema version {checkpoint.schema_version}",
            )
        return checkpoint

    def validate(self, checkpoint: Checkpoint) -> None:
        """Check that a checkpoint belongs to this scan.

        Raises:
            CheckpointMismatchError: If root or destination differ.
        """
        if checkpoint.source_root != str(self.source_root):
            raise CheckpointMismatchError("source_root", str(self.source_root), checkpoint.source_root)
        if checkpoint.destination != self.destination:
            raise CheckpointMismatchError("destination", self.destination, checkpoint.destination)

    def load(self) -> Checkpoint | None:
        """Return an applicable checkpoint, or None to start cold.

        Corrupt and mismatched checkpoints are never fatal; the reason is
        logged and kept in ``rejection``.
        """
        self.rejection = None
        if not self.checkpoint_path.exists():
            return None
        try:
            checkpoint = self.read()
            self.validate(checkpoint)
        except CheckpointCorruptError as e:
            self.rejection = str(e)
            logger.warning("Ignoring unreadable checkpoint: %s", e)
            return None
        except CheckpointMismatchError as e:
            self.rejection = str(e)
            logger.warning("Ignoring checkpoint for a different scan: %s", e)
            return None
        logger.debug(
            "Loaded checkpoint %s (%d items processed)",
            self.checkpoint_path,
            checkpoint.items_processed,
        )
        return checkpoint

    def enumeration_log_trusted(self, checkpoint: Checkpoint, log_path: Path | None) -> bool:
        """Whether the checkpoint's enumeration log can still back its cursor.

        A log recorded as complete must be byte-for-byte unchanged (same size
        and modification time). A log recorded as incomplete must still hold
        at least the bytes the cursor points into; its tail is rebuilt.
        """
        record = checkpoint.enumeration_log
        if record is None:
            return log_path is None
        if log_path is None or record.path != str(log_path):
            return False

        current = LogIdentity.of(log_path)
        if current is None or record.identity is None:
            return False
        if record.complete:
            return current == record.identity
        if current.size < record.identity.size:
            return False
        if current.size == record.identity.size and current.mtime_ns != record.identity.mtime_ns:
            return False
        cursor_log = checkpoint.cursor.log
        return cursor_log is None or cursor_log.offset <= current.size

    def issue_log_intact(self, checkpoint: Checkpoint) -> bool:
        """Whether the issue log still holds every issue the checkpoint counted."""
        try:
            size = self.issue_log_path.stat().st_size
        except OSError:
            return checkpoint.issue_log.offset == 0
        return size >= checkpoint.issue_log.offset

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def begin(self) -> None:
        self.state = CheckpointState.ACTIVE

    def ensure_state_dir(self) -> None:
        """Create the state directory.

        Raises:
            OSError: If it cannot be created.
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def save(self, checkpoint: Checkpoint) -> bool:
        """Atomically replace the checkpoint file.

        A failed write is logged and reported as False; the scan carries on
        without durability for that interval.
        """
        try:
            content = json.dumps(checkpoint.to_dict()) + "\n"
            self.state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.state_dir,
                prefix=".checkpoint_",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.checkpoint_path)
            except Exception:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except (OSError, ValueError) as e:
            logger.warning("Checkpoint write to %s failed: %s", self.checkpoint_path, e)
            return False

        self.state = CheckpointState.CHECKPOINTED
        logger.debug(
            "Checkpoint written at %d items to %s",
            checkpoint.items_processed,
            self.checkpoint_path,
        )
        return True

    def complete(self, *, remove_enumeration_log: bool = False) -> None:
        """Delete the checkpoint after a successful scan.

        The issue log stays: it backs the finished result's issue stream.
        """
        removed = [self.checkpoint_path]
        if remove_enumeration_log:
            removed.append(self.enumeration_log_path)
        for path in removed:
            path.unlink(missing_ok=True)
        self.state = CheckpointState.COMPLETED

    def abandon(self) -> None:
        """Leave the checkpoint and its artifacts in place for a later resume."""
        self.state = CheckpointState.ABANDONED

    def discard(self) -> list[Path]:
        """Delete the checkpoint and every artifact; return what was removed."""
        removed: list[Path] = []
        for path in (self.checkpoint_path, self.issue_log_path, self.enumeration_log_path):
            if path.exists():
                path.unlink()
                removed.append(path)
        self.state = CheckpointState.IDLE
        return removed
