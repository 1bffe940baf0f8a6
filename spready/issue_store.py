"""Issue storage: a durable append-only log plus a capped in-memory buffer.

Every issue is written to the IssueLog (one JSON object per line) before the
emit call returns. The IssueStore keeps the first ``cap`` issues in memory;
once the cap is hit the store is flagged truncated for the rest of the scan
and report renderers must stream the log instead.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from spready.models import Issue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogPosition:
    """Number of complete lines and the byte offset just after them."""

    lines: int = 0
    offset: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"lines": self.lines, "offset": self.offset}

    @classmethod
    def from_dict(cls, data: dict[str, int] | None) -> LogPosition | None:
        if not data:
            return None
        return cls(lines=int(data.get("lines", 0)), offset=int(data.get("offset", 0)))


class IssueLog:
    """Append-only, line-delimited record of every issue produced."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._handle = None
        self._lines = 0
        self._offset = 0

    def open(self, resume_at: LogPosition | None = None) -> None:
        """Open for appending.

        With ``resume_at`` the existing log is truncated back to that position,
        discarding issues written after the last checkpoint (their items will
        be validated again). Otherwise any previous log is replaced.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if resume_at is not None and self.path.exists():
            handle = self.path.open("r+b")
            handle.truncate(resume_at.offset)
            handle.seek(resume_at.offset)
            self._lines = resume_at.lines
            self._offset = resume_at.offset
        else:
            handle = self.path.open("wb")
            self._lines = 0
            self._offset = 0
        self._handle = handle
        logger.debug("Opened issue log %s at line %d", self.path, self._lines)

    @property
    def position(self) -> LogPosition:
        with self._lock:
            return LogPosition(self._lines, self._offset)

    @property
    def count(self) -> int:
        return self._lines

    def append(self, issue: Issue) -> None:
        """Write one issue and flush it before returning."""
        data = (json.dumps(issue.to_dict()) + "\n").encode("utf-8")
        with self._lock:
            if self._handle is None:
                raise RuntimeError(f"Issue log {self.path} is not open")
            self._handle.write(data)
            self._handle.flush()
            self._lines += 1
            self._offset += len(data)

    def sync(self) -> None:
        """Force written issues to stable storage."""
        with self._lock:
            if self._handle is not None:
                self._handle.flush()
                os.fsync(self._handle.fileno())

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.flush()
                self._handle.close()
                self._handle = None

    @staticmethod
    def read(path: Path, limit: int | None = None) -> Iterator[Issue]:
        """Stream issues from a log file.

        A partially written final line (crash mid-write) ends the stream.
        """
        if limit == 0 or not path.exists():
            return
        yielded = 0
        with path.open("r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    issue = Issue.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.warning("Stopping at malformed issue log line %d: %s", line_number, e)
                    return
                yield issue
                yielded += 1
                if limit is not None and yielded >= limit:
                    return


class IssueStore:
    """Capped in-memory issue buffer mirrored to an IssueLog."""

    def __init__(self, log: IssueLog, cap: int) -> None:
        self.log = log
        self.cap = cap
        self._lock = threading.Lock()
        self._issues: list[Issue] = []
        self._truncated = False

    @property
    def truncated(self) -> bool:
        """True once any issue was kept only in the log. Never clears."""
        return self._truncated

    @property
    def issues(self) -> list[Issue]:
        with self._lock:
            return list(self._issues)

    def __len__(self) -> int:
        return len(self._issues)

    def emit(self, issues: Iterable[Issue]) -> None:
        """Record issues durably, keeping them in memory while under the cap."""
        with self._lock:
            for issue in issues:
                self.log.append(issue)
                if len(self._issues) < self.cap:
                    self._issues.append(issue)
                elif not self._truncated:
                    self._truncated = True
                    logger.warning(
                        "In-memory issue cap of %d reached; remaining issues are kept only in %s",
                        self.cap,
                        self.log.path,
                    )

    def reload(self, truncated: bool) -> None:
        """Refill the buffer from the log after a resume."""
        with self._lock:
            self._issues = list(IssueLog.read(self.log.path, limit=min(self.cap, self.log.count)))
            self._truncated = truncated or self.log.count > self.cap
