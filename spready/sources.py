"""Item sources: deterministic, resumable enumeration of a subtree.

Three sources share the ItemSource protocol:

- DirectoryWalker walks the file system live. Entries are visited in sorted
  depth-first pre-order, so the order is stable across runs over an unchanged
  tree and the cursor (the path components of the last item yielded) can be
  used to resume: everything that sorts at or before the cursor is skipped,
  whole subtrees included, without being re-listed.
- LoggedWalkSource wraps a walker and records every item to an
  EnumerationLog while enumerating (log production).
- ReplaySource reads a finished EnumerationLog from a saved position.

Access-denied and transient I/O failures on single entries are recorded as
EnumerationError values and never stop enumeration. Only a failure to list
the scan root itself is fatal.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import os
import stat
from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Protocol, runtime_checkable

from spready.constants import CHECKPOINT_MAP_CAP
from spready.errors import EnumerationLogCorruptError, ScanRootAccessError
from spready.issue_store import LogPosition
from spready.models import EnumerationError, Item, ItemAttributes

logger = logging.getLogger(__name__)

# Errors beyond this are counted but not kept
MAX_RECORDED_ERRORS = 10_000

COMPLETE_MARKER_KEY = "complete"


# =============================================================================
# Cursors and identities
# =============================================================================


@dataclass(frozen=True)
class SourceCursor:
    """Resumable enumeration position.

    Attributes:
        walk: Path components of the last item yielded by a live walk.
        log: Position in the enumeration log just after the last item consumed.
    """

    walk: tuple[str, ...] | None = None
    log: LogPosition | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "walk": list(self.walk) if self.walk is not None else None,
            "log": self.log.to_dict() if self.log is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SourceCursor:
        if not data:
            return cls()
        walk = data.get("walk")
        return cls(
            walk=tuple(walk) if walk is not None else None,
            log=LogPosition.from_dict(data.get("log")),
        )


@dataclass(frozen=True)
class LogIdentity:
    """Size and modification time used to recognise an unchanged log."""

    size: int
    mtime_ns: int

    def to_dict(self) -> dict[str, int]:
        return {"size": self.size, "mtime_ns": self.mtime_ns}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> LogIdentity | None:
        if not data or "size" not in data or "mtime_ns" not in data:
            return None
        return cls(size=int(data["size"]), mtime_ns=int(data["mtime_ns"]))

    @classmethod
    def of(cls, path: Path) -> LogIdentity | None:
        try:
            st = path.stat()
        except OSError:
            return None
        return cls(size=st.st_size, mtime_ns=st.st_mtime_ns)


@runtime_checkable
class ItemSource(Protocol):
    """Ordered, resumable sequence of items under one root."""

    errors: list[EnumerationError]
    error_count: int

    def next(self) -> Item | None:
        """Return the next item, or None at end of sequence."""
        ...

    def cursor(self) -> SourceCursor:
        """Position after the last item returned by next()."""
        ...

    def close(self) -> None: ...


# =============================================================================
# Helpers
# =============================================================================


def _is_excluded(name: str, patterns: Iterable[str]) -> bool:
    lowered = name.lower()
    return any(fnmatch.fnmatchcase(lowered, p.lower()) for p in patterns)


def _attributes(entry: os.DirEntry[str], st: os.stat_result) -> ItemAttributes:
    flags = getattr(st, "st_file_attributes", 0)
    return ItemAttributes(
        hidden=entry.name.startswith(".") or bool(flags & stat.FILE_ATTRIBUTE_HIDDEN),
        system=bool(flags & stat.FILE_ATTRIBUTE_SYSTEM),
        reparse=entry.is_symlink() or bool(flags & stat.FILE_ATTRIBUTE_REPARSE_POINT),
    )


def _inside_root(item: Item, root: str) -> bool:
    """False for the root itself or anything outside it."""
    if not item.relative_path or item.relative_path in (".", ".."):
        return False
    if item.relative_path.startswith("../") or item.relative_path.startswith("/"):
        return False
    return os.path.normcase(item.path).startswith(os.path.normcase(root.rstrip(os.sep) + os.sep))


class _ErrorRecorder:
    """Bounded list of enumeration errors plus a total count."""

    def __init__(self) -> None:
        self.errors: list[EnumerationError] = []
        self.error_count = 0

    def _record(self, path: str, exc: OSError) -> None:
        self.error_count += 1
        message = exc.strerror or str(exc)
        logger.warning("Skipping %s: %s", path, message)
        if len(self.errors) < MAX_RECORDED_ERRORS:
            self.errors.append(EnumerationError(path=path, message=message))


# =============================================================================
# Live walk
# =============================================================================


class DirectoryWalker(_ErrorRecorder):
    """Sorted depth-first walk of a directory tree."""

    def __init__(
        self,
        root: Path,
        *,
        exclude_folders: Iterable[str] = (),
        resume_after: tuple[str, ...] | None = None,
        processed_dirs: Iterable[str] = (),
    ) -> None:
        super().__init__()
        self.root = root
        self.exclude_folders = tuple(exclude_folders)
        self._resume_after = resume_after
        self._last: tuple[str, ...] | None = resume_after
        self._processed = frozenset(processed_dirs)
        self.completed_dirs: deque[str] = deque(self._processed, maxlen=CHECKPOINT_MAP_CAP)
        self._iterator: Iterator[Item] | None = None

    def next(self) -> Item | None:
        if self._iterator is None:
            self._iterator = self._walk()
        item = next(self._iterator, None)
        if item is not None:
            self._last = tuple(item.relative_path.split("/"))
        return item

    def cursor(self) -> SourceCursor:
        return SourceCursor(walk=self._last)

    def close(self) -> None:
        self._iterator = None

    def _list(self, path: str, is_root: bool) -> list[os.DirEntry[str]]:
        try:
            with os.scandir(path) as it:
                return sorted(it, key=lambda e: e.name)
        except OSError as e:
            if is_root:
                raise ScanRootAccessError(path, e.strerror or str(e)) from e
            self._record(path, e)
            return []

    def _already_done(self, parts: tuple[str, ...]) -> tuple[bool, bool]:
        """(skip_item, skip_subtree) for an entry relative to the resume cursor."""
        cursor = self._resume_after
        if cursor is None:
            return False, False
        if cursor[: len(parts)] == parts:
            # Ancestor of (or equal to) the cursor: yielded before, children may not be
            return True, False
        if parts < cursor:
            return True, True
        self._resume_after = None
        return False, False

    def _walk(self) -> Iterator[Item]:
        root = str(self.root)
        stack: list[tuple[tuple[str, ...], Iterator[os.DirEntry[str]]]] = [
            ((), iter(self._list(root, is_root=True)))
        ]
        while stack:
            prefix, entries = stack[-1]
            entry = next(entries, None)
            if entry is None:
                stack.pop()
                if prefix:
                    self.completed_dirs.append("/".join(prefix))
                continue

            parts = prefix + (entry.name,)
            relative = "/".join(parts)
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError as e:
                self._record(entry.path, e)
                continue

            if is_dir and _is_excluded(entry.name, self.exclude_folders):
                logger.debug("Excluded folder %s", relative)
                continue

            skip_item, skip_subtree = self._already_done(parts)
            if skip_subtree or (is_dir and relative in self._processed):
                continue

            if not skip_item:
                try:
                    st = entry.stat(follow_symlinks=False)
                except OSError as e:
                    self._record(entry.path, e)
                    continue
                yield Item(
                    path=entry.path,
                    relative_path=relative,
                    name=entry.name,
                    is_dir=is_dir,
                    size=0 if is_dir else st.st_size,
                    attributes=_attributes(entry, st),
                )

            if is_dir:
                stack.append((parts, iter(self._list(entry.path, is_root=False))))


# =============================================================================
# Enumeration log
# =============================================================================


class EnumerationLog:
    """Line-delimited JSON log of enumerated items.

    A complete log ends with ``{"complete": true, "count": N}``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: BinaryIO | None = None
        self._lines = 0
        self._offset = 0

    def identity(self) -> LogIdentity | None:
        return LogIdentity.of(self.path)

    def is_complete(self) -> bool:
        """True if the last line is the completion marker."""
        try:
            with self.path.open("rb") as f:
                f.seek(0, os.SEEK_END)
                size = f.tell()
                f.seek(max(0, size - 256))
                tail = f.read()
        except OSError:
            return False
        if not tail.endswith(b"\n"):
            return False
        last = tail.rstrip(b"\n").rsplit(b"\n", 1)[-1]
        try:
            data = json.loads(last)
        except ValueError:
            return False
        return isinstance(data, dict) and data.get(COMPLETE_MARKER_KEY) is True

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def open_for_append(self, resume_at: LogPosition | None = None) -> None:
        """Start (or continue from ``resume_at``) producing the log.

        Anything after ``resume_at`` is an untrusted tail and is cut off.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if resume_at is not None and self.path.exists():
            handle = self.path.open("r+b")
            handle.truncate(resume_at.offset)
            handle.seek(resume_at.offset)
            self._lines, self._offset = resume_at.lines, resume_at.offset
        else:
            handle = self.path.open("wb")
            self._lines, self._offset = 0, 0
        self._handle = handle

    @property
    def position(self) -> LogPosition:
        return LogPosition(self._lines, self._offset)

    def append(self, item: Item) -> LogPosition:
        self._write(item.to_dict())
        return self.position

    def mark_complete(self) -> None:
        self._write({COMPLETE_MARKER_KEY: True, "count": self._lines})
        self.sync()

    def _write(self, data: dict[str, Any]) -> None:
        if self._handle is None:
            raise RuntimeError(f"Enumeration log {self.path} is not open for writing")
        line = (json.dumps(data) + "\n").encode("utf-8")
        self._handle.write(line)
        self._lines += 1
        self._offset += len(line)

    def sync(self) -> None:
        if self._handle is not None:
            self._handle.flush()
            os.fsync(self._handle.fileno())

    def close(self) -> None:
        if self._handle is not None:
            self._handle.flush()
            self._handle.close()
            self._handle = None

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read(self, start: LogPosition | None = None) -> Iterator[tuple[Item, LogPosition]]:
        """Yield (item, position after it) from ``start`` to the marker.

        Raises:
            EnumerationLogCorruptError: If a complete line cannot be decoded.
        """
        position = start or LogPosition()
        with self.path.open("rb") as f:
            f.seek(position.offset)
            lines, offset = position.lines, position.offset
            for raw in f:
                if not raw.endswith(b"\n"):
                    logger.warning("Enumeration log %s ends with a partial line", self.path)
                    return
                lines += 1
                offset += len(raw)
                try:
                    data = json.loads(raw)
                    if data.get(COMPLETE_MARKER_KEY) is True:
                        return
                    item = Item.from_dict(data)
                except (ValueError, KeyError, AttributeError) as e:
                    raise EnumerationLogCorruptError(str(self.path), lines, str(e)) from e
                yield item, LogPosition(lines, offset)


@dataclass
class LogBuildResult:
    """Summary of a standalone enumeration pass."""

    path: Path
    items: int = 0
    errors: list[EnumerationError] = field(default_factory=list)


class LoggedWalkSource:
    """Live walk that records every yielded item to an enumeration log."""

    def __init__(
        self,
        walker: DirectoryWalker,
        log: EnumerationLog,
        resume_at: LogPosition | None = None,
    ) -> None:
        self.walker = walker
        self.log = log
        self.log.open_for_append(resume_at)
        self._position = self.log.position
        self._done = False

    @property
    def errors(self) -> list[EnumerationError]:
        return self.walker.errors

    @property
    def error_count(self) -> int:
        return self.walker.error_count

    @property
    def completed_dirs(self) -> deque[str]:
        return self.walker.completed_dirs

    def next(self) -> Item | None:
        if self._done:
            return None
        item = self.walker.next()
        if item is None:
            self.log.mark_complete()
            self._done = True
            return None
        self._position = self.log.append(item)
        return item

    def cursor(self) -> SourceCursor:
        return SourceCursor(walk=self.walker.cursor().walk, log=self._position)

    def sync(self) -> None:
        self.log.sync()

    def close(self) -> None:
        self.walker.close()
        self.log.close()


class ReplaySource(_ErrorRecorder):
    """Items read back from a complete enumeration log."""

    def __init__(
        self,
        root: Path,
        log: EnumerationLog,
        start: LogPosition | None = None,
        *,
        exclude_folders: Iterable[str] = (),
    ) -> None:
        super().__init__()
        self.root = str(root)
        self.log = log
        self.exclude_folders = tuple(exclude_folders)
        self._position = start or LogPosition()
        self._iterator: Iterator[tuple[Item, LogPosition]] | None = None

    def _excluded(self, item: Item) -> bool:
        parts = item.relative_path.split("/")
        folders = parts if item.is_dir else parts[:-1]
        return any(_is_excluded(part, self.exclude_folders) for part in folders)

    def next(self) -> Item | None:
        if self._iterator is None:
            self._iterator = self.log.read(self._position)
        for item, position in self._iterator:
            self._position = position
            if not _inside_root(item, self.root):
                logger.debug("Skipping logged item outside the scan root: %s", item.path)
                continue
            if self.exclude_folders and self._excluded(item):
                continue
            return item
        return None

    def cursor(self) -> SourceCursor:
        return SourceCursor(log=self._position)

    def close(self) -> None:
        self._iterator = None


def build_enumeration_log(
    root: Path,
    log_path: Path,
    *,
    exclude_folders: Iterable[str] = (),
) -> LogBuildResult:
    """Enumerate ``root`` into a complete log without validating anything."""
    walker = DirectoryWalker(root, exclude_folders=exclude_folders)
    source = LoggedWalkSource(walker, EnumerationLog(log_path))
    result = LogBuildResult(path=log_path)
    try:
        while source.next() is not None:
            result.items += 1
    finally:
        source.close()
    result.errors = list(walker.errors)
    logger.debug("Enumerated %d items into %s", result.items, log_path)
    return result
