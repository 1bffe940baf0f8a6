"""Bounded aggregation of scan totals.

AggregateState owns every scan-wide counter together with the largest-file
and largest-folder trackers and the name-collision index. Items must be
folded in enumeration order (sorted depth-first pre-order): that lets the
state keep only the *open* folders, i.e. the ancestor chain of the current
item, instead of a map of every folder ever seen.

Each structure is guarded by its own lock; every update is O(1) or
O(depth), so contention stays low even with many validator threads.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from collections import Counter, OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from spready.constants import CHECKPOINT_MAP_CAP, DEFAULT_FOLDER_SAMPLE_SIZE, DEFAULT_TOP_N
from spready.models import FileEntry, FolderSummary, Issue, Item

ROOT_KEY = ""


def is_within(path: str, folder: str) -> bool:
    """True if ``path`` is ``folder`` itself or lies beneath it."""
    return folder == ROOT_KEY or path == folder or path.startswith(folder + "/")


# =============================================================================
# Top-N tracker
# =============================================================================


class TopN:
    """Fixed-capacity tracker of the N largest values seen.

    A candidate is admitted only if strictly larger than the current minimum,
    which is then evicted; ties keep the earlier-seen entry.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 0:
            raise ValueError("capacity cannot be negative")
        self.capacity = capacity
        self._heap: list[tuple[int, int, str, Any]] = []
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def minimum(self) -> int | None:
        return self._heap[0][0] if self._heap else None

    def offer(self, size: int, key: str, payload: Any = None) -> bool:
        """Offer a candidate; returns True if it was admitted."""
        if self.capacity == 0:
            return False
        seq = next(self._seq)
        entry = (size, -seq, key, payload)
        if len(self._heap) < self.capacity:
            heapq.heappush(self._heap, entry)
            return True
        if size > self._heap[0][0]:
            heapq.heapreplace(self._heap, entry)
            return True
        return False

    def entries(self) -> list[tuple[int, str, Any]]:
        """(size, key, payload) sorted by size descending, earlier first on ties."""
        ordered = sorted(self._heap, key=lambda e: (-e[0], -e[1]))
        return [(size, key, payload) for size, _neg_seq, key, payload in ordered]

    def snapshot(self) -> list[list[Any]]:
        return [[size, -neg_seq, key, payload] for size, neg_seq, key, payload in self._heap]

    @classmethod
    def restore(cls, capacity: int, data: Iterable[list[Any]]) -> TopN:
        tracker = cls(capacity)
        max_seq = -1
        for size, seq, key, payload in data:
            tracker._heap.append((int(size), -int(seq), key, payload))
            max_seq = max(max_seq, int(seq))
        heapq.heapify(tracker._heap)
        while len(tracker._heap) > capacity:
            heapq.heappop(tracker._heap)
        tracker._seq = itertools.count(max_seq + 1)
        return tracker


# =============================================================================
# Name-collision index
# =============================================================================


class NameCollisionIndex:
    """Case-insensitive index of names keyed by (parent, lowercased name).

    Buckets are released as folders close, so the index only holds the
    children of folders on the current ancestor chain.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[str, dict[str, str]] = {}

    def __len__(self) -> int:
        with self._lock:
            return sum(len(b) for b in self._buckets.values())

    def register(self, parent: str, name: str, relative_path: str) -> str | None:
        """Record a name; return the first-seen path if it collides."""
        key = name.lower()
        with self._lock:
            bucket = self._buckets.setdefault(parent, {})
            first = bucket.get(key)
            if first is None:
                bucket[key] = relative_path
            return first

    def release(self, parent: str) -> None:
        with self._lock:
            self._buckets.pop(parent, None)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()

    def snapshot(self, cap: int = CHECKPOINT_MAP_CAP) -> dict[str, dict[str, str]]:
        """Copy of the index holding at most ``cap`` names, newest buckets kept."""
        with self._lock:
            kept: dict[str, dict[str, str]] = {}
            remaining = cap
            for parent in reversed(list(self._buckets)):
                if remaining <= 0:
                    break
                names = list(self._buckets[parent].items())[-remaining:]
                kept[parent] = dict(names)
                remaining -= len(names)
            return {parent: kept[parent] for parent in reversed(list(kept))}

    @classmethod
    def restore(cls, data: dict[str, dict[str, str]]) -> NameCollisionIndex:
        index = cls()
        index._buckets = {parent: dict(names) for parent, names in data.items()}
        return index


# =============================================================================
# Aggregate state
# =============================================================================


@dataclass
class OpenFolder:
    """Running totals for a folder whose subtree is still being enumerated."""

    size: int = 0
    file_count: int = 0
    sample: TopN = field(default_factory=lambda: TopN(DEFAULT_FOLDER_SAMPLE_SIZE))


class AggregateState:
    """Scan-wide counters and bounded trackers."""

    def __init__(
        self,
        *,
        top_n: int = DEFAULT_TOP_N,
        folder_sample_size: int = DEFAULT_FOLDER_SAMPLE_SIZE,
        collisions: NameCollisionIndex | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self.top_n = top_n
        self.folder_sample_size = folder_sample_size

        self.total_items = 0
        self.total_files = 0
        self.total_folders = 0
        self.total_bytes = 0
        self.total_issues = 0
        self.by_severity: Counter[str] = Counter()
        self.by_category: Counter[str] = Counter()
        self.by_type: Counter[str] = Counter()

        self.largest_files = TopN(top_n)
        self.largest_folders = TopN(top_n)
        self.open_folders: OrderedDict[str, OpenFolder] = OrderedDict()
        self.open_folders[ROOT_KEY] = self._new_folder()
        self.collisions = collisions if collisions is not None else NameCollisionIndex()

    def _new_folder(self) -> OpenFolder:
        return OpenFolder(sample=TopN(self.folder_sample_size))

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def add_item(self, item: Item) -> None:
        """Fold one item into the counters and folder totals."""
        with self._lock:
            self._close_folders_outside(item.parent)
            self.total_items += 1
            if item.is_dir:
                self.total_folders += 1
                self.open_folders[item.relative_path] = self._new_folder()
                return

            self.total_files += 1
            self.total_bytes += item.size
            self.largest_files.offer(item.size, item.relative_path)
            for folder in self.open_folders.values():
                folder.size += item.size
                folder.file_count += 1
                folder.sample.offer(item.size, item.relative_path)

    def add_issues(self, issues: Iterable[Issue]) -> None:
        """Count issues unconditionally (before any in-memory cap applies)."""
        with self._lock:
            for issue in issues:
                self.total_issues += 1
                self.by_severity[issue.severity.value] += 1
                self.by_category[issue.category] += 1
                self.by_type[issue.issue_type.value] += 1

    def _close_folders_outside(self, parent: str) -> None:
        while len(self.open_folders) > 1:
            key = next(reversed(self.open_folders))
            if is_within(parent, key):
                return
            folder = self.open_folders.pop(key)
            self._finalize_folder(key, folder)

    def _finalize_folder(self, key: str, folder: OpenFolder) -> None:
        self.collisions.release(key)
        # Every nested folder lies under a top-level one at least as large,
        # so only top-level folders can be maximal.
        if key == ROOT_KEY or "/" in key:
            return
        payload = {
            "file_count": folder.file_count,
            "sample": [[size, path] for size, path, _ in folder.sample.entries()],
        }
        self.largest_folders.offer(folder.size, key, payload)

    def finish(self) -> None:
        """Close every remaining folder once enumeration is exhausted."""
        with self._lock:
            while self.open_folders:
                key, folder = self.open_folders.popitem(last=True)
                self._finalize_folder(key, folder)
            self.open_folders[ROOT_KEY] = self._new_folder()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def largest_file_entries(self) -> list[FileEntry]:
        with self._lock:
            return [FileEntry(key, size) for size, key, _ in self.largest_files.entries()]

    def largest_folder_summaries(self) -> list[FolderSummary]:
        """Largest maximal folders, i.e. folders not nested in any other folder."""
        with self._lock:
            candidates = self.largest_folders.entries()
        return [
            FolderSummary(
                key,
                size,
                payload["file_count"],
                tuple(FileEntry(path, s) for s, path in payload["sample"]),
            )
            for size, key, payload in candidates
        ]

    # -------------------------------------------------------------------------
    # Checkpoint support
    # -------------------------------------------------------------------------

    def snapshot(self, map_cap: int = CHECKPOINT_MAP_CAP) -> dict[str, Any]:
        """Deep copy of the bounded state, taken under the lock.

        Open-folder entries beyond ``map_cap`` are dropped oldest first.
        """
        with self._lock:
            open_items = list(self.open_folders.items())[-map_cap:]
            return {
                "counters": {
                    "total_items": self.total_items,
                    "total_files": self.total_files,
                    "total_folders": self.total_folders,
                    "total_bytes": self.total_bytes,
                    "total_issues": self.total_issues,
                },
                "by_severity": dict(self.by_severity),
                "by_category": dict(self.by_category),
                "by_type": dict(self.by_type),
                "largest_files": self.largest_files.snapshot(),
                "largest_folders": self.largest_folders.snapshot(),
                "folder_sizes": {key: f.size for key, f in open_items},
                "folder_file_counts": {key: f.file_count for key, f in open_items},
                "folder_samples": {key: f.sample.snapshot() for key, f in open_items},
                "name_index": self.collisions.snapshot(map_cap),
            }

    @classmethod
    def restore(
        cls,
        data: dict[str, Any],
        *,
        top_n: int = DEFAULT_TOP_N,
        folder_sample_size: int = DEFAULT_FOLDER_SAMPLE_SIZE,
    ) -> AggregateState:
        """Rebuild state from a snapshot; missing fields fall back to empty."""
        state = cls(
            top_n=top_n,
            folder_sample_size=folder_sample_size,
            collisions=NameCollisionIndex.restore(data.get("name_index", {})),
        )
        counters = data.get("counters", {})
        state.total_items = int(counters.get("total_items", 0))
        state.total_files = int(counters.get("total_files", 0))
        state.total_folders = int(counters.get("total_folders", 0))
        state.total_bytes = int(counters.get("total_bytes", 0))
        state.total_issues = int(counters.get("total_issues", 0))
        state.by_severity = Counter(data.get("by_severity", {}))
        state.by_category = Counter(data.get("by_category", {}))
        state.by_type = Counter(data.get("by_type", {}))
        state.largest_files = TopN.restore(top_n, data.get("largest_files", []))
        state.largest_folders = TopN.restore(top_n, data.get("largest_folders", []))

        sizes = data.get("folder_sizes", {})
        counts = data.get("folder_file_counts", {})
        samples = data.get("folder_samples", {})
        if sizes:
            state.open_folders.clear()
            if ROOT_KEY not in sizes:
                state.open_folders[ROOT_KEY] = state._new_folder()
            for key, size in sizes.items():
                state.open_folders[key] = OpenFolder(
                    size=int(size),
                    file_count=int(counts.get(key, 0)),
                    sample=TopN.restore(folder_sample_size, samples.get(key, [])),
                )
        return state
