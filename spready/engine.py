"""Scan engine: Item Source -> Rule Pipeline -> Aggregator + Issue Store.

Items are pulled from the source in batches of ``checkpoint_interval``.
The pure rules of each batch run on a thread pool; results come back in
enumeration order and are folded on the calling thread, which is the only
writer of the aggregate, the name-collision index and the issue store. A
checkpoint is written after every batch, when nothing is in flight, so the
recorded cursor, counters and issue log position always agree.

Usage:
    from spready.engine import scan_directory

    result = scan_directory(Path("/data/share"), ScanOptions(destination=url))
    if result.has_critical:
        ...
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path

from spready.aggregate import AggregateState
from spready.checkpoint import Checkpoint, CheckpointManager, EnumerationLogRecord
from spready.config import ScanOptions
from spready.errors import (
    EnumerationLogCorruptError,
    OutputDirectoryError,
    ScanRootAccessError,
    ScanRootNotADirectoryError,
    ScanRootNotFoundError,
)
from spready.issue_store import IssueLog, IssueStore
from spready.models import EnumerationError, Issue, Item, ScanResult
from spready.resources import is_memory_low
from spready.sources import (
    MAX_RECORDED_ERRORS,
    DirectoryWalker,
    EnumerationLog,
    ItemSource,
    LoggedWalkSource,
    LogIdentity,
    ReplaySource,
)
from spready.validation import RuleContext, RulePipeline

logger = logging.getLogger(__name__)


@dataclass
class _ScanContext:
    """Internal state for one scan invocation."""

    root: Path
    options: ScanOptions
    manager: CheckpointManager
    pipeline: RulePipeline
    aggregate: AggregateState
    issue_log: IssueLog
    store: IssueStore
    source: ItemSource
    enumeration_log: EnumerationLog | None = None
    resumed: bool = False
    prior_errors: list[EnumerationError] = field(default_factory=list)
    prior_error_count: int = 0

    @property
    def errors(self) -> list[EnumerationError]:
        return (self.prior_errors + self.source.errors)[:MAX_RECORDED_ERRORS]

    @property
    def error_count(self) -> int:
        return self.prior_error_count + self.source.error_count


# =============================================================================
# Setup
# =============================================================================


def _check_root(path: Path) -> Path:
    """Resolve the scan root, raising a fatal error if it is unusable."""
    if not path.exists():
        raise ScanRootNotFoundError(str(path))
    if not path.is_dir():
        raise ScanRootNotADirectoryError(str(path))
    root = Path(os.path.abspath(path))
    try:
        with os.scandir(root):
            pass
    except OSError as e:
        raise ScanRootAccessError(str(root), e.strerror or str(e)) from e
    return root


def _load_checkpoint(
    manager: CheckpointManager, options: ScanOptions, log_path: Path | None
) -> Checkpoint | None:
    if not options.resume:
        return None
    checkpoint = manager.load()
    if checkpoint is None:
        return None
    if not manager.enumeration_log_trusted(checkpoint, log_path):
        logger.warning("Enumeration log changed since the last checkpoint; starting a fresh scan")
        return None
    if not manager.issue_log_intact(checkpoint):
        logger.warning("Issue log is missing or shorter than checkpointed; starting a fresh scan")
        return None
    return checkpoint


def _open_source(
    root: Path,
    options: ScanOptions,
    checkpoint: Checkpoint | None,
) -> tuple[ItemSource, EnumerationLog | None]:
    """Pick the item source for this run.

    Without an enumeration log the tree is walked live. With one, a complete
    log is replayed; otherwise the walk produces it, continuing from the
    checkpoint and cutting off any tail written after it.
    """
    cursor = checkpoint.cursor if checkpoint else None
    walker = DirectoryWalker(
        root,
        exclude_folders=options.exclude_folders,
        resume_after=cursor.walk if cursor else None,
        processed_dirs=checkpoint.processed_dirs if checkpoint else (),
    )
    if options.enumeration_log is None:
        return walker, None

    log = EnumerationLog(options.enumeration_log)
    if checkpoint is not None and checkpoint.enumeration_log is not None:
        replay = checkpoint.enumeration_log.complete
    else:
        replay = log.is_complete()

    if replay:
        logger.debug("Replaying enumeration log %s", log.path)
        source: ItemSource = ReplaySource(
            root,
            log,
            cursor.log if cursor else None,
            exclude_folders=options.exclude_folders,
        )
        return source, log

    logger.debug("Writing enumeration log %s while walking", log.path)
    return LoggedWalkSource(walker, log, resume_at=cursor.log if cursor else None), log


def _build_context(root: Path, options: ScanOptions) -> _ScanContext:
    manager = CheckpointManager(options.state_dir, root, options.destination)
    try:
        manager.ensure_state_dir()
    except OSError as e:
        raise OutputDirectoryError(str(options.state_dir), e.strerror or str(e)) from e

    checkpoint = _load_checkpoint(manager, options, options.enumeration_log)

    pipeline = RulePipeline(
        RuleContext(
            prefix_length=options.prefix_length(),
            warning_percent=options.path_warning_threshold_percent,
        ),
        enabled_checks=options.enabled_checks,
    )
    if checkpoint is not None:
        aggregate = AggregateState.restore(
            checkpoint.aggregate,
            top_n=options.top_n,
            folder_sample_size=options.folder_sample_size,
        )
        if checkpoint.name_conflicts_disabled:
            pipeline.disable_conflicts()
    else:
        aggregate = AggregateState(top_n=options.top_n, folder_sample_size=options.folder_sample_size)

    issue_log = IssueLog(manager.issue_log_path)
    try:
        issue_log.open(resume_at=checkpoint.issue_log if checkpoint else None)
    except OSError as e:
        raise OutputDirectoryError(str(manager.issue_log_path), e.strerror or str(e)) from e
    store = IssueStore(issue_log, options.max_issues_in_memory)
    if checkpoint is not None:
        store.reload(checkpoint.issues_truncated)

    try:
        source, enumeration_log = _open_source(root, options, checkpoint)
    except OSError as e:
        issue_log.close()
        raise OutputDirectoryError(str(options.enumeration_log), e.strerror or str(e)) from e

    ctx = _ScanContext(
        root=root,
        options=options,
        manager=manager,
        pipeline=pipeline,
        aggregate=aggregate,
        issue_log=issue_log,
        store=store,
        source=source,
        enumeration_log=enumeration_log,
        resumed=checkpoint is not None,
    )
    if checkpoint is not None:
        ctx.prior_errors = [
            EnumerationError(path=e.get("path", ""), message=e.get("message", ""))
            for e in checkpoint.enumeration_errors
        ]
        ctx.prior_error_count = max(checkpoint.enumeration_error_count, len(ctx.prior_errors))
        logger.info("Resuming scan of %s after %d items", root, checkpoint.items_processed)
    return ctx


# =============================================================================
# Processing
# =============================================================================


def _should_stop(cancel_event: threading.Event | None, deadline: float | None) -> bool:
    if cancel_event is not None and cancel_event.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline


def _next_batch(
    source: ItemSource,
    size: int,
    cancel_event: threading.Event | None,
    deadline: float | None,
) -> tuple[list[Item], bool]:
    """Pull up to ``size`` items; the flag reports whether enumeration ended."""
    batch: list[Item] = []
    while len(batch) < size:
        if _should_stop(cancel_event, deadline):
            return batch, False
        item = source.next()
        if item is None:
            return batch, True
        batch.append(item)
    return batch, False


def _fold(ctx: _ScanContext, item: Item, issues: list[Issue]) -> None:
    """Apply one validated item to the shared state, in enumeration order."""
    ctx.aggregate.add_item(item)
    issues = ctx.pipeline.resolve_conflicts(item, issues, ctx.aggregate.collisions)
    if issues:
        ctx.aggregate.add_issues(issues)
        ctx.store.emit(issues)


def _check_memory(ctx: _ScanContext) -> None:
    if not ctx.pipeline.checks_conflicts:
        return
    if is_memory_low(ctx.options.low_memory_threshold_bytes):
        ctx.pipeline.disable_conflicts()
        ctx.aggregate.collisions.clear()
        logger.warning("Available memory is low; name-conflict detection disabled for this scan")


def _enumeration_log_record(ctx: _ScanContext) -> EnumerationLogRecord | None:
    log = ctx.enumeration_log
    if log is None:
        return None
    complete = isinstance(ctx.source, ReplaySource)
    if isinstance(ctx.source, LoggedWalkSource):
        ctx.source.sync()
    return EnumerationLogRecord(
        path=str(log.path),
        complete=complete,
        identity=LogIdentity.of(log.path),
    )


def _write_checkpoint(ctx: _ScanContext) -> bool:
    """Persist the state reached after the last folded item."""
    try:
        ctx.issue_log.sync()
        log_record = _enumeration_log_record(ctx)
    except OSError as e:
        logger.warning("Could not flush scan logs before checkpointing: %s", e)
        return False

    checkpoint = Checkpoint(
        source_root=str(ctx.root),
        destination=ctx.options.destination,
        cursor=ctx.source.cursor(),
        aggregate=ctx.aggregate.snapshot(),
        issue_log=ctx.issue_log.position,
        issues_truncated=ctx.store.truncated,
        processed_dirs=list(getattr(ctx.source, "completed_dirs", ())),
        enumeration_log=log_record,
        enumeration_errors=[e.to_dict() for e in ctx.errors],
        enumeration_error_count=ctx.error_count,
        name_conflicts_disabled=not ctx.pipeline.checks_conflicts
        and "name_conflicts" in ctx.options.enabled_checks,
    )
    return ctx.manager.save(checkpoint)


def _build_result(
    ctx: _ScanContext,
    started_at: datetime,
    *,
    cancelled: bool,
    limit_reached: bool,
) -> ScanResult:
    agg = ctx.aggregate
    return ScanResult(
        source_root=ctx.root,
        destination=ctx.options.destination,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
        total_items=agg.total_items,
        total_files=agg.total_files,
        total_folders=agg.total_folders,
        total_bytes=agg.total_bytes,
        issues=ctx.store.issues,
        issue_log_path=ctx.issue_log.path,
        issues_truncated=ctx.store.truncated,
        total_issues=agg.total_issues,
        by_severity=dict(agg.by_severity),
        by_category=dict(agg.by_category),
        by_type=dict(agg.by_type),
        largest_files=agg.largest_file_entries(),
        largest_folders=agg.largest_folder_summaries(),
        enumeration_errors=ctx.errors,
        enumeration_error_count=ctx.error_count,
        cancelled=cancelled,
        resumed=ctx.resumed,
        name_conflicts_disabled=not ctx.pipeline.checks_conflicts
        and "name_conflicts" in ctx.options.enabled_checks,
        item_limit_reached=limit_reached,
    )


# =============================================================================
# Entry point
# =============================================================================


def _run(ctx: _ScanContext, cancel_event: threading.Event | None) -> tuple[bool, bool]:
    """Process the whole source. Returns (cancelled, item_limit_reached)."""
    options = ctx.options
    deadline = time.monotonic() + options.timeout if options.timeout else None
    ctx.manager.begin()

    with ThreadPoolExecutor(max_workers=options.workers, thread_name_prefix="spready") as executor:
        while True:
            size = options.checkpoint_interval
            if options.max_items:
                remaining = options.max_items - ctx.aggregate.total_items
                if remaining <= 0:
                    logger.info("Item limit of %d reached", options.max_items)
                    return False, True
                size = min(size, remaining)

            batch, exhausted = _next_batch(ctx.source, size, cancel_event, deadline)
            if batch:
                # map() yields in submission order, so folding stays deterministic
                for item, issues in zip(batch, executor.map(ctx.pipeline.evaluate, batch)):
                    _fold(ctx, item, issues)
                _check_memory(ctx)

            if exhausted:
                return False, False
            _write_checkpoint(ctx)
            if _should_stop(cancel_event, deadline):
                logger.info("Scan cancelled after %d items", ctx.aggregate.total_items)
                return True, False


def scan_directory(
    path: Path,
    options: ScanOptions | None = None,
    cancel_event: threading.Event | None = None,
) -> ScanResult:
    """Scan a directory tree for destination compatibility issues.

    This is the primary entry point for the engine.

    Args:
        path: Directory to scan.
        options: Scan configuration. Defaults to ScanOptions().
        cancel_event: Set from another thread (or a signal handler) to stop
            the scan. In-flight items are finished, a final checkpoint is
            written and a partial result is returned.

    Returns:
        ScanResult for the whole tree, or a partial one when cancelled.

    Raises:
        ScanRootNotFoundError: If path does not exist.
        ScanRootNotADirectoryError: If path is not a directory.
        ScanRootAccessError: If the root cannot be listed.
        OutputDirectoryError: If the state directory or logs cannot be created.
    """
    if options is None:
        options = ScanOptions()

    root = _check_root(Path(path))
    started_at = datetime.now(timezone.utc)
    ctx = _build_context(root, options)

    try:
        try:
            cancelled, limit_reached = _run(ctx, cancel_event)
        except EnumerationLogCorruptError as e:
            if not ctx.resumed:
                raise
            logger.warning("%s; discarding checkpoint and starting a fresh scan", e)
            ctx.source.close()
            ctx.issue_log.close()
            ctx = _build_context(root, replace(options, resume=False))
            cancelled, limit_reached = _run(ctx, cancel_event)
    except ScanRootAccessError:
        logger.error("Cannot read scan root %s", root)
        raise
    finally:
        ctx.source.close()
        ctx.issue_log.close()

    if cancelled:
        ctx.manager.abandon()
    else:
        ctx.manager.complete(
            remove_enumeration_log=options.enumeration_log == ctx.manager.enumeration_log_path
        )
    ctx.aggregate.finish()
    result = _build_result(ctx, started_at, cancelled=cancelled, limit_reached=limit_reached)
    logger.debug(
        "Scan of %s finished: %d items, %d issues, cancelled=%s",
        root,
        result.total_items,
        result.total_issues,
        cancelled,
    )
    return result
