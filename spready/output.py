"""Terminal output for the CLI.

User-facing messages go through these helpers so that every command shares
the same prefixes and colors. Diagnostics for developers go through
``logging`` instead.

Usage:
    from spready.output import success, info, warn, error, detail

    success("Scan complete: 12,408 items")
    warn("3 items could not be read")
    error("Scan root does not exist: /mnt/share")
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TextIO

import click

from spready.models import Issue, ScanResult, Severity, format_size

# (symbol, color) per message kind
_KINDS: dict[str, tuple[str, str]] = {
    "success": ("✓", "green"),
    "info": ("→", "blue"),
    "warn": ("⚠", "yellow"),
    "error": ("✗", "red"),
    "detail": (" ", "bright_black"),
}

_SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


def _emit(kind: str, message: str, file: TextIO | None, nl: bool) -> None:
    symbol, color = _KINDS[kind]
    line = f"{click.style(symbol, fg=color)} {click.style(message, fg=color)}"
    click.echo(line, file=file, nl=nl, err=file is None and kind == "error")


def success(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Print a green confirmation line."""
    _emit("success", message, file, nl)


def info(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    _emit("info", message, file, nl)


def warn(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    _emit("warn", message, file, nl)


def error(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Print a red error line (to stderr unless ``file`` is given)."""
    _emit("error", message, file, nl)


def detail(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Print a dimmed, indented supporting line."""
    _emit("detail", message, file, nl)


def print_issues(issues: Iterable[Issue], *, limit: int | None = None) -> int:
    """Print issues one per line; returns how many were printed."""
    printed = 0
    for issue in issues:
        if limit is not None and printed >= limit:
            break
        color = _SEVERITY_COLORS[issue.severity]
        label = click.style(f"[{issue.severity.value}]", fg=color, bold=True)
        click.echo(f"  {label} {issue.relative_path}: {issue.description}")
        if issue.suggestion:
            detail(f"    {issue.suggestion}")
        printed += 1
    return printed


def print_summary(result: ScanResult, *, issue_limit: int | None = 20) -> None:
    """Print the human-readable report for a finished or partial scan."""
    if result.cancelled:
        warn(f"Scan interrupted after {result.total_items:,} items; resume with --resume")
    elif result.item_limit_reached:
        warn(f"Stopped at the item limit ({result.total_items:,} items)")
    else:
        success(f"Scanned {result.total_items:,} items in {result.duration.total_seconds():.1f}s")

    detail(
        f"{result.total_files:,} files, {result.total_folders:,} folders, "
        f"{format_size(result.total_bytes)}"
    )
    if result.resumed:
        detail("Resumed from checkpoint")

    if result.total_issues == 0:
        success("No compatibility issues found")
    else:
        counts = ", ".join(
            f"{result.by_severity.get(s.value, 0):,} {s.value.lower()}" for s in Severity
        )
        info(f"{result.total_issues:,} issues ({counts})")
        shown = print_issues(result.iter_issues(), limit=issue_limit)
        if shown < result.total_issues:
            detail(f"... {result.total_issues - shown:,} more in {result.issue_log_path}")

    if result.name_conflicts_disabled:
        warn("Name-conflict detection was turned off because memory ran low")

    if result.largest_folders:
        info("Largest folders:")
        for folder in result.largest_folders[:5]:
            detail(f"{format_size(folder.size):>10}  {folder.relative_path or '.'}")

    if result.enumeration_error_count:
        warn(f"{result.enumeration_error_count:,} items could not be read")
        for enum_error in result.enumeration_errors[:5]:
            detail(f"{enum_error.path}: {enum_error.message}")
