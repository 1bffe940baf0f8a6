"""spready CLI - check a directory tree before migrating it to SharePoint.

The CLI is a thin wrapper around the engine (see engine.py). All scanning
logic lives in the library; the CLI resolves options, wires Ctrl+C to
cancellation and renders the result.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NoReturn

import click

from spready.checkpoint import CheckpointManager
from spready.config import ALL_CHECKS, build_options
from spready.constants import STATE_DIRNAME
from spready.engine import scan_directory
from spready.errors import SpreadyError
from spready.json_output import ErrorDetail, OutputEnvelope, error_envelope, success_envelope
from spready.output import detail, error, info, print_summary, success, warn
from spready.sources import build_enumeration_log


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def output_json_envelope(envelope: OutputEnvelope) -> None:
    click.echo(envelope.to_json())


def _fail(command: str, exc: BaseException, use_json: bool) -> NoReturn:
    """Report a fatal error and exit with status 1."""
    if use_json:
        output_json_envelope(error_envelope(command, [ErrorDetail.from_exception(exc)]))
    else:
        error(exc.message if isinstance(exc, SpreadyError) else str(exc))
    raise SystemExit(1)


@contextmanager
def _cancel_on_interrupt() -> Iterator[threading.Event]:
    """Turn SIGINT into a cancellation request while the block runs.

    A second Ctrl+C falls back to the default handler and aborts.
    """
    event = threading.Event()
    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum: int, frame: Any) -> None:
        if event.is_set():
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not the main thread (e.g. inside a test runner thread)
        yield event
        return
    try:
        yield event
    finally:
        signal.signal(signal.SIGINT, previous)


def _none_if_empty(values: tuple[str, ...]) -> tuple[str, ...] | None:
    return values or None


@click.group()
@click.version_option(package_name="spready")
def cli() -> None:
    """spready - find what will break before a file share moves to SharePoint."""


@cli.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--destination", "-d", default=None, help="Destination library URL.")
@click.option(
    "--prefix-length",
    "destination_prefix_length",
    type=click.IntRange(min=0),
    default=None,
    help="Destination prefix length (overrides the length derived from --destination).",
)
@click.option("--resume", is_flag=True, default=None, help="Continue from the last checkpoint.")
@click.option(
    "--checkpoint-interval",
    type=click.IntRange(min=1),
    default=None,
    help="Items processed between checkpoints (default: 500).",
)
@click.option(
    "--max-issues",
    "max_issues_in_memory",
    type=click.IntRange(min=0),
    default=None,
    help="Issues kept in memory; the rest are only in the issue log (default: 100000).",
)
@click.option(
    "--warning-threshold",
    "path_warning_threshold_percent",
    type=click.IntRange(1, 100),
    default=None,
    help="Path length (as %% of the limit) at which to start warning (default: 80).",
)
@click.option(
    "--exclude",
    "exclude_folders",
    multiple=True,
    help="Folder name (glob) to skip; repeatable. Replaces the default list.",
)
@click.option(
    "--disable-check",
    "disabled_checks",
    multiple=True,
    type=click.Choice(sorted(ALL_CHECKS)),
    help="Check to turn off; repeatable.",
)
@click.option("--max-items", type=click.IntRange(min=0), default=None, help="Stop after N items.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Validation threads.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Stop (and checkpoint) after this many seconds.",
)
@click.option(
    "--state-dir",
    type=click.Path(path_type=Path),
    default=Path(STATE_DIRNAME),
    show_default=True,
    help="Directory for checkpoint, issue log and config.yaml.",
)
@click.option(
    "--enumeration-log",
    type=click.Path(path_type=Path),
    default=None,
    help="Enumeration log to replay, or to write while walking if incomplete.",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def scan(
    path: Path,
    destination: str | None,
    destination_prefix_length: int | None,
    resume: bool | None,
    checkpoint_interval: int | None,
    max_issues_in_memory: int | None,
    path_warning_threshold_percent: int | None,
    exclude_folders: tuple[str, ...],
    disabled_checks: tuple[str, ...],
    max_items: int | None,
    workers: int | None,
    timeout: float | None,
    state_dir: Path,
    enumeration_log: Path | None,
    json_output: bool,
    verbose: bool,
) -> None:
    """Scan PATH for items SharePoint will reject or mangle.

    Press Ctrl+C once to stop cleanly: the current batch finishes, a
    checkpoint is written and a partial report is shown. Run again with
    --resume to continue.

    Examples:

        spready scan /mnt/share -d https://contoso.sharepoint.com/sites/hr/Shared%20Documents

        spready scan /mnt/share --resume --json
    """
    _configure_logging(verbose)

    cli_values: dict[str, Any] = {
        "destination": destination,
        "destination_prefix_length": destination_prefix_length,
        "resume": resume or None,
        "checkpoint_interval": checkpoint_interval,
        "max_issues_in_memory": max_issues_in_memory,
        "path_warning_threshold_percent": path_warning_threshold_percent,
        "exclude_folders": _none_if_empty(exclude_folders),
        "disabled_checks": _none_if_empty(disabled_checks),
        "max_items": max_items,
        "workers": workers,
        "timeout": timeout,
        "enumeration_log": enumeration_log,
    }
    try:
        options = build_options(cli_values, state_dir=state_dir)
    except (SpreadyError, ValueError) as err:
        _fail("scan", err, json_output)

    if not json_output:
        info(f"Scanning {path}")
    try:
        with _cancel_on_interrupt() as cancel_event:
            result = scan_directory(path, options, cancel_event=cancel_event)
    except SpreadyError as err:
        _fail("scan", err, json_output)

    if json_output:
        data = result.to_dict()
        data["issues"] = [issue.to_dict() for issue in result.iter_issues()]
        output_json_envelope(success_envelope("scan", data))
        return

    print_summary(result)


@cli.command("enumerate")
@click.argument("path", type=click.Path(path_type=Path))
@click.option(
    "--log",
    "log_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Where to write the log (default: inside --state-dir).",
)
@click.option(
    "--exclude",
    "exclude_folders",
    multiple=True,
    help="Folder name (glob) to skip; repeatable.",
)
@click.option(
    "--state-dir",
    type=click.Path(path_type=Path),
    default=Path(STATE_DIRNAME),
    show_default=True,
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def enumerate_command(
    path: Path,
    log_path: Path | None,
    exclude_folders: tuple[str, ...],
    state_dir: Path,
    json_output: bool,
    verbose: bool,
) -> None:
    """Record every item under PATH into an enumeration log.

    A later `spready scan --enumeration-log FILE` replays the log instead of
    walking the tree again.
    """
    _configure_logging(verbose)
    try:
        options = build_options(
            {"exclude_folders": _none_if_empty(exclude_folders)}, state_dir=state_dir
        )
    except (SpreadyError, ValueError) as err:
        _fail("enumerate", err, json_output)

    if not path.is_dir():
        _fail("enumerate", NotADirectoryError(f"Not a directory: {path}"), json_output)

    root = Path(os.path.abspath(path))
    target = log_path or CheckpointManager(state_dir, root, "").enumeration_log_path
    try:
        built = build_enumeration_log(root, target, exclude_folders=options.exclude_folders)
    except (SpreadyError, OSError) as err:
        _fail("enumerate", err, json_output)

    if json_output:
        output_json_envelope(
            success_envelope(
                "enumerate",
                {
                    "log": str(built.path),
                    "items": built.items,
                    "errors": [e.to_dict() for e in built.errors],
                },
            )
        )
        return

    success(f"Recorded {built.items:,} items to {built.path}")
    if built.errors:
        warn(f"{len(built.errors):,} items could not be read")


@cli.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option(
    "--state-dir",
    type=click.Path(path_type=Path),
    default=Path(STATE_DIRNAME),
    show_default=True,
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
def clean(path: Path, state_dir: Path, json_output: bool) -> None:
    """Delete the checkpoint and logs left behind by a scan of PATH."""
    manager = CheckpointManager(state_dir, Path(os.path.abspath(path)), "")
    try:
        removed = manager.discard()
    except OSError as err:
        _fail("clean", err, json_output)

    if json_output:
        output_json_envelope(success_envelope("clean", {"removed": [str(p) for p in removed]}))
        return

    if not removed:
        info("Nothing to clean")
        return
    for removed_path in removed:
        detail(str(removed_path))
    success(f"Removed {len(removed)} file(s)")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
