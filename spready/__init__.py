"""spready - resumable SharePoint migration readiness scanner."""

from spready.cli import cli
from spready.config import ScanOptions
from spready.engine import scan_directory
from spready.models import Issue, IssueType, ScanResult, Severity

__all__ = [
    "Issue",
    "IssueType",
    "ScanOptions",
    "ScanResult",
    "Severity",
    "cli",
    "scan_directory",
]
