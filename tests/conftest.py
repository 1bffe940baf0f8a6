"""Shared pytest fixtures for spready tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from spready.config import ScanOptions
from spready.models import Item, ItemAttributes

# =============================================================================
# Item factories
# =============================================================================


def make_item(
    relative_path: str,
    *,
    is_dir: bool = False,
    size: int = 0,
    hidden: bool = False,
    system: bool = False,
    root: str = "/data",
) -> Item:
    """Build an Item without touching the file system."""
    return Item(
        path=f"{root}/{relative_path}",
        relative_path=relative_path,
        name=relative_path.rpartition("/")[2],
        is_dir=is_dir,
        size=size,
        attributes=ItemAttributes(hidden=hidden, system=system),
    )


@pytest.fixture
def item_factory() -> Callable[..., Item]:
    return make_item


# =============================================================================
# On-disk trees
# =============================================================================


def build_tree(root: Path, layout: dict[str, int | None]) -> Path:
    """Create files and folders under ``root``.

    Keys are '/'-separated relative paths. An int value creates a file of
    that many bytes; None creates a folder.
    """
    root.mkdir(parents=True, exist_ok=True)
    for relative, size in layout.items():
        target = root / relative
        if size is None:
            target.mkdir(parents=True, exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(b"x" * size)
    return root


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """A small share with a mix of clean and problematic items."""
    return build_tree(
        tmp_path / "share",
        {
            "Finance/Budget 2024.xlsx": 1200,
            "Finance/archive.exe": 0,
            "Finance/Reports/Q1.docx": 300,
            "Finance/Reports/Q2.docx": 500,
            "HR/Policies/handbook.pdf": 4000,
            "HR/notes:draft.txt": 20,
            "HR/.env": 10,
            "Projects/CON.txt": 5,
            "Projects/model.dwg": 2500,
            "Projects/Empty": None,
            "readme.txt": 50,
        },
    )


@pytest.fixture
def scan_options(tmp_path: Path) -> Callable[..., ScanOptions]:
    """Factory for ScanOptions with an isolated state directory."""

    def _make(**overrides: object) -> ScanOptions:
        values: dict[str, object] = {
            "state_dir": tmp_path / "state",
            "destination": "https://contoso.sharepoint.com/sites/hr/Shared Documents",
            "workers": 2,
            "low_memory_threshold_bytes": 0,
        }
        values.update(overrides)
        return ScanOptions(**values)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def tree_builder() -> Callable[[Path, dict[str, int | None]], Path]:
    return build_tree
