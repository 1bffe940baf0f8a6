"""Tests for structured error codes."""

from __future__ import annotations

import pytest

from spready.errors import (
    CheckpointCorruptError,
    CheckpointError,
    CheckpointMismatchError,
    EnumerationLogCorruptError,
    InvalidSettingError,
    OutputDirectoryError,
    ScanError,
    ScanRootAccessError,
    ScanRootNotADirectoryError,
    ScanRootNotFoundError,
    SpreadyError,
)


class TestErrorCodes:
    """Every concrete error carries a unique code."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (ScanRootNotFoundError("/mnt/x"), "SPRDY-SCN001"),
            (ScanRootNotADirectoryError("/mnt/x"), "SPRDY-SCN002"),
            (ScanRootAccessError("/mnt/x", "denied"), "SPRDY-SCN003"),
            (OutputDirectoryError("/state", "read-only"), "SPRDY-SCN004"),
            (CheckpointCorruptError("/state/c.json", "bad json"), "SPRDY-CKP001"),
            (CheckpointMismatchError("destination", "a", "b"), "SPRDY-CKP002"),
            (EnumerationLogCorruptError("/e.jsonl", 4, "bad json"), "SPRDY-ENM001"),
            (InvalidSettingError("workers", "x", "int"), "SPRDY-CFG001"),
        ],
    )
    def test_code_in_message(self, error: SpreadyError, code: str) -> None:
        assert error.code == code
        assert str(error).startswith(f"[{code}]")

    @pytest.mark.unit
    def test_hierarchy(self) -> None:
        assert isinstance(ScanRootNotFoundError("/x"), ScanError)
        assert isinstance(CheckpointCorruptError("/x", "y"), CheckpointError)
        assert isinstance(InvalidSettingError("k", 1, "str"), SpreadyError)


class TestContext:
    """Context values become attributes and serialize to strings."""

    @pytest.mark.unit
    def test_attributes(self) -> None:
        error = EnumerationLogCorruptError("/e.jsonl", 4, "bad json")

        assert error.path == "/e.jsonl"
        assert error.line == 4

    @pytest.mark.unit
    def test_to_dict(self) -> None:
        data = ScanRootAccessError("/mnt/x", "denied").to_dict()

        assert data["code"] == "SPRDY-SCN003"
        assert data["context"] == {"path": "/mnt/x", "reason": "denied"}

    @pytest.mark.unit
    def test_reserved_keys_not_overwritten(self) -> None:
        error = SpreadyError("boom", code="hijack")

        assert error.code == "SPRDY-000"
        assert error.context == {"code": "hijack"}
