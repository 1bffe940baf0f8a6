"""Tests for memory checks."""

from __future__ import annotations

from types import SimpleNamespace

import psutil
import pytest

from spready.resources import available_memory, is_memory_low


@pytest.fixture
def fake_memory(monkeypatch: pytest.MonkeyPatch):
    def _set(available: int) -> None:
        monkeypatch.setattr(
            psutil, "virtual_memory", lambda: SimpleNamespace(available=available)
        )

    return _set


@pytest.mark.unit
def test_available_memory_reads_psutil(fake_memory) -> None:
    fake_memory(1234)

    assert available_memory() == 1234


@pytest.mark.unit
@pytest.mark.parametrize(("available", "low"), [(99, True), (100, False), (5000, False)])
def test_threshold(fake_memory, available: int, low: bool) -> None:
    fake_memory(available)

    assert is_memory_low(100) is low


@pytest.mark.unit
def test_zero_threshold_disables_check(fake_memory) -> None:
    fake_memory(0)

    assert is_memory_low(0) is False


@pytest.mark.unit
def test_real_system_reports_memory() -> None:
    assert available_memory() > 0
