"""Tests for scan options and layered configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from spready.config import (
    ALL_CHECKS,
    ScanOptions,
    build_options,
    get_setting,
    load_config,
    save_config,
)
from spready.errors import InvalidSettingError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("CHECKPOINT_INTERVAL", "RESUME", "EXCLUDE_FOLDERS", "DISABLED_CHECKS", "TIMEOUT"):
        monkeypatch.delenv(f"SPREADY_{key}", raising=False)


class TestConfigFile:
    """Tests for config.yaml loading and saving."""

    @pytest.mark.unit
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert load_config(tmp_path / "state") == {}

    @pytest.mark.unit
    @pytest.mark.parametrize("content", ["", "   \n", "- just\n- a list\n"])
    def test_empty_or_non_mapping_is_empty(self, tmp_path: Path, content: str) -> None:
        (tmp_path / "config.yaml").write_text(content)

        assert load_config(tmp_path) == {}

    @pytest.mark.unit
    def test_save_then_load(self, tmp_path: Path) -> None:
        state_dir = tmp_path / "state"

        save_config(state_dir, {"checkpoint_interval": 250, "exclude_folders": ["tmp"]})

        assert load_config(state_dir) == {"checkpoint_interval": 250, "exclude_folders": ["tmp"]}


class TestGetSetting:
    """Tests for precedence resolution."""

    @pytest.mark.unit
    def test_cli_beats_env_beats_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        save_config(tmp_path, {"checkpoint_interval": 10})
        monkeypatch.setenv("SPREADY_CHECKPOINT_INTERVAL", "20")

        assert get_setting("checkpoint_interval", 30, state_dir=tmp_path) == 30
        assert get_setting("checkpoint_interval", state_dir=tmp_path) == 20

        monkeypatch.delenv("SPREADY_CHECKPOINT_INTERVAL")
        assert get_setting("checkpoint_interval", state_dir=tmp_path) == 10

    @pytest.mark.unit
    def test_unset_is_none(self, tmp_path: Path) -> None:
        assert get_setting("max_items", state_dir=tmp_path) is None

    @pytest.mark.unit
    @pytest.mark.parametrize(("raw", "expected"), [("yes", True), ("0", False), ("TRUE", True)])
    def test_boolean_env_values(
        self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool
    ) -> None:
        monkeypatch.setenv("SPREADY_RESUME", raw)

        assert get_setting("resume", config={}) is expected

    @pytest.mark.unit
    def test_list_env_values_split_on_commas(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPREADY_EXCLUDE_FOLDERS", "tmp, cache ,")

        assert get_setting("exclude_folders", config={}) == ("tmp", "cache")

    @pytest.mark.unit
    def test_bad_value_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPREADY_CHECKPOINT_INTERVAL", "often")

        with pytest.raises(InvalidSettingError) as exc_info:
            get_setting("checkpoint_interval", config={})

        assert exc_info.value.code == "SPRDY-CFG001"
        assert exc_info.value.key == "checkpoint_interval"


class TestBuildOptions:
    """Tests for build_options()."""

    @pytest.mark.unit
    def test_defaults(self, tmp_path: Path) -> None:
        options = build_options(state_dir=tmp_path)

        assert options.state_dir == tmp_path
        assert options.enabled_checks == ALL_CHECKS
        assert options.resume is False

    @pytest.mark.unit
    def test_disabled_checks_become_enabled_set(self, tmp_path: Path) -> None:
        options = build_options({"disabled_checks": ("hidden_files",)}, state_dir=tmp_path)

        assert "hidden_files" not in options.enabled_checks
        assert options.enabled_checks == ALL_CHECKS - {"hidden_files"}

    @pytest.mark.unit
    def test_unknown_disabled_check_raises(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidSettingError):
            build_options({"disabled_checks": ("spelling",)}, state_dir=tmp_path)

    @pytest.mark.unit
    def test_file_values_are_used(self, tmp_path: Path) -> None:
        save_config(tmp_path, {"max_issues_in_memory": 5, "timeout": "30"})

        options = build_options(state_dir=tmp_path)

        assert options.max_issues_in_memory == 5
        assert options.timeout == 30.0

    @pytest.mark.unit
    def test_inconsistent_values_raise(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            build_options({"checkpoint_interval": 0}, state_dir=tmp_path)


class TestScanOptions:
    """Tests for ScanOptions validation and derived values."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"checkpoint_interval": 0},
            {"max_issues_in_memory": -1},
            {"path_warning_threshold_percent": 0},
            {"path_warning_threshold_percent": 101},
            {"workers": 0},
            {"timeout": 0},
            {"enabled_checks": frozenset({"nope"})},
        ],
    )
    def test_invalid(self, kwargs: dict[str, object]) -> None:
        with pytest.raises(ValueError):
            ScanOptions(**kwargs)  # type: ignore[arg-type]

    @pytest.mark.unit
    def test_explicit_prefix_length_wins(self) -> None:
        options = ScanOptions(destination="https://x.com/a b", destination_prefix_length=7)

        assert options.prefix_length() == 7

    @pytest.mark.unit
    def test_prefix_length_from_destination(self) -> None:
        # "https://x.com" + "/a%20b"
        assert ScanOptions(destination="https://x.com/a b/").prefix_length() == 19

    @pytest.mark.unit
    def test_no_destination_means_no_prefix(self) -> None:
        assert ScanOptions().prefix_length() == 0
