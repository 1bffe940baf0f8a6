"""Integration tests for the spready CLI."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner, Result

from spready.checkpoint import CheckpointManager
from spready.cli import cli
from spready.sources import EnumerationLog


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _memory_check_off(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPREADY_LOW_MEMORY_THRESHOLD_BYTES", "0")


def _scan(runner: CliRunner, *args: str) -> Result:
    return runner.invoke(cli, ["scan", *args], catch_exceptions=False)


class TestScanCommand:
    """Tests for 'spready scan'."""

    @pytest.mark.integration
    def test_json_envelope(self, runner: CliRunner, sample_tree: Path, tmp_path: Path) -> None:
        result = _scan(runner, str(sample_tree), "--state-dir", str(tmp_path / "state"), "--json")

        assert result.exit_code == 0, result.output
        envelope = json.loads(result.output)
        assert envelope["success"] is True
        assert envelope["command"] == "scan"
        assert envelope["data"]["summary"]["total_items"] == 16
        assert envelope["data"]["summary"]["total_issues"] == 6
        assert len(envelope["data"]["issues"]) == 6
        assert {i["type"] for i in envelope["data"]["issues"]} >= {"reserved_name", "hidden_item"}

    @pytest.mark.integration
    def test_json_lists_every_issue_past_memory_cap(
        self, runner: CliRunner, tmp_path: Path, tree_builder: Callable[..., Path]
    ) -> None:
        root = tree_builder(tmp_path / "share", {"a.exe": 1, "b.exe": 1, "c.exe": 1})

        result = _scan(
            runner, str(root), "--state-dir", str(tmp_path / "state"), "--max-issues", "2", "--json"
        )

        data = json.loads(result.output)["data"]
        assert data["issues_truncated"] is True
        assert data["summary"]["total_issues"] == 3
        assert [i["relative_path"] for i in data["issues"]] == ["a.exe", "b.exe", "c.exe"]

    @pytest.mark.integration
    def test_human_output(self, runner: CliRunner, sample_tree: Path, tmp_path: Path) -> None:
        result = _scan(runner, str(sample_tree), "--state-dir", str(tmp_path / "state"))

        assert result.exit_code == 0
        assert "Scanned 16 items" in result.output
        assert "Projects/CON.txt" in result.output

    @pytest.mark.integration
    def test_options_reach_the_engine(
        self, runner: CliRunner, sample_tree: Path, tmp_path: Path
    ) -> None:
        result = _scan(
            runner,
            str(sample_tree),
            "--state-dir",
            str(tmp_path / "state"),
            "--exclude",
            "Projects",
            "--disable-check",
            "hidden_files",
            "--max-issues",
            "1",
            "--json",
        )

        data = json.loads(result.output)["data"]
        assert data["summary"]["total_items"] == 12
        assert data["summary"]["total_issues"] == 3
        assert data["issues_truncated"] is True
        assert len(data["issues"]) == 3

    @pytest.mark.integration
    def test_destination_from_config_file(
        self, runner: CliRunner, sample_tree: Path, tmp_path: Path
    ) -> None:
        state_dir = tmp_path / "state"
        state_dir.mkdir()
        (state_dir / "config.yaml").write_text("destination: https://contoso.sharepoint.com/sites/x\n")

        result = _scan(runner, str(sample_tree), "--state-dir", str(state_dir), "--json")

        data = json.loads(result.output)["data"]
        assert data["destination"] == "https://contoso.sharepoint.com/sites/x"

    @pytest.mark.integration
    def test_missing_root_fails(self, runner: CliRunner, tmp_path: Path) -> None:
        result = _scan(
            runner, str(tmp_path / "nope"), "--state-dir", str(tmp_path / "state"), "--json"
        )

        assert result.exit_code == 1
        envelope = json.loads(result.output)
        assert envelope["success"] is False
        assert envelope["errors"][0]["code"] == "SPRDY-SCN001"

    @pytest.mark.integration
    def test_bad_config_value_fails(
        self, runner: CliRunner, sample_tree: Path, tmp_path: Path
    ) -> None:
        state_dir = tmp_path / "state"
        state_dir.mkdir()
        (state_dir / "config.yaml").write_text("checkpoint_interval: often\n")

        result = _scan(runner, str(sample_tree), "--state-dir", str(state_dir), "--json")

        assert result.exit_code == 1
        assert json.loads(result.output)["errors"][0]["code"] == "SPRDY-CFG001"

    @pytest.mark.integration
    def test_timeout_reports_partial_scan(
        self, runner: CliRunner, sample_tree: Path, tmp_path: Path
    ) -> None:
        result = _scan(
            runner,
            str(sample_tree),
            "--state-dir",
            str(tmp_path / "state"),
            "--timeout",
            "0.000000001",
        )

        assert result.exit_code == 0
        assert "resume with --resume" in result.output


class TestEnumerateCommand:
    """Tests for 'spready enumerate'."""

    @pytest.mark.integration
    def test_writes_complete_log(
        self, runner: CliRunner, sample_tree: Path, tmp_path: Path
    ) -> None:
        log_path = tmp_path / "enum.jsonl"

        result = runner.invoke(
            cli, ["enumerate", str(sample_tree), "--log", str(log_path), "--json"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)["data"]
        assert data["items"] == 16
        assert EnumerationLog(log_path).is_complete()

    @pytest.mark.integration
    def test_default_log_location_then_replay(
        self, runner: CliRunner, sample_tree: Path, tmp_path: Path
    ) -> None:
        state_dir = tmp_path / "state"
        default_log = CheckpointManager(state_dir, sample_tree, "").enumeration_log_path

        result = runner.invoke(cli, ["enumerate", str(sample_tree), "--state-dir", str(state_dir)])
        assert result.exit_code == 0
        assert default_log.exists()

        scan = _scan(
            runner,
            str(sample_tree),
            "--state-dir",
            str(state_dir),
            "--enumeration-log",
            str(default_log),
            "--json",
        )

        assert json.loads(scan.output)["data"]["summary"]["total_items"] == 16
        assert not default_log.exists()

    @pytest.mark.integration
    def test_not_a_directory(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["enumerate", str(tmp_path / "nope"), "--json"])

        assert result.exit_code == 1
        assert json.loads(result.output)["success"] is False


class TestCleanCommand:
    """Tests for 'spready clean'."""

    @pytest.mark.integration
    def test_removes_leftovers(self, runner: CliRunner, sample_tree: Path, tmp_path: Path) -> None:
        state_dir = tmp_path / "state"
        _scan(runner, str(sample_tree), "--state-dir", str(state_dir))

        result = runner.invoke(cli, ["clean", str(sample_tree), "--state-dir", str(state_dir)])

        assert result.exit_code == 0
        assert "Removed 1 file(s)" in result.output
        assert list(state_dir.glob("issues_*.jsonl")) == []

    @pytest.mark.integration
    def test_nothing_to_clean(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(
            cli, ["clean", str(tmp_path), "--state-dir", str(tmp_path / "state"), "--json"]
        )

        assert result.exit_code == 0
        assert json.loads(result.output)["data"]["removed"] == []
