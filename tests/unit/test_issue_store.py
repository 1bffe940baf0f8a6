"""Tests for IssueLog and IssueStore."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from spready.issue_store import IssueLog, IssueStore, LogPosition
from spready.models import Issue, IssueType, Severity


def _issue(n: int) -> Issue:
    return Issue(
        path=f"/data/f{n}.exe",
        relative_path=f"f{n}.exe",
        name=f"f{n}.exe",
        is_directory=False,
        issue_type=IssueType.BLOCKED_FILE_TYPE,
        severity=Severity.WARNING,
        category="Blocked - Executable",
        description="blocked",
        suggestion="remove it",
        size=n,
    )


@pytest.fixture
def issue_log(tmp_path: Path) -> Iterator[IssueLog]:
    log = IssueLog(tmp_path / "issues.jsonl")
    log.open()
    yield log
    log.close()


class TestIssueLog:
    """Tests for IssueLog."""

    @pytest.mark.unit
    def test_append_is_readable_immediately(self, issue_log: IssueLog) -> None:
        issue_log.append(_issue(1))

        assert list(IssueLog.read(issue_log.path)) == [_issue(1)]

    @pytest.mark.unit
    def test_position_tracks_lines_and_bytes(self, issue_log: IssueLog) -> None:
        issue_log.append(_issue(1))
        issue_log.append(_issue(2))

        position = issue_log.position

        assert position.lines == 2
        assert position.offset == issue_log.path.stat().st_size

    @pytest.mark.unit
    def test_reopen_truncates_to_position(self, issue_log: IssueLog) -> None:
        issue_log.append(_issue(1))
        saved = issue_log.position
        issue_log.append(_issue(2))
        issue_log.close()

        issue_log.open(resume_at=saved)
        issue_log.append(_issue(3))
        issue_log.close()

        assert [i.size for i in IssueLog.read(issue_log.path)] == [1, 3]
        assert issue_log.count == 2

    @pytest.mark.unit
    def test_open_without_position_replaces_log(self, issue_log: IssueLog) -> None:
        issue_log.append(_issue(1))
        issue_log.close()

        issue_log.open()

        assert list(IssueLog.read(issue_log.path)) == []

    @pytest.mark.unit
    def test_read_stops_at_partial_line(self, issue_log: IssueLog) -> None:
        issue_log.append(_issue(1))
        issue_log.close()
        with issue_log.path.open("a", encoding="utf-8") as f:
            f.write('{"path": "/data/cut')

        assert [i.size for i in IssueLog.read(issue_log.path)] == [1]

    @pytest.mark.unit
    def test_read_missing_file(self, tmp_path: Path) -> None:
        assert list(IssueLog.read(tmp_path / "absent.jsonl")) == []

    @pytest.mark.unit
    def test_append_requires_open_log(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            IssueLog(tmp_path / "x.jsonl").append(_issue(1))


class TestIssueStore:
    """Tests for IssueStore."""

    @pytest.mark.unit
    def test_cap_of_two_with_three_issues(self, issue_log: IssueLog) -> None:
        store = IssueStore(issue_log, cap=2)

        store.emit([_issue(1), _issue(2), _issue(3)])

        assert len(store.issues) == 2
        assert len(list(IssueLog.read(issue_log.path))) == 3
        assert store.truncated is True

    @pytest.mark.unit
    def test_under_cap_is_not_truncated(self, issue_log: IssueLog) -> None:
        store = IssueStore(issue_log, cap=5)

        store.emit([_issue(1)])
        store.emit([])

        assert store.issues == [_issue(1)]
        assert store.truncated is False

    @pytest.mark.unit
    def test_log_always_holds_at_least_memory(self, issue_log: IssueLog) -> None:
        store = IssueStore(issue_log, cap=3)

        for n in range(10):
            store.emit([_issue(n)])
            assert issue_log.count >= len(store)

        assert issue_log.count == 10

    @pytest.mark.unit
    def test_zero_cap_keeps_nothing_in_memory(self, issue_log: IssueLog) -> None:
        store = IssueStore(issue_log, cap=0)

        store.emit([_issue(1)])

        assert store.issues == []
        assert store.truncated

    @pytest.mark.unit
    def test_reload_after_resume(self, issue_log: IssueLog) -> None:
        store = IssueStore(issue_log, cap=2)
        store.emit([_issue(1), _issue(2), _issue(3)])
        saved = issue_log.position
        issue_log.close()

        issue_log.open(resume_at=saved)
        resumed = IssueStore(issue_log, cap=2)
        resumed.reload(truncated=True)

        assert [i.size for i in resumed.issues] == [1, 2]
        assert resumed.truncated


class TestLogPosition:
    """Tests for LogPosition serialization."""

    @pytest.mark.unit
    def test_missing_data_is_none(self) -> None:
        assert LogPosition.from_dict(None) is None
        assert LogPosition.from_dict({}) is None

    @pytest.mark.unit
    def test_round_trip(self) -> None:
        position = LogPosition(lines=3, offset=120)

        assert LogPosition.from_dict(position.to_dict()) == position
