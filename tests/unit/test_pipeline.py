"""Tests for RulePipeline and the name-conflict stage."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from spready.aggregate import NameCollisionIndex
from spready.config import ALL_CHECKS
from spready.models import IssueType, Item, Severity
from spready.validation import DEFAULT_RULES, RuleContext, RulePipeline

ItemFactory = Callable[..., Item]


class TestEvaluate:
    """Tests for RulePipeline.evaluate()."""

    @pytest.mark.unit
    def test_archive_exe_gives_only_blocked_issue(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(RuleContext())

        issues = pipeline.evaluate(item_factory("archive.exe", size=0))

        assert [i.issue_type for i in issues] == [IssueType.BLOCKED_FILE_TYPE]

    @pytest.mark.unit
    def test_issues_follow_rule_order(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(RuleContext())

        issues = pipeline.evaluate(item_factory(".CON:x.exe", hidden=True))

        assert [i.issue_type for i in issues] == [
            IssueType.INVALID_CHARACTERS,
            IssueType.BLOCKED_FILE_TYPE,
            IssueType.HIDDEN_ITEM,
        ]

    @pytest.mark.unit
    def test_at_most_one_issue_per_kind(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(RuleContext())
        item = item_factory("x/" + "a<b>c|d" * 60 + ".exe", size=20_000_000_000)

        issues = pipeline.evaluate(item)
        kinds = [i.issue_type for i in issues]

        assert len(kinds) == len(set(kinds))

    @pytest.mark.unit
    def test_disabled_checks_are_skipped(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(
            RuleContext(), enabled_checks=ALL_CHECKS - {"blocked_file_types"}
        )

        assert pipeline.evaluate(item_factory("archive.exe")) == []

    @pytest.mark.unit
    def test_default_rule_names_are_known_checks(self) -> None:
        assert {rule.name for rule in DEFAULT_RULES} <= ALL_CHECKS

    @pytest.mark.unit
    def test_evaluate_does_not_touch_conflict_index(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(RuleContext())

        pipeline.evaluate(item_factory("Report.docx"))
        pipeline.evaluate(item_factory("REPORT.DOCX"))

        assert pipeline.checks_conflicts


class TestResolveConflicts:
    """Tests for RulePipeline.resolve_conflicts()."""

    @pytest.mark.unit
    def test_case_insensitive_siblings_give_one_issue(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(RuleContext())
        index = NameCollisionIndex()
        first = item_factory("Docs/Report.docx")
        second = item_factory("Docs/REPORT.DOCX")

        first_issues = pipeline.resolve_conflicts(first, pipeline.evaluate(first), index)
        second_issues = pipeline.resolve_conflicts(second, pipeline.evaluate(second), index)

        assert first_issues == []
        assert len(second_issues) == 1
        conflict = second_issues[0]
        assert conflict.issue_type == IssueType.NAME_CONFLICT
        assert conflict.severity == Severity.CRITICAL
        assert conflict.relative_path == "Docs/REPORT.DOCX"
        assert conflict.details == "First seen: Docs/Report.docx"

    @pytest.mark.unit
    def test_same_name_in_different_folders_is_fine(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(RuleContext())
        index = NameCollisionIndex()

        for path in ("A/report.docx", "B/REPORT.docx"):
            item = item_factory(path)
            assert pipeline.resolve_conflicts(item, [], index) == []

    @pytest.mark.unit
    def test_conflict_goes_before_hidden_issue(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(RuleContext())
        index = NameCollisionIndex()
        pipeline.resolve_conflicts(item_factory(".Profile"), [], index)
        item = item_factory(".profile")

        issues = pipeline.resolve_conflicts(item, pipeline.evaluate(item), index)

        assert [i.issue_type for i in issues] == [IssueType.NAME_CONFLICT, IssueType.HIDDEN_ITEM]

    @pytest.mark.unit
    def test_disabled_conflicts_never_report(self, item_factory: ItemFactory) -> None:
        pipeline = RulePipeline(RuleContext())
        index = NameCollisionIndex()
        pipeline.disable_conflicts()

        pipeline.resolve_conflicts(item_factory("a.txt"), [], index)

        assert pipeline.resolve_conflicts(item_factory("A.TXT"), [], index) == []
        assert not pipeline.checks_conflicts

    @pytest.mark.unit
    def test_conflicts_excluded_from_enabled_checks(self) -> None:
        pipeline = RulePipeline(RuleContext(), enabled_checks={"path_length"})

        assert not pipeline.checks_conflicts
        assert [rule.name for rule in pipeline.rules] == ["path_length"]
