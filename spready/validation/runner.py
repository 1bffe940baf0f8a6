"""Rule pipeline that evaluates every enabled rule against an item."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from typing import TYPE_CHECKING

from spready.models import Issue, IssueType, Item
from spready.validation.rules import (
    BlockedFileTypeRule,
    FileSizeRule,
    HiddenItemRule,
    InvalidCharactersRule,
    NameConflictRule,
    PathLengthRule,
    ProblematicFileRule,
    ReservedNameRule,
    RuleContext,
    ValidationRule,
)

if TYPE_CHECKING:
    from spready.aggregate import NameCollisionIndex

# Fixed evaluation order; the name-conflict check runs between file-size and
# hidden/system (see RulePipeline.resolve_conflicts).
DEFAULT_RULES: tuple[ValidationRule, ...] = (
    PathLengthRule(),
    InvalidCharactersRule(),
    ReservedNameRule(),
    BlockedFileTypeRule(),
    ProblematicFileRule(),
    FileSizeRule(),
    HiddenItemRule(),
)

_AFTER_CONFLICT = frozenset({IssueType.HIDDEN_ITEM, IssueType.SYSTEM_ITEM})


class RulePipeline:
    """Ordered set of independent checks applied to each item.

    ``evaluate`` is side-effect free and safe to call from worker threads.
    ``resolve_conflicts`` is the stateful stage and must be called in
    enumeration order.
    """

    def __init__(
        self,
        context: RuleContext,
        *,
        enabled_checks: Collection[str] | None = None,
        rules: Sequence[ValidationRule] | None = None,
    ) -> None:
        self.context = context
        all_rules = DEFAULT_RULES if rules is None else tuple(rules)
        if enabled_checks is None:
            self.rules = all_rules
            self.conflict_rule: NameConflictRule | None = NameConflictRule()
        else:
            self.rules = tuple(r for r in all_rules if r.name in enabled_checks)
            self.conflict_rule = (
                NameConflictRule() if NameConflictRule.name in enabled_checks else None
            )

    @property
    def checks_conflicts(self) -> bool:
        return self.conflict_rule is not None

    def disable_conflicts(self) -> None:
        """Turn off the name-conflict check for the rest of the scan."""
        self.conflict_rule = None

    def evaluate(self, item: Item) -> list[Issue]:
        """Run every pure rule against one item."""
        issues: list[Issue] = []
        for rule in self.rules:
            if rule.applies(item):
                issues.extend(rule.check(item, self.context))
        return issues

    def resolve_conflicts(
        self, item: Item, issues: list[Issue], index: NameCollisionIndex | None
    ) -> list[Issue]:
        """Add the name-conflict finding (if any) in its fixed position."""
        if self.conflict_rule is None or index is None:
            return issues

        conflicts = self.conflict_rule.check(item, index)
        if not conflicts:
            return issues

        position = next(
            (i for i, issue in enumerate(issues) if issue.issue_type in _AFTER_CONFLICT),
            len(issues),
        )
        return issues[:position] + conflicts + issues[position:]
