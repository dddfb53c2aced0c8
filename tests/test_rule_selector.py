from datetime import datetime, timedelta, timezone
from uuid import uuid4

from crmflow.schemas.common import RuleType
from crmflow.schemas.workflow import WorkflowRule
from crmflow.services.rule_selector import order_rules, select_applicable

_BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _rule(
    name: str,
    *,
    priority: int = 0,
    created_offset: int = 0,
    rule_type: RuleType = RuleType.lead_assignment,
    is_active: bool = True,
    conditions=None,
) -> WorkflowRule:
    return WorkflowRule(
        id=uuid4(),
        name=name,
        type=rule_type,
        conditions=conditions or [],
        actions=[],
        is_active=is_active,
        priority=priority,
        created_at=_BASE + timedelta(minutes=created_offset),
    )


class TestOrdering:
    """Priority DESC, then earliest created first."""

    def test_priority_then_created_at(self):
        early_five = _rule("early-5", priority=5, created_offset=0)
        late_five = _rule("late-5", priority=5, created_offset=10)
        ten = _rule("ten", priority=10, created_offset=20)

        result = select_applicable(
            [late_five, ten, early_five], RuleType.lead_assignment, {}
        )

        assert [r.name for r in result] == ["ten", "early-5", "late-5"]

    def test_undated_rule_sorts_last_among_equals(self):
        dated = _rule("dated", priority=1)
        undated = _rule("undated", priority=1)
        undated.created_at = None

        assert [r.name for r in order_rules([undated, dated])] == ["dated", "undated"]

    def test_naive_and_aware_timestamps_compare(self):
        naive = _rule("naive", priority=1)
        naive.created_at = datetime(2025, 12, 31)
        aware = _rule("aware", priority=1)

        assert [r.name for r in order_rules([aware, naive])] == ["naive", "aware"]


class TestFiltering:
    """Inactive rules and rules of another type are never returned."""

    def test_excludes_inactive_and_wrong_type(self):
        active = _rule("active")
        inactive = _rule("inactive", is_active=False)
        other_type = _rule("email", rule_type=RuleType.email_automation)

        result = select_applicable(
            [active, inactive, other_type], RuleType.lead_assignment, {}
        )

        assert result == [active]

    def test_accepts_plain_string_type(self):
        rule = _rule("r")
        assert select_applicable([rule], "lead_assignment", {}) == [rule]

    def test_returns_every_match(self):
        us = _rule(
            "us",
            priority=2,
            conditions=[{"field": "country", "operator": "equals", "value": "US"}],
        )
        catch_all = _rule("all", priority=1)
        uk = _rule(
            "uk",
            priority=3,
            conditions=[{"field": "country", "operator": "equals", "value": "UK"}],
        )

        result = select_applicable(
            [catch_all, uk, us], RuleType.lead_assignment, {"country": "US"}
        )

        assert [r.name for r in result] == ["us", "all"]

    def test_malformed_condition_never_matches(self):
        rule = _rule(
            "bad",
            conditions=[{"field": "country", "operator": "regex", "value": ".*"}],
        )
        assert select_applicable([rule], RuleType.lead_assignment, {"country": "US"}) == []
