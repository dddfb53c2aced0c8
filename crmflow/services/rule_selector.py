import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Sequence

from crmflow.schemas.workflow import WorkflowRule
from crmflow.services.condition_evaluator import evaluate

logger = logging.getLogger(__name__)

# Rules without a creation time sort after every dated rule of equal priority
_UNDATED = datetime.max.replace(tzinfo=timezone.utc)


def _rule_type_value(rule_type: Any) -> str:
    return rule_type.value if hasattr(rule_type, "value") else str(rule_type)


def _created_at_key(rule: WorkflowRule) -> datetime:
    created_at = rule.created_at
    if created_at is None:
        return _UNDATED
    if created_at.tzinfo is None:
        return created_at.replace(tzinfo=timezone.utc)
    return created_at


def order_rules(rules: Sequence[WorkflowRule]) -> List[WorkflowRule]:
    """Priority DESC, then earliest ``created_at`` first."""
    return sorted(rules, key=lambda r: (-r.priority, _created_at_key(r)))


def select_applicable(
    rules: Sequence[WorkflowRule],
    rule_type: Any,
    record: Mapping[str, Any],
) -> List[WorkflowRule]:
    """Return every active rule of *rule_type* whose conditions match.

    All matches are returned, in evaluation order.  Callers that want a
    single winner (e.g. only one assignment) take the first element.
    """
    wanted = _rule_type_value(rule_type)
    candidates = [
        rule
        for rule in rules
        if rule.is_active and _rule_type_value(rule.type) == wanted
    ]
    matched = [rule for rule in order_rules(candidates) if evaluate(rule.conditions, record)]
    logger.debug(
        "Rule selection for %s: %d candidate(s), %d match(es)",
        wanted,
        len(candidates),
        len(matched),
    )
    return matched
