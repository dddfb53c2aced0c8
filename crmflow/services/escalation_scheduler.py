"""Pure stepping logic for escalation ladders.

:func:`tick` never touches storage; the caller persists the fired
levels (see ``EscalationService``).
"""

from datetime import datetime, timedelta
from typing import AbstractSet, List, Sequence

from crmflow.schemas.escalation import EscalationLevel, EscalationRule, ensure_level_order


def cumulative_delays(levels: Sequence[EscalationLevel]) -> List[timedelta]:
    """Delay from the trigger to each level (sum of ``delay_hours`` 1..k)."""
    total = timedelta()
    delays = []
    for level in levels:
        total += timedelta(hours=level.delay_hours)
        delays.append(total)
    return delays


def tick(
    rule: EscalationRule,
    triggered_at: datetime,
    now: datetime,
    levels_fired: AbstractSet[int],
) -> List[EscalationLevel]:
    """Return the levels that are newly due at *now*.

    A level is due once its cumulative delay has elapsed since
    *triggered_at* and its predecessor is already in *levels_fired*.
    Levels are never skipped, so at most one level advances per call,
    and a level already in *levels_fired* is never returned again.

    Raises ``EscalationOrderError`` if the rule's levels are not
    numbered ``1..n`` in order.
    """
    levels = rule.escalation_levels
    ensure_level_order(levels)
    if not rule.is_active:
        return []

    elapsed = now - triggered_at
    for level, delay in zip(levels, cumulative_delays(levels)):
        if level.level in levels_fired:
            continue
        predecessor_fired = level.level == 1 or (level.level - 1) in levels_fired
        if predecessor_fired and elapsed >= delay:
            return [level]
        # The first unfired level blocks everything after it
        return []
    return []
