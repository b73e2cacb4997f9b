"""
Frequency Projector - decide which days a task is active on

Responsibilities:
- Project a FrequencyRule onto the protocol day axis
- Filter a task list down to the tasks due on a day
- Find the next active day of a rule (for "upcoming" views)
- Human-readable frequency labels for authoring surfaces

Design principles:
- Pure functions, no state
- Never raises: unknown repeat kinds fall back to daily and are logged
- Monthly is a fixed 30-day modulus, not calendar-month arithmetic
"""

import logging
from typing import Iterable, List, Optional

from recovery.contracts import FrequencyRule, RepeatKind, TaskDefinition

logger = logging.getLogger(__name__)

# Days between occurrences for each fixed cadence
REPEAT_PERIODS = {
    RepeatKind.DAILY: 1,
    RepeatKind.EVERY_OTHER_DAY: 2,
    RepeatKind.WEEKLY: 7,
    RepeatKind.BIWEEKLY: 14,
    RepeatKind.MONTHLY: 30,
}

FREQUENCY_LABELS = {
    RepeatKind.DAILY: "Daily",
    RepeatKind.EVERY_OTHER_DAY: "Every other day",
    RepeatKind.WEEKLY: "Weekly",
    RepeatKind.BIWEEKLY: "Every 2 weeks",
    RepeatKind.MONTHLY: "Monthly",
}


def repeat_period(rule: FrequencyRule) -> int:
    """
    Days between occurrences of a repeating rule.

    Unknown repeat kinds are treated as daily (documented default) and
    logged so the divergence is visible.
    """
    if rule.repeat_kind == RepeatKind.CUSTOM:
        return max(rule.interval or 1, 1)

    period = REPEAT_PERIODS.get(rule.repeat_kind)
    if period is None:
        logger.warning(
            f"Unknown repeat kind '{rule.repeat_kind}', falling back to daily"
        )
        return 1
    return period


def is_active_on(rule: FrequencyRule, day: int) -> bool:
    """
    Whether a task with this rule is active on a protocol day.

    Args:
        rule: Scheduling rule
        day: Protocol day (0 = anchor, negative = before anchor)

    Returns:
        bool: True if active

    Examples:
        >>> is_active_on(FrequencyRule(start_day=7), 7)
        True
        >>> is_active_on(FrequencyRule(1, 21, True, RepeatKind.EVERY_OTHER_DAY), 4)
        False
    """
    if not rule.repeat:
        return day == rule.start_day

    if day < rule.start_day or day > rule.last_day:
        return False

    delta = day - rule.start_day
    return delta % repeat_period(rule) == 0


def tasks_for_day(tasks: Iterable[TaskDefinition], day: int) -> List[TaskDefinition]:
    """Tasks active on day, in authoring (input) order"""
    return [task for task in tasks if is_active_on(task.schedule, day)]


def next_active_day(rule: FrequencyRule, after_day: int, last_day: int) -> Optional[int]:
    """
    Earliest active day strictly after after_day and no later than last_day.

    Args:
        rule: Scheduling rule
        after_day: Exclusive lower bound (usually "today")
        last_day: Inclusive upper bound (usually the timeline end)

    Returns:
        int day, or None if the rule has no remaining occurrence
    """
    if not rule.repeat:
        if after_day < rule.start_day <= last_day:
            return rule.start_day
        return None

    if after_day < rule.start_day:
        candidate = rule.start_day
    else:
        period = repeat_period(rule)
        delta = after_day - rule.start_day
        candidate = rule.start_day + (delta // period + 1) * period

    if candidate > min(rule.last_day, last_day):
        return None
    return candidate


def frequency_label(rule: FrequencyRule) -> str:
    """
    Display label for a rule.

    Examples:
        >>> frequency_label(FrequencyRule(3))
        'Once'
        >>> frequency_label(FrequencyRule(0, 30, True, RepeatKind.CUSTOM, 3))
        'Every 3 days'
    """
    if not rule.repeat:
        return "Once"
    if rule.repeat_kind == RepeatKind.CUSTOM:
        interval = max(rule.interval or 1, 1)
        return "Daily" if interval == 1 else f"Every {interval} days"
    return FREQUENCY_LABELS.get(rule.repeat_kind, "Daily")
