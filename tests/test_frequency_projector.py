"""
Test Frequency Projector - task activity on protocol days

Run with: python3 tests/test_frequency_projector.py
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from recovery.contracts import FrequencyRule, RepeatKind, TaskDefinition, TaskKind
from recovery.core.frequency_projector import (
    frequency_label,
    is_active_on,
    next_active_day,
    repeat_period,
    tasks_for_day,
)


def _task(task_id, rule):
    return TaskDefinition(id=task_id, kind=TaskKind.MESSAGE, title=task_id, schedule=rule)


def test_one_off_rule():
    """Non-repeating rules are active on their start day only"""
    rule = FrequencyRule(start_day=7, stop_day=14)

    assert is_active_on(rule, 7)
    assert not is_active_on(rule, 6)
    assert not is_active_on(rule, 8), "stop_day must be ignored when repeat is False"
    assert not is_active_on(rule, 14)

    print("✓ One-off rule test passed")


def test_daily_rule():
    rule = FrequencyRule(1, 14, True, RepeatKind.DAILY)

    active = [day for day in range(-5, 20) if is_active_on(rule, day)]
    assert active == list(range(1, 15)), f"Expected days 1..14, got {active}"

    print("✓ Daily rule test passed")


def test_every_other_day_rule():
    rule = FrequencyRule(1, 21, True, RepeatKind.EVERY_OTHER_DAY)

    assert is_active_on(rule, 1)
    assert is_active_on(rule, 3)
    assert not is_active_on(rule, 4)
    assert is_active_on(rule, 21)
    assert not is_active_on(rule, 23)

    print("✓ Every-other-day rule test passed")


def test_weekly_biweekly_monthly_rules():
    weekly = FrequencyRule(0, 28, True, RepeatKind.WEEKLY)
    biweekly = FrequencyRule(0, 42, True, RepeatKind.BIWEEKLY)
    monthly = FrequencyRule(0, 180, True, RepeatKind.MONTHLY)

    assert [d for d in range(0, 29) if is_active_on(weekly, d)] == [0, 7, 14, 21, 28]
    assert [d for d in range(0, 43) if is_active_on(biweekly, d)] == [0, 14, 28, 42]
    # Monthly is a fixed 30-day period
    assert [d for d in range(0, 100) if is_active_on(monthly, d)] == [0, 30, 60, 90]

    print("✓ Weekly / biweekly / monthly rule test passed")


def test_rule_with_negative_days():
    """Pre-op days are ordinary days on the axis"""
    rule = FrequencyRule(-14, -1, True, RepeatKind.WEEKLY)

    assert is_active_on(rule, -14)
    assert is_active_on(rule, -7)
    assert not is_active_on(rule, 0)

    print("✓ Negative day rule test passed")


def test_custom_interval():
    rule = FrequencyRule(3, 30, True, RepeatKind.CUSTOM, interval=3)

    assert repeat_period(rule) == 3
    assert [d for d in range(0, 13) if is_active_on(rule, d)] == [3, 6, 9, 12]

    # Zero or negative interval behaves as daily
    zero = FrequencyRule(1, 3, True, RepeatKind.CUSTOM, interval=0)
    assert repeat_period(zero) == 1
    assert [d for d in range(0, 5) if is_active_on(zero, d)] == [1, 2, 3]

    print("✓ Custom interval test passed")


def test_unknown_repeat_kind_falls_back_to_daily(caplog):
    rule = FrequencyRule(1, 3, True, "fortnightly-ish")

    with caplog.at_level("WARNING"):
        active = [d for d in range(0, 5) if is_active_on(rule, d)]

    assert active == [1, 2, 3]
    assert "fortnightly-ish" in caplog.text, "Fallback should be logged"

    print("✓ Unknown repeat kind test passed")


def test_tasks_for_day_keeps_authoring_order():
    tasks = [
        _task("c", FrequencyRule(5)),
        _task("a", FrequencyRule(1, 10, True, RepeatKind.DAILY)),
        _task("b", FrequencyRule(6)),
    ]

    due = tasks_for_day(tasks, 5)
    assert [t.id for t in due] == ["c", "a"], f"Got {[t.id for t in due]}"
    assert tasks_for_day(tasks, 50) == []

    print("✓ Tasks-for-day ordering test passed")


def test_next_active_day():
    weekly = FrequencyRule(0, 28, True, RepeatKind.WEEKLY)

    assert next_active_day(weekly, -3, 200) == 0
    assert next_active_day(weekly, 0, 200) == 7, "Bound is exclusive"
    assert next_active_day(weekly, 8, 200) == 14
    assert next_active_day(weekly, 28, 200) is None
    assert next_active_day(weekly, 8, 10) is None, "Timeline end caps the search"

    once = FrequencyRule(start_day=5)
    assert next_active_day(once, 4, 200) == 5
    assert next_active_day(once, 5, 200) is None

    print("✓ Next active day test passed")


def test_frequency_label():
    assert frequency_label(FrequencyRule(3)) == "Once"
    assert frequency_label(FrequencyRule(0, 10, True, RepeatKind.DAILY)) == "Daily"
    assert frequency_label(FrequencyRule(0, 10, True, RepeatKind.EVERY_OTHER_DAY)) == "Every other day"
    assert frequency_label(FrequencyRule(0, 30, True, RepeatKind.CUSTOM, 3)) == "Every 3 days"
    assert frequency_label(FrequencyRule(0, 90, True, RepeatKind.BIWEEKLY)) == "Every 2 weeks"

    print("✓ Frequency label test passed")


if __name__ == '__main__':
    print("\n" + "="*60)
    print("TESTING FREQUENCY PROJECTOR")
    print("="*60 + "\n")

    test_one_off_rule()
    test_daily_rule()
    test_every_other_day_rule()
    test_weekly_biweekly_monthly_rules()
    test_rule_with_negative_days()
    test_custom_interval()
    test_tasks_for_day_keeps_authoring_order()
    test_next_active_day()
    test_frequency_label()

    print("\n" + "="*60)
    print("ALL FREQUENCY PROJECTOR TESTS PASSED ✓")
    print("="*60 + "\n")
