"""
Test Protocol Timeline - day queries, labels and immutable authoring

Run with: python3 tests/test_protocol_timeline.py
"""

import sys
import os
from datetime import date, datetime
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from recovery.contracts import FrequencyRule, RepeatKind, TaskDefinition, TaskKind
from recovery.core.protocol_timeline import (
    ProtocolTimeline,
    day_label,
    day_phase,
    recovery_day,
)
from recovery.errors import OutOfRangeDayError


def _timeline():
    tasks = [
        TaskDefinition("welcome", TaskKind.MESSAGE, "Welcome", FrequencyRule(-14)),
        TaskDefinition("check-in", TaskKind.FORM, "Check-in",
                       FrequencyRule(1, 3, True, RepeatKind.DAILY), form_ref="daily-check-in"),
        TaskDefinition("walk", TaskKind.EXERCISE, "Walk", FrequencyRule(2)),
    ]
    return ProtocolTimeline("knee", tasks, timeline_start=-20, timeline_end=30, name="Knee")


def test_tasks_for_day():
    timeline = _timeline()

    assert [t.id for t in timeline.tasks_for_day(2)] == ["check-in", "walk"]
    assert [t.id for t in timeline.tasks_for_day(-14)] == ["welcome"]
    assert timeline.tasks_for_day(10) == []

    print("✓ Tasks for day test passed")


def test_out_of_range_day():
    timeline = _timeline()

    with pytest.raises(OutOfRangeDayError) as exc_info:
        timeline.tasks_for_day(31)
    assert exc_info.value.day == 31
    assert exc_info.value.timeline_end == 30

    with pytest.raises(OutOfRangeDayError):
        timeline.tasks_for_day(-21)

    # Bounds are inclusive
    assert timeline.tasks_for_day(-20) == []
    assert timeline.tasks_for_day(30) == []

    print("✓ Out of range day test passed")


def test_invalid_bounds():
    with pytest.raises(ValueError):
        ProtocolTimeline("bad", timeline_start=10, timeline_end=0)

    print("✓ Invalid bounds test passed")


def test_days_with_tasks():
    assert _timeline().days_with_tasks() == [-14, 1, 2, 3]

    print("✓ Days with tasks test passed")


def test_day_labels_and_phases():
    assert day_label(0) == "Surgery"
    assert day_label(-3) == "Pre-Op 3"
    assert day_label(12) == "Post-Op 12"

    assert day_phase(-30) == "enrollment"
    assert day_phase(-7) == "pre-op"
    assert day_phase(0) == "surgery"
    assert day_phase(7) == "early"
    assert day_phase(30) == "intermediate"
    assert day_phase(31) == "advanced"

    # Also reachable through a timeline instance
    assert _timeline().day_label(-1) == "Pre-Op 1"

    print("✓ Day label and phase test passed")


def test_recovery_day():
    surgery = date(2025, 3, 10)

    assert recovery_day(surgery, date(2025, 3, 10)) == 0
    assert recovery_day(surgery, date(2025, 3, 3)) == -7
    assert recovery_day(datetime(2025, 3, 10, 23, 59), datetime(2025, 3, 11, 0, 1)) == 1

    print("✓ Recovery day test passed")


def test_weeks():
    timeline = ProtocolTimeline("p", timeline_start=-7, timeline_end=8)

    assert timeline.weeks() == [(-7, -1), (0, 6), (7, 8)]

    print("✓ Weeks test passed")


def test_add_update_remove_are_immutable():
    original = _timeline()

    added = original.add_task(
        TaskDefinition("video", TaskKind.VIDEO, "Video", FrequencyRule(5))
    )
    assert len(added.tasks) == 4 and added.version == 2
    assert len(original.tasks) == 3 and original.version == 1, "Original must be unchanged"

    with pytest.raises(ValueError):
        added.add_task(TaskDefinition("video", TaskKind.VIDEO, "Again", FrequencyRule(6)))

    moved = TaskDefinition("check-in", TaskKind.FORM, "Check-in",
                           FrequencyRule(1, 10, True, RepeatKind.EVERY_OTHER_DAY))
    updated = added.update_task(moved)
    task = updated.get_task("check-in")
    assert task.adjusted_from_original is True
    assert task.schedule.last_day == 10
    assert [t.id for t in updated.tasks] == ["welcome", "check-in", "walk", "video"], \
        "Authoring position must be preserved"
    assert original.get_task("check-in").adjusted_from_original is False

    removed = updated.remove_task("walk")
    assert removed.get_task("walk") is None
    assert removed.version == 4

    with pytest.raises(ValueError):
        removed.remove_task("walk")

    print("✓ Immutable authoring test passed")


if __name__ == '__main__':
    print("\n" + "="*60)
    print("TESTING PROTOCOL TIMELINE")
    print("="*60 + "\n")

    test_tasks_for_day()
    test_out_of_range_day()
    test_invalid_bounds()
    test_days_with_tasks()
    test_day_labels_and_phases()
    test_recovery_day()
    test_weeks()
    test_add_update_remove_are_immutable()

    print("\n" + "="*60)
    print("ALL PROTOCOL TIMELINE TESTS PASSED ✓")
    print("="*60 + "\n")
