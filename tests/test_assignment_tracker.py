"""
Test Assignment Tracker - due today / upcoming / completed partition

Run with: python3 tests/test_assignment_tracker.py
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from recovery.contracts import (
    AssignmentView,
    CompletionRecord,
    FrequencyRule,
    RepeatKind,
    TaskDefinition,
    TaskKind,
)
from recovery.core.assignment_tracker import (
    classify,
    classify_timeline,
    load_assignment_view,
    next_pending,
)
from recovery.core.protocol_timeline import ProtocolTimeline
from recovery.persistence import InMemoryStore


def _tasks():
    return [
        TaskDefinition("welcome", TaskKind.MESSAGE, "Welcome", FrequencyRule(-7)),
        TaskDefinition("check-in", TaskKind.FORM, "Check-in",
                       FrequencyRule(1, 14, True, RepeatKind.DAILY), form_ref="daily-check-in"),
        TaskDefinition("video", TaskKind.VIDEO, "Video",
                       FrequencyRule(7, 28, True, RepeatKind.WEEKLY)),
        TaskDefinition("walk", TaskKind.EXERCISE, "Walk", FrequencyRule(3)),
    ]


def _ids(tasks):
    return [task.id for task in tasks]


def test_partition():
    view = classify(_tasks(), {}, day=3, timeline_start=-45, timeline_end=200)

    assert _ids(view.due_today) == ["check-in", "walk"]
    assert _ids(view.upcoming) == ["video"]
    assert view.completed == ()
    # welcome (day -7) has passed and is neither due nor upcoming

    print("✓ Partition test passed")


def test_completed_wins():
    records = {
        "check-in": CompletionRecord("completed", "2025-03-11T08:00:00+00:00"),
        "video": CompletionRecord("pending"),
    }
    view = classify(_tasks(), records, day=3, timeline_start=-45, timeline_end=200)

    assert _ids(view.completed) == ["check-in"]
    assert _ids(view.due_today) == ["walk"]
    assert _ids(view.upcoming) == ["video"], "Non-completed records are ignored"

    all_ids = _ids(view.due_today) + _ids(view.upcoming) + _ids(view.completed)
    assert len(all_ids) == len(set(all_ids)), "Buckets must be disjoint"

    print("✓ Completed wins test passed")


def test_timeline_bounds():
    # Video's later occurrences fall after the timeline end
    view = classify(_tasks(), {}, day=3, timeline_start=-45, timeline_end=6)
    assert "video" not in _ids(view.upcoming)

    # Before the timeline starts nothing is due, but in-range tasks are upcoming
    view = classify(_tasks(), {}, day=-60, timeline_start=-10, timeline_end=200)
    assert view.due_today == ()
    assert _ids(view.upcoming) == ["welcome", "check-in", "video", "walk"]

    print("✓ Timeline bounds test passed")


def test_classify_timeline_and_loader():
    timeline = ProtocolTimeline("knee", _tasks(), timeline_start=-45, timeline_end=200)
    store = InMemoryStore()
    store.add_protocol(timeline)
    store.record_completion("patient-1", "knee", "walk")

    view = load_assignment_view(store, store, "patient-1", "knee", 3, -45, 200)

    assert _ids(view.completed) == ["walk"]
    assert view == classify_timeline(timeline, store.get_completion_records("patient-1", "knee"), 3)

    print("✓ Classify timeline and loader test passed")


def test_next_pending():
    view = classify(_tasks(), {}, day=3, timeline_start=-45, timeline_end=200)
    assert next_pending(view, 3, 200).id == "check-in"

    # Nothing due: earliest upcoming occurrence wins
    later = AssignmentView(upcoming=tuple(_tasks()[2:0:-1]))
    assert next_pending(later, 0, 200).id == "check-in"

    assert next_pending(AssignmentView(), 3, 200) is None

    print("✓ Next pending test passed")


if __name__ == '__main__':
    print("\n" + "="*60)
    print("TESTING ASSIGNMENT TRACKER")
    print("="*60 + "\n")

    test_partition()
    test_completed_wins()
    test_timeline_bounds()
    test_classify_timeline_and_loader()
    test_next_pending()

    print("\n" + "="*60)
    print("ALL ASSIGNMENT TRACKER TESTS PASSED ✓")
    print("="*60 + "\n")
