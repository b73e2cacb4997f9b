"""
Assignment Tracker - classify a patient's protocol tasks for one day

Responsibilities:
- Partition tasks into completed / due today / upcoming
- Join the protocol timeline with external completion records
- Pick the next task the patient should work on

Design principles:
- Pure classification; loading happens through the store interfaces
- Buckets are disjoint: completed wins, then due today, then upcoming
- Authoring order is preserved inside every bucket
"""

import logging
from typing import Iterable, Mapping, Optional

from recovery.contracts import AssignmentView, CompletionRecord, TaskDefinition
from recovery.core.frequency_projector import is_active_on, next_active_day
from recovery.core.protocol_timeline import ProtocolTimeline

logger = logging.getLogger(__name__)

COMPLETED_STATUS = "completed"


def is_completed(task: TaskDefinition, completion_records: Mapping[str, CompletionRecord]) -> bool:
    record = completion_records.get(task.id)
    return record is not None and record.status == COMPLETED_STATUS


def classify(tasks: Iterable[TaskDefinition],
             completion_records: Mapping[str, CompletionRecord],
             day: int,
             timeline_start: int,
             timeline_end: int) -> AssignmentView:
    """
    Partition tasks for a patient on a protocol day.

    Args:
        tasks: Protocol tasks in authoring order
        completion_records: task_id -> CompletionRecord (external)
        day: Patient's current protocol day
        timeline_start: First protocol day (inclusive)
        timeline_end: Last protocol day (inclusive)

    Returns:
        AssignmentView(due_today, upcoming, completed)
    """
    due_today, upcoming, completed = [], [], []

    for task in tasks:
        if is_completed(task, completion_records):
            completed.append(task)
        elif timeline_start <= day <= timeline_end and is_active_on(task.schedule, day):
            due_today.append(task)
        elif _next_day_in_range(task, day, timeline_start, timeline_end) is not None:
            upcoming.append(task)

    logger.debug(
        f"Day {day}: {len(due_today)} due, {len(upcoming)} upcoming, "
        f"{len(completed)} completed"
    )
    return AssignmentView(
        due_today=tuple(due_today),
        upcoming=tuple(upcoming),
        completed=tuple(completed),
    )


def _next_day_in_range(task: TaskDefinition, day: int,
                       timeline_start: int, timeline_end: int) -> Optional[int]:
    # Occurrences before the timeline start do not count
    return next_active_day(task.schedule, max(day, timeline_start - 1), timeline_end)


def classify_timeline(timeline: ProtocolTimeline,
                      completion_records: Mapping[str, CompletionRecord],
                      day: int) -> AssignmentView:
    """classify() with bounds taken from the timeline"""
    return classify(timeline.tasks, completion_records, day,
                    timeline.timeline_start, timeline.timeline_end)


def load_assignment_view(store, completion_source, patient_id: str, protocol_id: str,
                         day: int, timeline_start: int, timeline_end: int) -> AssignmentView:
    """
    Build the assignment view from the external collaborators.

    Args:
        store: TaskFormStore (load_protocol_tasks)
        completion_source: CompletionRecordSource (get_completion_records)
        patient_id: Patient identifier
        protocol_id: Protocol identifier
        day: Patient's current protocol day
        timeline_start / timeline_end: Protocol bounds

    Store errors propagate unchanged.
    """
    tasks = store.load_protocol_tasks(protocol_id)
    records = completion_source.get_completion_records(patient_id, protocol_id)
    return classify(tasks, records, day, timeline_start, timeline_end)


def next_pending(view: AssignmentView, day: int, timeline_end: int) -> Optional[TaskDefinition]:
    """
    Task the patient should work on next.

    First task due today; otherwise the upcoming task whose next occurrence
    is earliest (authoring order breaks ties); None when nothing is left.
    """
    if view.due_today:
        return view.due_today[0]

    best, best_day = None, None
    for task in view.upcoming:
        next_day = next_active_day(task.schedule, day, timeline_end)
        if next_day is not None and (best_day is None or next_day < best_day):
            best, best_day = task, next_day
    return best
