"""
Protocol Timeline - ordered task collection over a bounded day range

Responsibilities:
- Answer "which tasks are due on day D" within the timeline bounds
- List every day in range that has at least one task
- Day labels and recovery phases for the day-anchor convention
- Immutable authoring updates (add / update / remove task)

Design principles:
- Value object: every mutation returns a new timeline, history is never
  rewritten in place
- Updating a task marks the copy as adjusted_from_original
- Out-of-range day queries are programmer errors (OutOfRangeDayError)
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from recovery.contracts import TaskDefinition
from recovery.core.frequency_projector import is_active_on
from recovery.errors import OutOfRangeDayError

logger = logging.getLogger(__name__)

DEFAULT_TIMELINE_START = -45
DEFAULT_TIMELINE_END = 200


def day_label(day: int) -> str:
    """
    Label for a protocol day.

    Examples:
        >>> day_label(0)
        'Surgery'
        >>> day_label(-3)
        'Pre-Op 3'
        >>> day_label(12)
        'Post-Op 12'
    """
    if day == 0:
        return "Surgery"
    if day < 0:
        return f"Pre-Op {abs(day)}"
    return f"Post-Op {day}"


def day_phase(day: int) -> str:
    """Recovery phase a day falls in (enrollment, pre-op, surgery, early, intermediate, advanced)"""
    if day < -7:
        return "enrollment"
    if day < 0:
        return "pre-op"
    if day == 0:
        return "surgery"
    if day <= 7:
        return "early"
    if day <= 30:
        return "intermediate"
    return "advanced"


def recovery_day(anchor_date: Union[date, datetime], on_date: Union[date, datetime]) -> int:
    """
    Whole days from the anchor (surgery) date to on_date.

    Negative before surgery. Datetimes are reduced to their calendar date.
    """
    if isinstance(anchor_date, datetime):
        anchor_date = anchor_date.date()
    if isinstance(on_date, datetime):
        on_date = on_date.date()
    return (on_date - anchor_date).days


@dataclass(frozen=True)
class ProtocolTimeline:
    """
    A protocol's tasks plus its inclusive day bounds.

    Attributes:
        protocol_id: Protocol identifier
        tasks: Task definitions in authoring order (display/priority order)
        timeline_start: First protocol day (inclusive, usually negative)
        timeline_end: Last protocol day (inclusive)
        name: Display name
        version: Incremented on every authoring change
    """
    protocol_id: str
    tasks: Tuple[TaskDefinition, ...] = ()
    timeline_start: int = DEFAULT_TIMELINE_START
    timeline_end: int = DEFAULT_TIMELINE_END
    name: str = ""
    version: int = 1

    def __post_init__(self):
        if self.timeline_end < self.timeline_start:
            raise ValueError(
                f"timeline_end ({self.timeline_end}) is before "
                f"timeline_start ({self.timeline_start})"
            )
        # Accept any sequence, store a tuple
        object.__setattr__(self, 'tasks', tuple(self.tasks))

    # ========================
    # Queries
    # ========================

    def contains_day(self, day: int) -> bool:
        return self.timeline_start <= day <= self.timeline_end

    def _check_day(self, day: int) -> None:
        if not self.contains_day(day):
            raise OutOfRangeDayError(day, self.timeline_start, self.timeline_end)

    def tasks_for_day(self, day: int) -> List[TaskDefinition]:
        """
        Tasks active on day, in authoring order.

        Raises:
            OutOfRangeDayError: If day is outside the timeline
        """
        self._check_day(day)
        return [task for task in self.tasks if is_active_on(task.schedule, day)]

    def days_with_tasks(self) -> List[int]:
        """All days in range with at least one active task, ascending"""
        return [
            day for day in range(self.timeline_start, self.timeline_end + 1)
            if any(is_active_on(task.schedule, day) for task in self.tasks)
        ]

    def get_task(self, task_id: str) -> Optional[TaskDefinition]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def weeks(self) -> List[Tuple[int, int]]:
        """
        Calendar week windows over the timeline as (first_day, last_day).

        The last window is truncated at timeline_end.
        """
        return [
            (start, min(start + 6, self.timeline_end))
            for start in range(self.timeline_start, self.timeline_end + 1, 7)
        ]

    # Label helpers live at module level; exposed here for callers that
    # only hold a timeline.
    day_label = staticmethod(day_label)
    day_phase = staticmethod(day_phase)

    # ========================
    # Authoring (immutable updates)
    # ========================

    def add_task(self, task: TaskDefinition) -> "ProtocolTimeline":
        """
        Return a new timeline with task appended.

        Raises:
            ValueError: If a task with the same id already exists
        """
        if self.get_task(task.id) is not None:
            raise ValueError(f"Task {task.id} already exists in protocol {self.protocol_id}")

        logger.info(f"Protocol {self.protocol_id}: added task {task.id}")
        return replace(self, tasks=self.tasks + (task,), version=self.version + 1)

    def update_task(self, task: TaskDefinition) -> "ProtocolTimeline":
        """
        Return a new timeline with the task of the same id replaced.

        The stored copy is flagged adjusted_from_original; position in the
        authoring order is preserved.

        Raises:
            ValueError: If no task with that id exists
        """
        if self.get_task(task.id) is None:
            raise ValueError(f"Task {task.id} does not exist in protocol {self.protocol_id}")

        adjusted = replace(task, adjusted_from_original=True)
        tasks = tuple(adjusted if t.id == task.id else t for t in self.tasks)

        logger.info(f"Protocol {self.protocol_id}: adjusted task {task.id}")
        return replace(self, tasks=tasks, version=self.version + 1)

    def remove_task(self, task_id: str) -> "ProtocolTimeline":
        """
        Return a new timeline without the task.

        Raises:
            ValueError: If no task with that id exists
        """
        if self.get_task(task_id) is None:
            raise ValueError(f"Task {task_id} does not exist in protocol {self.protocol_id}")

        tasks = tuple(t for t in self.tasks if t.id != task_id)

        logger.info(f"Protocol {self.protocol_id}: removed task {task_id}")
        return replace(self, tasks=tasks, version=self.version + 1)
