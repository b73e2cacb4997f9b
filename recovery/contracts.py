"""
Semantic contracts for recovery protocol scheduling and conversational forms.

This module defines immutable data structures that serve as contracts
between modules. These are NOT validators - they define shape and
semantics without enforcing rules.

Design principles:
- Frozen dataclasses (immutable after creation)
- No validation logic (contracts, not validators)
- No dependencies on other modules
- Tuples instead of lists so contracts stay hashable and immutable

Contents:
- FrequencyRule / TaskDefinition: protocol scheduling
- FormDefinition / FormSection / Question: assessment instruments
- ConversationalStep / ConversationalFormData: compiled form flow
- PatientFormProgress: per-patient audit trail of a form instance
- CompletionRecord / AssignmentView: assignment read model

Usage:
    from recovery.contracts import FrequencyRule, TaskDefinition
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class RepeatKind(str, Enum):
    """Repeat cadence of a recurring task (string values match stored JSON)"""
    DAILY = "daily"
    EVERY_OTHER_DAY = "everyOtherDay"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class TaskKind(str, Enum):
    MESSAGE = "message"
    FORM = "form"
    EXERCISE = "exercise"
    VIDEO = "video"


class QuestionType(str, Enum):
    """Closed set of question types a form may declare"""
    TEXT = "text"
    NUMBER = "number"
    YES_NO = "yes_no"
    SCALE = "scale"
    PAIN_SCALE = "pain_scale"
    MULTIPLE_CHOICE = "multiple_choice"
    SINGLE_CHOICE = "single_choice"
    DATE = "date"
    TIME = "time"
    EMAIL = "email"
    PHONE = "phone"
    MEDICATION_SEARCH = "medication_search"
    CONDITION_SEARCH = "condition_search"
    FILE_UPLOAD = "file_upload"
    IMAGE_UPLOAD = "image_upload"


class FormStatus(str, Enum):
    """
    Lifecycle of a patient form instance.

    Transitions are monotonic: pending -> in_progress -> completed.
    Nothing ever moves back to pending, and completed is terminal.
    """
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


CHOICE_TYPES = frozenset({QuestionType.MULTIPLE_CHOICE, QuestionType.SINGLE_CHOICE})
NUMERIC_TYPES = frozenset({QuestionType.NUMBER, QuestionType.SCALE, QuestionType.PAIN_SCALE})


# ========================
# Protocol scheduling
# ========================

@dataclass(frozen=True)
class FrequencyRule:
    """
    When a task is active relative to the protocol's day axis.

    Day 0 is the anchor event (surgery date), negative days are before it.

    Attributes:
        start_day: First active day (inclusive)
        stop_day: Last active day (inclusive). Ignored when repeat is False.
        repeat: Whether the task recurs inside [start_day, stop_day]
        repeat_kind: RepeatKind value. Kept as a plain string type so that
            unrecognised kinds loaded from storage survive to the projector,
            which flags them and falls back to daily.
        interval: Days between occurrences, only used by RepeatKind.CUSTOM

    Examples:
        >>> FrequencyRule(start_day=7)                      # day 7 only
        >>> FrequencyRule(1, 14, True, RepeatKind.DAILY)    # days 1..14
    """
    start_day: int
    stop_day: Optional[int] = None
    repeat: bool = False
    repeat_kind: str = RepeatKind.DAILY
    interval: int = 1

    @property
    def last_day(self) -> int:
        """Effective stop day (start_day for one-off rules)"""
        if not self.repeat or self.stop_day is None:
            return self.start_day
        return self.stop_day


@dataclass(frozen=True)
class TaskDefinition:
    """
    One scheduled unit of protocol content.

    Attributes:
        id: Identifier, unique within a protocol
        kind: TaskKind (message, form, exercise, video)
        title: Display title (opaque to scheduling)
        content: Display content (opaque to scheduling)
        required: Affects completion accounting, not scheduling
        schedule: FrequencyRule governing active days
        form_ref: FormDefinition id, only for TaskKind.FORM
        adjusted_from_original: True once a provider edited the task after
            creation. Adjusting produces a modified copy, never mutates history.
    """
    id: str
    kind: TaskKind
    title: str
    schedule: FrequencyRule
    content: str = ""
    required: bool = False
    form_ref: Optional[str] = None
    adjusted_from_original: bool = False


# ========================
# Form definitions
# ========================

@dataclass(frozen=True)
class QuestionOption:
    label: str
    value: Any


@dataclass(frozen=True)
class ValidationRules:
    """Optional author-supplied constraints (all fields optional)"""
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class Question:
    """
    A single question inside a form section.

    medical_definition is a clinical annotation shown to the patient;
    validation never looks at it.
    """
    id: str
    text: str
    type: str = QuestionType.TEXT
    required: bool = False
    options: Tuple[QuestionOption, ...] = ()
    validation_rules: Optional[ValidationRules] = None
    help_text: Optional[str] = None
    medical_definition: Optional[str] = None
    voice_prompt: Optional[str] = None


@dataclass(frozen=True)
class FormSection:
    id: str
    name: str
    sort_order: int
    questions: Tuple[Question, ...] = ()


@dataclass(frozen=True)
class FormDefinition:
    """
    A named assessment instrument.

    Sections are traversed in sort_order; questions in their stored order.
    """
    id: str
    name: str
    sections: Tuple[FormSection, ...] = ()
    description: Optional[str] = None
    estimated_minutes: Optional[int] = None
    allow_partial_completion: bool = False
    voice_enabled: bool = False
    clinical_purpose: Optional[str] = None


# ========================
# Compiled conversational flow
# ========================

@dataclass(frozen=True)
class ConditionalNext:
    """
    Branching rule attached to a step.

    Extension point: the compiler never emits these. When present, the
    progress tracker evaluates them against the recorded responses.

    Attributes:
        field: Question id whose response is tested
        operator: equals | not_equals | greater_than | less_than | contains
        value: Comparison operand
        next_step_id: Step to jump to when the condition holds
    """
    field: str
    operator: str
    value: Any
    next_step_id: str


@dataclass(frozen=True)
class ConversationalStep:
    """
    One question rendered as a single conversational turn.

    step_id is "{section_id}-{question_id}", so it is stable across
    recompilation of an unchanged form.
    """
    step_id: str
    section_id: str
    section_name: str
    question_id: str
    question: str
    type: str
    required: bool = False
    options: Tuple[QuestionOption, ...] = ()
    validation_rules: Optional[ValidationRules] = None
    help_text: Optional[str] = None
    medical_definition: Optional[str] = None
    voice_prompt: Optional[str] = None
    next_step_id: Optional[str] = None
    conditional_next: Tuple[ConditionalNext, ...] = ()


@dataclass(frozen=True)
class ConversationalFormData:
    """Compiler output: the form plus its linearized flow and totals"""
    form: FormDefinition
    conversational_flow: Tuple[ConversationalStep, ...]
    total_questions: int
    required_questions: int


# ========================
# Patient progress and assignment
# ========================

@dataclass(frozen=True)
class PatientFormProgress:
    """
    Per (patient, form instance) progress record. This is the audit trail:
    created on first interaction, only ever replaced by a newer copy, never
    deleted.

    Attributes:
        patient_id: Patient identifier
        form_instance_id: Identifier of this assignment of the form
        form_id: FormDefinition id the instance was compiled from
        current_step_id: Step awaiting an answer (None once exhausted)
        responses: question_id -> normalized value, in answer order
        completed_step_ids: Steps with an accepted answer
        skipped_step_ids: Steps the patient skipped
        step_history: Steps visited in order (drives "go back")
        status: FormStatus
        started_at / completed_at / updated_at: ISO-8601 UTC timestamps
        version: Number of times the record has been persisted. Stores use
            it for compare-and-swap.
    """
    patient_id: str
    form_instance_id: str
    form_id: str
    current_step_id: Optional[str] = None
    responses: Dict[str, Any] = field(default_factory=dict)
    completed_step_ids: FrozenSet[str] = frozenset()
    skipped_step_ids: FrozenSet[str] = frozenset()
    step_history: Tuple[str, ...] = ()
    status: FormStatus = FormStatus.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    updated_at: Optional[str] = None
    version: int = 0


@dataclass(frozen=True)
class CompletionRecord:
    """External fact that a patient finished a task or form instance"""
    status: str
    completed_at: Optional[str] = None


@dataclass(frozen=True)
class AssignmentView:
    """
    Derived (never stored) partition of a protocol's tasks for one day.

    The three buckets are pairwise disjoint and keep authoring order.
    """
    due_today: Tuple[TaskDefinition, ...] = ()
    upcoming: Tuple[TaskDefinition, ...] = ()
    completed: Tuple[TaskDefinition, ...] = ()
