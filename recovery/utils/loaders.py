"""
Loaders - convert stored JSON into contracts and back

All loosely typed external data is parsed here, at the store boundary, so
the core only ever sees the frozen dataclasses from recovery.contracts.

Accepted input shapes:
- snake_case keys (canonical) and camelCase aliases (legacy exports)
- Legacy task scheduling: {"day": 3, "frequency": {"startDay": 3,
  "stopDay": 10, "repeat": true, "type": "weekly", "interval": 2}}
- Form references either as "form_ref" or inside "content"
  ({"formId": ...} or the same as a JSON string)
- Options as [{"label", "value"}] or plain strings

Unknown repeat kinds and question types are kept verbatim and logged; the
core applies its documented fallbacks. Unknown task kinds are rejected.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from recovery.contracts import (
    AssignmentView,
    CompletionRecord,
    ConversationalFormData,
    ConversationalStep,
    FormDefinition,
    FormSection,
    FormStatus,
    FrequencyRule,
    PatientFormProgress,
    Question,
    QuestionOption,
    QuestionType,
    RepeatKind,
    TaskDefinition,
    TaskKind,
    ValidationRules,
)
from recovery.core.frequency_projector import frequency_label
from recovery.core.protocol_timeline import (
    DEFAULT_TIMELINE_END,
    DEFAULT_TIMELINE_START,
    ProtocolTimeline,
)

logger = logging.getLogger(__name__)


# ========================
# Private Helpers
# ========================

def _get(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present, non-None value among keys"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _coerce_enum(enum_cls, value: Any, what: str) -> Any:
    """Enum member for value, or the raw value (logged) if unrecognised"""
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning(f"Unrecognised {what} '{value}', keeping as-is")
        return value


def _plain(value: Any) -> Any:
    """Enum members -> their values, for JSON output"""
    return value.value if isinstance(value, Enum) else value


# ========================
# Protocols and tasks
# ========================

def frequency_rule_from_dict(data: Optional[Mapping[str, Any]],
                             fallback_day: Optional[int] = None) -> FrequencyRule:
    """
    Parse a frequency rule.

    Raises:
        ValueError: If no start day can be determined, or a repeating rule
            stops before it starts
    """
    data = data or {}
    start_day = _get(data, 'start_day', 'startDay', default=fallback_day)
    if start_day is None:
        raise ValueError("Frequency rule has no start day")

    repeat = bool(_get(data, 'repeat', default=False))
    stop_day = _get(data, 'stop_day', 'stopDay', default=start_day)
    repeat_kind = _get(data, 'repeat_kind', 'repeatKind', 'type', default=RepeatKind.DAILY.value)
    interval = _get(data, 'interval', default=1)

    rule = FrequencyRule(
        start_day=int(start_day),
        stop_day=int(stop_day),
        repeat=repeat,
        repeat_kind=_coerce_enum(RepeatKind, repeat_kind, "repeat kind"),
        interval=int(interval),
    )
    if rule.repeat and rule.stop_day < rule.start_day:
        raise ValueError(
            f"Repeating rule stops (day {rule.stop_day}) before it starts (day {rule.start_day})"
        )
    return rule


def _form_ref_from_content(content: Any) -> Optional[str]:
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except json.JSONDecodeError:
            return None
    if isinstance(content, Mapping):
        return _get(content, 'formId', 'form_id')
    return None


def task_from_dict(data: Mapping[str, Any]) -> TaskDefinition:
    """
    Parse a task definition.

    Raises:
        ValueError: Unknown task kind, missing id, or bad schedule
    """
    task_id = _get(data, 'id')
    if task_id is None:
        raise ValueError("Task has no id")

    kind_value = _get(data, 'kind', 'type')
    try:
        kind = TaskKind(kind_value)
    except ValueError:
        raise ValueError(f"Task {task_id} has unknown kind '{kind_value}'") from None

    schedule_data = _get(data, 'schedule', 'frequency')
    schedule = frequency_rule_from_dict(schedule_data, fallback_day=_get(data, 'day'))

    content = _get(data, 'content', default="")
    form_ref = _get(data, 'form_ref', 'formRef')
    if kind == TaskKind.FORM and form_ref is None:
        form_ref = _form_ref_from_content(content)
    if kind != TaskKind.FORM:
        form_ref = None

    return TaskDefinition(
        id=str(task_id),
        kind=kind,
        title=_get(data, 'title', default=""),
        content=content if isinstance(content, str) else json.dumps(content),
        required=bool(_get(data, 'required', default=False)),
        schedule=schedule,
        form_ref=form_ref,
        adjusted_from_original=bool(_get(data, 'adjusted_from_original', 'adjustedFromOriginal', default=False)),
    )


def tasks_from_list(items: Iterable[Mapping[str, Any]]) -> List[TaskDefinition]:
    return [task_from_dict(item) for item in items]


def timeline_from_dict(data: Mapping[str, Any]) -> ProtocolTimeline:
    """Parse a stored protocol into a ProtocolTimeline"""
    return ProtocolTimeline(
        protocol_id=str(_get(data, 'id', 'protocol_id')),
        name=_get(data, 'name', default=""),
        tasks=tuple(tasks_from_list(_get(data, 'tasks', default=[]))),
        timeline_start=int(_get(data, 'timeline_start', 'timelineStart', default=DEFAULT_TIMELINE_START)),
        timeline_end=int(_get(data, 'timeline_end', 'timelineEnd', default=DEFAULT_TIMELINE_END)),
        version=int(_get(data, 'version', default=1)),
    )


def frequency_rule_to_dict(rule: FrequencyRule) -> Dict[str, Any]:
    return {
        'start_day': rule.start_day,
        'stop_day': rule.last_day,
        'repeat': rule.repeat,
        'repeat_kind': _plain(rule.repeat_kind),
        'interval': rule.interval,
        'label': frequency_label(rule),
    }


def task_to_dict(task: TaskDefinition) -> Dict[str, Any]:
    return {
        'id': task.id,
        'kind': _plain(task.kind),
        'title': task.title,
        'content': task.content,
        'required': task.required,
        'schedule': frequency_rule_to_dict(task.schedule),
        'form_ref': task.form_ref,
        'adjusted_from_original': task.adjusted_from_original,
    }


def timeline_to_dict(timeline: ProtocolTimeline) -> Dict[str, Any]:
    return {
        'id': timeline.protocol_id,
        'name': timeline.name,
        'timeline_start': timeline.timeline_start,
        'timeline_end': timeline.timeline_end,
        'version': timeline.version,
        'tasks': [task_to_dict(task) for task in timeline.tasks],
    }


# ========================
# Forms
# ========================

def _option_from_any(item: Any) -> QuestionOption:
    if isinstance(item, Mapping):
        label = _get(item, 'label', 'value', default="")
        return QuestionOption(label=str(label), value=_get(item, 'value', default=label))
    return QuestionOption(label=str(item), value=item)


def _validation_rules_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[ValidationRules]:
    if not data:
        return None
    rules = ValidationRules(
        min=_get(data, 'min'),
        max=_get(data, 'max'),
        pattern=_get(data, 'pattern'),
        message=_get(data, 'message'),
    )
    if rules == ValidationRules():
        return None
    return rules


def question_from_dict(data: Mapping[str, Any]) -> Question:
    question_type = _get(data, 'type', 'question_type', 'questionType', default=QuestionType.TEXT.value)
    return Question(
        id=str(_get(data, 'id')),
        text=_get(data, 'text', 'question_text', 'questionText', default=""),
        type=_coerce_enum(QuestionType, question_type, "question type"),
        required=bool(_get(data, 'required', 'is_required', 'isRequired', default=False)),
        options=tuple(_option_from_any(item) for item in _get(data, 'options', default=[])),
        validation_rules=_validation_rules_from_dict(
            _get(data, 'validation_rules', 'validationRules')
        ),
        help_text=_get(data, 'help_text', 'helpText'),
        medical_definition=_get(data, 'medical_definition', 'medicalDefinition'),
        voice_prompt=_get(data, 'voice_prompt', 'voicePrompt'),
    )


def section_from_dict(data: Mapping[str, Any], position: int = 0) -> FormSection:
    return FormSection(
        id=str(_get(data, 'id')),
        name=_get(data, 'name', default=""),
        sort_order=int(_get(data, 'sort_order', 'sortOrder', default=position)),
        questions=tuple(question_from_dict(q) for q in _get(data, 'questions', default=[])),
    )


def form_from_dict(data: Mapping[str, Any]) -> FormDefinition:
    """
    Parse a stored form definition.

    Sections without a sort order keep their stored position.

    Raises:
        ValueError: If two sections share a sort order
    """
    sections = tuple(
        section_from_dict(section, position)
        for position, section in enumerate(_get(data, 'sections', default=[]))
    )
    orders = [section.sort_order for section in sections]
    if len(orders) != len(set(orders)):
        raise ValueError(f"Form {_get(data, 'id')} has duplicate section sort orders: {orders}")

    return FormDefinition(
        id=str(_get(data, 'id')),
        name=_get(data, 'name', default=""),
        description=_get(data, 'description'),
        sections=sections,
        estimated_minutes=_get(data, 'estimated_minutes', 'estimatedMinutes', 'estimatedCompletionTime'),
        allow_partial_completion=bool(_get(data, 'allow_partial_completion', 'allowPartialCompletion', default=False)),
        voice_enabled=bool(_get(data, 'voice_enabled', 'voiceEnabled', 'voiceInputEnabled', default=False)),
        clinical_purpose=_get(data, 'clinical_purpose', 'clinicalPurpose'),
    )


def _option_to_dict(option: QuestionOption) -> Dict[str, Any]:
    return {'label': option.label, 'value': option.value}


def step_to_dict(step: ConversationalStep) -> Dict[str, Any]:
    rules = step.validation_rules
    return {
        'step_id': step.step_id,
        'section_id': step.section_id,
        'section_name': step.section_name,
        'question_id': step.question_id,
        'question': step.question,
        'type': _plain(step.type),
        'required': step.required,
        'options': [_option_to_dict(option) for option in step.options],
        'validation_rules': None if rules is None else {
            'min': rules.min, 'max': rules.max,
            'pattern': rules.pattern, 'message': rules.message,
        },
        'help_text': step.help_text,
        'medical_definition': step.medical_definition,
        'next_step_id': step.next_step_id,
        'conditional_next': [
            {'field': c.field, 'operator': c.operator, 'value': c.value,
             'next_step_id': c.next_step_id}
            for c in step.conditional_next
        ],
    }


def form_data_to_dict(form_data: ConversationalFormData) -> Dict[str, Any]:
    return {
        'form_id': form_data.form.id,
        'form_name': form_data.form.name,
        'total_questions': form_data.total_questions,
        'required_questions': form_data.required_questions,
        'conversational_flow': [step_to_dict(step) for step in form_data.conversational_flow],
    }


# ========================
# Progress and completion records
# ========================

def progress_to_dict(progress: PatientFormProgress) -> Dict[str, Any]:
    """
    Serialize progress for storage.

    Sets become sorted lists; responses keep answer order (JSON objects
    preserve insertion order).
    """
    return {
        'patient_id': progress.patient_id,
        'form_instance_id': progress.form_instance_id,
        'form_id': progress.form_id,
        'current_step_id': progress.current_step_id,
        'responses': dict(progress.responses),
        'completed_step_ids': sorted(progress.completed_step_ids),
        'skipped_step_ids': sorted(progress.skipped_step_ids),
        'step_history': list(progress.step_history),
        'status': _plain(progress.status),
        'started_at': progress.started_at,
        'completed_at': progress.completed_at,
        'updated_at': progress.updated_at,
        'version': progress.version,
    }


def progress_from_dict(data: Mapping[str, Any]) -> PatientFormProgress:
    return PatientFormProgress(
        patient_id=str(data['patient_id']),
        form_instance_id=str(data['form_instance_id']),
        form_id=str(data['form_id']),
        current_step_id=data.get('current_step_id'),
        responses=dict(data.get('responses') or {}),
        completed_step_ids=frozenset(data.get('completed_step_ids') or ()),
        skipped_step_ids=frozenset(data.get('skipped_step_ids') or ()),
        step_history=tuple(data.get('step_history') or ()),
        status=FormStatus(data.get('status', FormStatus.PENDING.value)),
        started_at=data.get('started_at'),
        completed_at=data.get('completed_at'),
        updated_at=data.get('updated_at'),
        version=int(data.get('version', 0)),
    )


def completion_records_from_dict(data: Mapping[str, Any]) -> Dict[str, CompletionRecord]:
    """task_id -> {status, completed_at} mapping into CompletionRecords"""
    return {
        str(task_id): CompletionRecord(
            status=_get(record, 'status', default="pending"),
            completed_at=_get(record, 'completed_at', 'completedAt'),
        )
        for task_id, record in data.items()
    }


def completion_records_to_dict(records: Mapping[str, CompletionRecord]) -> Dict[str, Any]:
    return {
        task_id: {'status': record.status, 'completed_at': record.completed_at}
        for task_id, record in records.items()
    }


def assignment_view_to_dict(view: AssignmentView) -> Dict[str, Any]:
    return {
        'due_today': [task_to_dict(task) for task in view.due_today],
        'upcoming': [task_to_dict(task) for task in view.upcoming],
        'completed': [task_to_dict(task) for task in view.completed],
    }
