"""
Form Progress Tracker - advance a patient through a compiled form

Responsibilities:
- Create progress records for new form instances
- Record answers (parse -> validate -> store -> advance)
- Apply skip / back / pause / finish intents
- Decide completion and compute completion percentage

Design principles:
- Functional core: every operation takes a PatientFormProgress and returns
  a new one inside a ProgressUpdate; nothing is mutated or cached
- Status is monotonic: pending -> in_progress -> completed, and a completed
  form never reopens
- Rejected input returns the input progress unchanged plus an error
- Persistence and concurrency belong to the store (see persistence.py);
  the tracker never touches version numbers

Completion rule:
- The flow must be exhausted (no next step) AND every required step must
  hold an answer. Reaching the end with required answers missing keeps the
  form in_progress and points current_step_id at the first missing one.
- When the form allows partial completion, an explicit finish completes
  it regardless, with completion_percentage below 100.
"""

import logging
import math
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from recovery.contracts import (
    ConditionalNext,
    ConversationalFormData,
    ConversationalStep,
    FormStatus,
    PatientFormProgress,
)
from recovery.core.form_compiler import find_step, first_step_id
from recovery.core.response_parser import parse_input
from recovery.core.response_validator import to_number, validate
from recovery.results import ProgressUpdate
from recovery.utils.helpers import utc_now_iso
from recovery.utils.intents import ConversationIntent, classify_intent

logger = logging.getLogger(__name__)

ALREADY_COMPLETED_MESSAGE = "This form has already been completed."
NOTHING_TO_ANSWER_MESSAGE = "There is no question waiting for an answer."
REQUIRED_SKIP_MESSAGE = (
    "This question is required and can't be skipped. Please provide an answer."
)
AT_FIRST_QUESTION_MESSAGE = "You're already at the first question."


def completion_percentage(progress: PatientFormProgress, total_questions: int) -> int:
    """
    Answered steps as a rounded percentage of all questions.

    Rounds half up (33.3 -> 33, 66.7 -> 67, 12.5 -> 13).

    Args:
        progress: Progress record
        total_questions: Question count of the compiled form

    Returns:
        int: 0-100
    """
    if total_questions <= 0:
        return 100 if progress.status == FormStatus.COMPLETED else 0
    return int(math.floor(len(progress.completed_step_ids) / total_questions * 100 + 0.5))


def evaluate_condition(condition: ConditionalNext, responses: Dict[str, Any]) -> bool:
    """
    Test one branching condition against recorded responses.

    Unknown operators and missing responses evaluate to False.
    """
    if condition.field not in responses:
        return False
    actual = responses[condition.field]
    operator = condition.operator

    if operator == "equals":
        if isinstance(actual, str) and isinstance(condition.value, str):
            return actual.strip().lower() == condition.value.strip().lower()
        return actual == condition.value

    if operator == "not_equals":
        return not evaluate_condition(replace(condition, operator="equals"), responses)

    if operator in ("greater_than", "less_than"):
        left, right = to_number(actual), to_number(condition.value)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right

    if operator == "contains":
        if isinstance(actual, (list, tuple, set, frozenset)):
            return condition.value in actual
        return str(condition.value).lower() in str(actual).lower()

    logger.warning(f"Unknown branching operator '{operator}' on field {condition.field}")
    return False


class FormProgressTracker:
    """
    Stateless progress operations for one compiled form.

    Safe to share between requests: holds only the compiled flow.
    """

    def __init__(self, form_data: ConversationalFormData,
                 clock: Callable[[], str] = utc_now_iso):
        """
        Args:
            form_data: Output of compile_form()
            clock: Returns the current time as ISO-8601 string (injectable
                for tests)
        """
        self.form_data = form_data
        self.form = form_data.form
        self.clock = clock

    # ========================
    # Queries
    # ========================

    def step(self, step_id: str) -> ConversationalStep:
        """Step by id (raises UnknownStepError)"""
        return find_step(self.form_data, step_id)

    def current_step(self, progress: PatientFormProgress) -> Optional[ConversationalStep]:
        if progress.current_step_id is None:
            return None
        return self.step(progress.current_step_id)

    def missing_required(self, progress: PatientFormProgress) -> List[str]:
        """Required step ids without a recorded answer, in flow order"""
        return [
            step.step_id for step in self.form_data.conversational_flow
            if step.required and step.question_id not in progress.responses
        ]

    def completion_percentage(self, progress: PatientFormProgress) -> int:
        return completion_percentage(progress, self.form_data.total_questions)

    # ========================
    # Lifecycle
    # ========================

    def start(self, patient_id: str, form_instance_id: str) -> PatientFormProgress:
        """
        New progress record positioned on the first step.

        A form without questions is complete from the start.
        """
        now = self.clock()
        first = first_step_id(self.form_data)
        progress = PatientFormProgress(
            patient_id=patient_id,
            form_instance_id=form_instance_id,
            form_id=self.form.id,
            current_step_id=first,
            updated_at=now,
        )

        if first is None:
            logger.info(f"Form {self.form.id} has no questions; instance {form_instance_id} complete")
            return replace(progress, status=FormStatus.COMPLETED, started_at=now, completed_at=now)

        logger.info(f"Started form {self.form.id} instance {form_instance_id} for patient {patient_id}")
        return progress

    def begin(self, progress: PatientFormProgress) -> PatientFormProgress:
        """Explicit start: pending -> in_progress (no-op otherwise)"""
        self._check_form(progress)
        if progress.status != FormStatus.PENDING:
            return progress
        now = self.clock()
        return replace(progress, status=FormStatus.IN_PROGRESS, started_at=now, updated_at=now)

    # ========================
    # Inputs
    # ========================

    def handle_input(self, progress: PatientFormProgress, raw: Any) -> ProgressUpdate:
        """
        Apply one raw patient input.

        Navigation intents are recognised first and never reach the parser
        or validator; anything else answers the current step.
        """
        intent = classify_intent(raw)

        if intent == ConversationIntent.SKIP:
            return self.skip(progress)
        if intent == ConversationIntent.BACK:
            return self.back(progress)
        if intent == ConversationIntent.PAUSE:
            return self.pause(progress)
        if intent == ConversationIntent.FINISH:
            return self.finish(progress)

        if progress.status == FormStatus.COMPLETED:
            return self._reject(progress, ALREADY_COMPLETED_MESSAGE, ConversationIntent.ANSWER)
        if progress.current_step_id is None:
            return self._reject(progress, NOTHING_TO_ANSWER_MESSAGE, ConversationIntent.ANSWER)

        return self.record_response(progress, progress.current_step_id, raw)

    def record_response(self, progress: PatientFormProgress, step_id: str,
                        raw_value: Any) -> ProgressUpdate:
        """
        Record an answer to a step.

        On invalid input the progress is returned unchanged with the
        validator's message. On valid input the normalized value is stored
        under the question id, the step is marked complete and
        current_step_id advances.

        Raises:
            UnknownStepError: If step_id is not in the compiled flow
        """
        self._check_form(progress)
        if progress.status == FormStatus.COMPLETED:
            return self._reject(progress, ALREADY_COMPLETED_MESSAGE, ConversationIntent.ANSWER)

        step = self.step(step_id)
        parsed = parse_input(step, raw_value)
        result = validate(step, parsed)

        if not result.is_valid:
            logger.debug(f"[{step_id}] Rejected answer {raw_value!r}: {result.error}")
            return ProgressUpdate(
                progress=progress,
                accepted=False,
                error=result.error,
                intent=ConversationIntent.ANSWER.value,
                parsed_value=parsed,
            )

        # Re-answering moves the question to the end of the answer order
        responses = {k: v for k, v in progress.responses.items() if k != step.question_id}
        responses[step.question_id] = parsed

        completed = progress.completed_step_ids | {step_id}
        updated = self._advance(
            progress,
            step,
            responses=responses,
            completed_step_ids=completed,
            skipped_step_ids=progress.skipped_step_ids - {step_id},
        )

        logger.debug(f"[{step_id}] Recorded answer {parsed!r}")
        return ProgressUpdate(
            progress=updated,
            accepted=True,
            intent=ConversationIntent.ANSWER.value,
            parsed_value=parsed,
        )

    def skip(self, progress: PatientFormProgress) -> ProgressUpdate:
        """
        Skip the current step.

        Required steps can only be skipped when the form allows partial
        completion.
        """
        self._check_form(progress)
        if progress.status == FormStatus.COMPLETED:
            return self._reject(progress, ALREADY_COMPLETED_MESSAGE, ConversationIntent.SKIP)
        if progress.current_step_id is None:
            return self._reject(progress, NOTHING_TO_ANSWER_MESSAGE, ConversationIntent.SKIP)

        step = self.step(progress.current_step_id)
        if step.required and not self.form.allow_partial_completion:
            return self._reject(progress, REQUIRED_SKIP_MESSAGE, ConversationIntent.SKIP)

        updated = self._advance(
            progress,
            step,
            responses=progress.responses,
            completed_step_ids=progress.completed_step_ids,
            skipped_step_ids=progress.skipped_step_ids | {step.step_id},
        )

        logger.debug(f"[{step.step_id}] Skipped")
        return ProgressUpdate(progress=updated, accepted=True, intent=ConversationIntent.SKIP.value)

    def back(self, progress: PatientFormProgress) -> ProgressUpdate:
        """Return to the previously visited step (its answer is kept until replaced)"""
        self._check_form(progress)
        if progress.status == FormStatus.COMPLETED:
            return self._reject(progress, ALREADY_COMPLETED_MESSAGE, ConversationIntent.BACK)
        if not progress.step_history:
            return self._reject(progress, AT_FIRST_QUESTION_MESSAGE, ConversationIntent.BACK)

        previous = progress.step_history[-1]
        updated = replace(
            progress,
            current_step_id=previous,
            step_history=progress.step_history[:-1],
            updated_at=self.clock(),
        )
        return ProgressUpdate(progress=updated, accepted=True, intent=ConversationIntent.BACK.value)

    def pause(self, progress: PatientFormProgress) -> ProgressUpdate:
        """Save-and-leave: status is unchanged and the form stays resumable"""
        self._check_form(progress)
        if progress.status == FormStatus.COMPLETED:
            return self._reject(progress, ALREADY_COMPLETED_MESSAGE, ConversationIntent.PAUSE)

        logger.info(
            f"Paused form {self.form.id} instance {progress.form_instance_id} "
            f"at {self.completion_percentage(progress)}%"
        )
        updated = replace(progress, updated_at=self.clock())
        return ProgressUpdate(progress=updated, accepted=True, intent=ConversationIntent.PAUSE.value)

    def finish(self, progress: PatientFormProgress) -> ProgressUpdate:
        """
        Complete the form now.

        Allowed when every required step is answered, or when the form
        allows partial completion (percentage then stays below 100).
        """
        self._check_form(progress)
        if progress.status == FormStatus.COMPLETED:
            return self._reject(progress, ALREADY_COMPLETED_MESSAGE, ConversationIntent.FINISH)

        missing = self.missing_required(progress)
        if missing and not self.form.allow_partial_completion:
            noun = "question" if len(missing) == 1 else "questions"
            return self._reject(
                progress,
                f"Please answer the remaining {len(missing)} required {noun} before finishing.",
                ConversationIntent.FINISH,
            )

        updated = self._complete(progress)
        return ProgressUpdate(progress=updated, accepted=True, intent=ConversationIntent.FINISH.value)

    # ========================
    # Private Helpers
    # ========================

    def _check_form(self, progress: PatientFormProgress) -> None:
        if progress.form_id != self.form.id:
            raise ValueError(
                f"Progress belongs to form {progress.form_id}, tracker compiled {self.form.id}"
            )

    def _reject(self, progress: PatientFormProgress, message: str,
                intent: ConversationIntent) -> ProgressUpdate:
        return ProgressUpdate(progress=progress, accepted=False, error=message, intent=intent.value)

    def _next_step_id(self, step: ConversationalStep, responses: Dict[str, Any],
                      handled_step_ids) -> Optional[str]:
        """
        Step to ask after `step`.

        A matching conditional_next entry wins over the linear successor.
        Steps already answered or skipped are passed over, which only
        happens after going back or revisiting a missed question.
        """
        next_id = step.next_step_id
        for condition in step.conditional_next:
            if evaluate_condition(condition, responses):
                next_id = condition.next_step_id
                break

        seen = set()
        while next_id is not None and next_id in handled_step_ids and next_id not in seen:
            seen.add(next_id)
            next_id = self.step(next_id).next_step_id
        return next_id

    def _advance(self, progress: PatientFormProgress, step: ConversationalStep,
                 responses: Dict[str, Any], completed_step_ids, skipped_step_ids) -> PatientFormProgress:
        now = self.clock()
        next_id = self._next_step_id(step, responses, set(completed_step_ids) | set(skipped_step_ids))

        updated = replace(
            progress,
            responses=responses,
            completed_step_ids=frozenset(completed_step_ids),
            skipped_step_ids=frozenset(skipped_step_ids),
            step_history=progress.step_history + (step.step_id,),
            current_step_id=next_id,
            status=FormStatus.IN_PROGRESS,
            started_at=progress.started_at or now,
            updated_at=now,
        )

        if next_id is not None:
            return updated

        # Flow exhausted
        missing = self.missing_required(updated)
        if not missing:
            return self._complete(updated)

        logger.info(
            f"Form {self.form.id} instance {progress.form_instance_id} reached the end "
            f"with {len(missing)} required questions unanswered"
        )
        return replace(updated, current_step_id=missing[0])

    def _complete(self, progress: PatientFormProgress) -> PatientFormProgress:
        now = self.clock()
        completed = replace(
            progress,
            status=FormStatus.COMPLETED,
            current_step_id=None,
            started_at=progress.started_at or now,
            completed_at=now,
            updated_at=now,
        )
        logger.info(
            f"Completed form {self.form.id} instance {progress.form_instance_id} "
            f"({self.completion_percentage(completed)}%)"
        )
        return completed
