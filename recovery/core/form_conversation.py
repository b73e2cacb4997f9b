"""
Form Conversation Manager - turn-by-turn delivery of a form (Functional Core)

Responsibilities:
- Load the form and the patient's progress through the store
- Apply one patient input with the progress tracker
- Save the new progress, retrying against fresh state on conflicts
- Produce the next system message (prompt, re-prompt or closing text)

Design principles:
- Ephemeral per turn (no progress held between turns; the store is
  authoritative)
- Thin orchestration layer (rules live in compiler, parser, validator
  and tracker)
- Never calls a transport; returns plain text and data
"""

import logging
from typing import Any, Dict, Optional

from recovery.contracts import FormStatus, PatientFormProgress
from recovery.core.form_compiler import compile_form, render_prompt
from recovery.core.form_progress_tracker import FormProgressTracker
from recovery.errors import ConflictError
from recovery.results import ProgressUpdate, TurnResult
from recovery.utils import chat_messages
from recovery.utils.intents import ConversationIntent

logger = logging.getLogger(__name__)


class FormConversationManager:
    """
    Orchestrates conversational form completion over a TaskFormStore.

    Functional core design:
    - handle_turn() reloads everything it needs each call
    - Conflicting saves are retried against the freshest progress
    """

    # Reload-and-retry attempts after a ConflictError
    MAX_CONFLICT_RETRIES = 2

    def __init__(self, store):
        """
        Args:
            store: TaskFormStore implementation

        Raises:
            TypeError: If store lacks the required methods
        """
        for method in ('load_form_definition', 'load_patient_form_progress',
                       'save_patient_form_progress'):
            if not callable(getattr(store, method, None)):
                raise TypeError(f"store must have callable {method}() method")

        self.store = store
        logger.info("Form Conversation Manager initialized")

    def open_form(self, patient_id: str, form_instance_id: str, form_id: str,
                  patient_name: Optional[str] = None) -> TurnResult:
        """
        Start or resume a form instance without consuming any input.

        New instances get the introduction plus the first prompt; existing
        ones get a resume message and the current prompt.
        """
        form_data = compile_form(self.store.load_form_definition(form_id))
        tracker = FormProgressTracker(form_data)
        progress = self.store.load_patient_form_progress(patient_id, form_instance_id)

        if progress is None:
            progress = self.store.save_patient_form_progress(
                tracker.start(patient_id, form_instance_id)
            )
            if progress.status == FormStatus.COMPLETED:
                output = chat_messages.form_completion(form_data.form, 0)
            else:
                intro = chat_messages.form_introduction(form_data.form)
                output = f"{intro}\n\n{render_prompt(tracker.current_step(progress), patient_name)}"
            return self._build_turn_result(output, tracker, progress, {'opened': True})

        if progress.status == FormStatus.COMPLETED:
            output = chat_messages.already_completed(form_data.form)
            return self._build_turn_result(output, tracker, progress, {'resumed': True})

        step = tracker.current_step(progress)
        output = chat_messages.form_resume(
            form_data.form, step.question, tracker.completion_percentage(progress)
        )
        output += f"\n\n{render_prompt(step, patient_name)}"
        return self._build_turn_result(output, tracker, progress, {'resumed': True})

    def handle_turn(self, patient_id: str, form_instance_id: str, form_id: str,
                    user_input: str, patient_name: Optional[str] = None) -> TurnResult:
        """
        Process one patient input for a form instance.

        Args:
            patient_id: Patient identifier
            form_instance_id: Form instance identifier
            form_id: Form definition id
            user_input: Raw text (or transcribed voice)
            patient_name: Optional name for prompt personalization

        Returns:
            TurnResult with the next system output and saved progress

        Raises:
            ConflictError: If saving still conflicts after MAX_CONFLICT_RETRIES
            UnknownStepError: If stored progress points at a step the
                current form no longer has
        """
        form_data = compile_form(self.store.load_form_definition(form_id))
        tracker = FormProgressTracker(form_data)

        attempt = 0
        while True:
            progress = self.store.load_patient_form_progress(patient_id, form_instance_id)
            is_new = progress is None
            if is_new:
                progress = tracker.start(patient_id, form_instance_id)

            update = tracker.handle_input(progress, user_input)

            # Rejected input leaves a stored record untouched
            if not update.accepted and not is_new:
                saved = progress
                break

            try:
                saved = self.store.save_patient_form_progress(update.progress)
                break
            except ConflictError as e:
                attempt += 1
                if attempt > self.MAX_CONFLICT_RETRIES:
                    logger.error(f"Giving up after {attempt} conflicting saves: {e}")
                    raise
                logger.warning(f"Save conflict (attempt {attempt}), reloading: {e}")

        debug = {
            'intent': update.intent,
            'accepted': update.accepted,
            'parsed_value': update.parsed_value,
            'error': update.error,
            'conflict_retries': attempt,
        }
        output = self._system_output(tracker, progress, update, saved, patient_name)
        return self._build_turn_result(output, tracker, saved, debug)

    # ========================
    # Private Helpers
    # ========================

    def _system_output(self, tracker: FormProgressTracker, before: PatientFormProgress,
                       update: ProgressUpdate, saved: PatientFormProgress,
                       patient_name: Optional[str]) -> str:
        form = tracker.form

        if not update.accepted:
            if before.status == FormStatus.COMPLETED:
                return chat_messages.already_completed(form)
            message = chat_messages.validation_feedback(update.error)
            step = tracker.current_step(before)
            if step is not None:
                message += f"\n\n{render_prompt(step, patient_name)}"
            return message

        if saved.status == FormStatus.COMPLETED:
            return chat_messages.form_completion(
                form, tracker.form_data.total_questions, len(saved.skipped_step_ids)
            )

        if update.intent == ConversationIntent.PAUSE.value:
            return chat_messages.form_pause(form, tracker.completion_percentage(saved))

        parts = []
        if update.intent == ConversationIntent.ANSWER.value:
            answered = tracker.step(saved.step_history[-1])
            ack = chat_messages.acknowledgment(answered, update.parsed_value)
            if ack:
                parts.append(ack)

        step = tracker.current_step(saved)
        if step is not None:
            parts.append(render_prompt(step, patient_name))
        return "\n\n".join(parts)

    def _build_turn_result(self, system_output: str, tracker: FormProgressTracker,
                           progress: PatientFormProgress, debug: Dict[str, Any]) -> TurnResult:
        return TurnResult(
            system_output=system_output,
            progress=progress,
            debug=debug,
            turn_metadata={
                'form_id': progress.form_id,
                'form_instance_id': progress.form_instance_id,
                'current_step_id': progress.current_step_id,
                'status': progress.status.value,
                'completion_percentage': tracker.completion_percentage(progress),
                'version': progress.version,
            },
            form_complete=progress.status == FormStatus.COMPLETED,
        )
