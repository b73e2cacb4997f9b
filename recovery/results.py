"""
Result types returned by the validator, progress tracker and conversation
manager.

These are plain frozen values; callers never need to inspect module state.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from recovery.contracts import PatientFormProgress
from recovery.errors import ValidationError


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one answer.

    Attributes:
        is_valid: Whether the answer can be accepted
        error: Human-readable reason when invalid (re-prompt with it)
    """
    is_valid: bool
    error: Optional[str] = None

    def raise_for_error(self, step_id: Optional[str] = None) -> None:
        """
        Raise instead of returning data.

        Raises:
            ValidationError: If the answer was invalid
        """
        if not self.is_valid:
            raise ValidationError(self.error, step_id)


@dataclass(frozen=True)
class ProgressUpdate:
    """
    Outcome of applying one patient input to a form instance.

    Returned by: FormProgressTracker.record_response, skip, back, pause,
    finish and handle_input.

    Attributes:
        progress: Progress after the input. Identical to the input progress
            when the input was rejected.
        accepted: Whether the input changed the progress
        error: Explanation when rejected (validation failure, skip of a
            required question, response to a completed form, ...)
        intent: ConversationIntent value that was applied
        parsed_value: Normalized answer (answers only)
    """
    progress: PatientFormProgress
    accepted: bool
    error: Optional[str] = None
    intent: str = "answer"
    parsed_value: Any = None

    @property
    def is_complete(self) -> bool:
        return self.progress.status == "completed"


@dataclass(frozen=True)
class TurnResult:
    """
    Result of one conversational turn.

    Returned by: FormConversationManager.handle_turn

    Attributes:
        system_output: Text to show the patient (next prompt or message)
        progress: Saved progress after the turn (pass nothing back, the
            store is authoritative)
        debug: Debug information (intent, parsed value, errors, retries)
        turn_metadata: form_id, form_instance_id, current_step_id, percentage
        form_complete: Whether the form instance is finished
    """
    system_output: str
    progress: PatientFormProgress
    debug: Dict[str, Any] = field(default_factory=dict)
    turn_metadata: Dict[str, Any] = field(default_factory=dict)
    form_complete: bool = False
