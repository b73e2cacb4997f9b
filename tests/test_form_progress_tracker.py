"""
Test Form Progress Tracker - answers, navigation and completion

Run with: python3 tests/test_form_progress_tracker.py
"""

import sys
import os
from dataclasses import replace
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from recovery.contracts import (
    ConditionalNext,
    FormDefinition,
    FormSection,
    FormStatus,
    PatientFormProgress,
    Question,
    QuestionType,
)
from recovery.core.form_compiler import compile_form
from recovery.core.form_progress_tracker import (
    FormProgressTracker,
    completion_percentage,
    evaluate_condition,
)
from recovery.errors import UnknownStepError


# ========================
# Test Utilities
# ========================

def fixed_clock():
    return "2025-03-10T09:00:00+00:00"


def _form(allow_partial=False, notes_required=False):
    return FormDefinition(
        id="check-in",
        name="Daily Check-in",
        allow_partial_completion=allow_partial,
        sections=(
            FormSection("pain", "Pain", 0, (
                Question("pain_level", "Rate your pain", QuestionType.PAIN_SCALE, required=True),
            )),
            FormSection("symptoms", "Symptoms", 1, (
                Question("fever", "Do you have a fever?", QuestionType.YES_NO, required=True),
                Question("notes", "Anything else?", QuestionType.TEXT, required=notes_required),
            )),
        ),
    )


def _tracker(**kwargs):
    return FormProgressTracker(compile_form(_form(**kwargs)), clock=fixed_clock)


def _started(tracker):
    return tracker.start("patient-1", "instance-1")


# ========================
# Tests
# ========================

def test_start():
    tracker = _tracker()
    progress = _started(tracker)

    assert progress.status == FormStatus.PENDING
    assert progress.current_step_id == "pain-pain_level"
    assert progress.responses == {}
    assert progress.version == 0
    assert tracker.completion_percentage(progress) == 0

    begun = tracker.begin(progress)
    assert begun.status == FormStatus.IN_PROGRESS
    assert begun.started_at == fixed_clock()

    print("✓ Start test passed")


def test_empty_form_starts_completed():
    tracker = FormProgressTracker(compile_form(FormDefinition("empty", "Empty")), clock=fixed_clock)
    progress = tracker.start("patient-1", "instance-1")

    assert progress.status == FormStatus.COMPLETED
    assert progress.current_step_id is None
    assert tracker.completion_percentage(progress) == 100

    print("✓ Empty form test passed")


def test_full_walkthrough():
    """Three answers take the form from 0% to 100% and complete it"""
    tracker = _tracker()
    progress = _started(tracker)
    percentages = [tracker.completion_percentage(progress)]

    for answer in ("7", "no", "Feeling better today"):
        update = tracker.handle_input(progress, answer)
        assert update.accepted, f"{answer!r} rejected: {update.error}"
        progress = update.progress
        percentages.append(tracker.completion_percentage(progress))

    assert percentages == [0, 33, 67, 100], f"Got {percentages}"
    assert update.is_complete
    assert progress.status == FormStatus.COMPLETED
    assert progress.current_step_id is None
    assert progress.completed_at == fixed_clock()
    assert progress.responses == {"pain_level": 7, "fever": "no", "notes": "Feeling better today"}
    assert list(progress.responses) == ["pain_level", "fever", "notes"], "Answer order is kept"
    assert progress.step_history == ("pain-pain_level", "symptoms-fever", "symptoms-notes")

    print("✓ Full walkthrough test passed")


def test_first_answer_moves_to_in_progress():
    tracker = _tracker()
    progress = tracker.handle_input(_started(tracker), "3").progress

    assert progress.status == FormStatus.IN_PROGRESS
    assert progress.started_at == fixed_clock()
    assert progress.current_step_id == "symptoms-fever"

    print("✓ In-progress transition test passed")


def test_invalid_answer_leaves_progress_unchanged():
    tracker = _tracker()
    progress = _started(tracker)

    update = tracker.handle_input(progress, "11")

    assert not update.accepted
    assert update.error == "Please enter a number between 0 and 10."
    assert update.progress is progress
    assert update.parsed_value == 11

    print("✓ Invalid answer test passed")


def test_completed_form_rejects_everything():
    tracker = _tracker()
    progress = _started(tracker)
    for answer in ("2", "no", "ok"):
        progress = tracker.handle_input(progress, answer).progress
    assert progress.status == FormStatus.COMPLETED

    for raw in ("5", "skip", "back", "pause", "done"):
        update = tracker.handle_input(progress, raw)
        assert not update.accepted, f"{raw!r} must not reopen a completed form"
        assert update.error == "This form has already been completed."
        assert update.progress.status == FormStatus.COMPLETED

    update = tracker.record_response(progress, "pain-pain_level", "4")
    assert not update.accepted
    assert progress.responses["pain_level"] == 2

    print("✓ Completed form monotonicity test passed")


def test_skip_rules():
    tracker = _tracker()
    progress = _started(tracker)

    # Required step, partial completion not allowed
    update = tracker.handle_input(progress, "skip")
    assert not update.accepted
    assert "required" in update.error

    # Optional step
    progress = tracker.handle_input(progress, "4").progress
    progress = tracker.handle_input(progress, "yes").progress
    update = tracker.handle_input(progress, "skip")
    assert update.accepted
    assert update.progress.skipped_step_ids == frozenset({"symptoms-notes"})
    assert update.progress.status == FormStatus.COMPLETED, "All required answered at end of flow"
    assert tracker.completion_percentage(update.progress) == 67

    print("✓ Skip rules test passed")


def test_end_of_flow_with_missing_required():
    tracker = _tracker(allow_partial=True)
    progress = _started(tracker)

    progress = tracker.handle_input(progress, "skip").progress      # pain skipped
    progress = tracker.handle_input(progress, "no").progress        # fever
    progress = tracker.handle_input(progress, "n/a").progress       # notes skipped

    assert progress.status == FormStatus.IN_PROGRESS
    assert progress.current_step_id == "pain-pain_level", "Points back at the missing required step"
    assert tracker.missing_required(progress) == ["pain-pain_level"]

    # Answering it now completes the form
    done = tracker.handle_input(progress, "3").progress
    assert done.status == FormStatus.COMPLETED
    assert done.skipped_step_ids == frozenset({"symptoms-notes"})

    print("✓ End of flow with missing required test passed")


def test_finish():
    strict = _tracker()
    progress = strict.handle_input(_started(strict), "5").progress

    update = strict.handle_input(progress, "done")
    assert not update.accepted
    assert update.error == "Please answer the remaining 1 required question before finishing."

    progress = strict.handle_input(progress, "yes").progress
    update = strict.finish(progress)
    assert update.accepted
    assert update.progress.status == FormStatus.COMPLETED
    assert strict.completion_percentage(update.progress) == 67

    partial = _tracker(allow_partial=True)
    update = partial.handle_input(_started(partial), "finish")
    assert update.accepted
    assert update.progress.status == FormStatus.COMPLETED
    assert partial.completion_percentage(update.progress) == 0

    print("✓ Finish test passed")


def test_back_and_reanswer():
    tracker = _tracker(notes_required=True)
    progress = _started(tracker)

    assert tracker.handle_input(progress, "back").error == "You're already at the first question."

    progress = tracker.handle_input(progress, "6").progress
    progress = tracker.handle_input(progress, "yes").progress
    assert progress.current_step_id == "symptoms-notes"

    progress = tracker.handle_input(progress, "back").progress
    assert progress.current_step_id == "symptoms-fever"
    progress = tracker.handle_input(progress, "previous").progress
    assert progress.current_step_id == "pain-pain_level"
    assert progress.responses["pain_level"] == 6, "Going back keeps the answer"

    # Re-answering passes over the already answered fever step
    progress = tracker.handle_input(progress, "4").progress
    assert progress.responses["pain_level"] == 4
    assert progress.current_step_id == "symptoms-notes"
    assert list(progress.responses) == ["fever", "pain_level"]

    print("✓ Back and re-answer test passed")


def test_pause_keeps_form_resumable():
    tracker = _tracker()
    progress = tracker.handle_input(_started(tracker), "8").progress

    update = tracker.handle_input(progress, "pause")

    assert update.accepted
    assert update.intent == "pause"
    assert update.progress.status == FormStatus.IN_PROGRESS
    assert update.progress.current_step_id == progress.current_step_id

    print("✓ Pause test passed")


def test_conditional_next():
    form_data = compile_form(_form())
    first = replace(
        form_data.conversational_flow[0],
        conditional_next=(ConditionalNext("pain_level", "greater_than", 7, "symptoms-notes"),),
    )
    form_data = replace(form_data, conversational_flow=(first,) + form_data.conversational_flow[1:])
    tracker = FormProgressTracker(form_data, clock=fixed_clock)

    high = tracker.handle_input(_started(tracker), "9").progress
    assert high.current_step_id == "symptoms-notes"

    low = tracker.handle_input(_started(tracker), "3").progress
    assert low.current_step_id == "symptoms-fever"

    print("✓ Conditional next test passed")


def test_evaluate_condition():
    responses = {"fever": "Yes", "pain": 6, "meds": ["ibuprofen"]}

    assert evaluate_condition(ConditionalNext("fever", "equals", "yes", "x"), responses)
    assert evaluate_condition(ConditionalNext("fever", "not_equals", "no", "x"), responses)
    assert evaluate_condition(ConditionalNext("pain", "less_than", 7, "x"), responses)
    assert evaluate_condition(ConditionalNext("meds", "contains", "ibuprofen", "x"), responses)
    assert not evaluate_condition(ConditionalNext("missing", "equals", "yes", "x"), responses)
    assert not evaluate_condition(ConditionalNext("pain", "between", 5, "x"), responses)

    print("✓ Evaluate condition test passed")


def test_completion_percentage_rounding():
    progress = PatientFormProgress("p", "i", "f", completed_step_ids=frozenset({"a"}))

    assert completion_percentage(progress, 8) == 13, "12.5 rounds half up"
    assert completion_percentage(progress, 3) == 33
    assert completion_percentage(progress, 0) == 0

    print("✓ Completion percentage test passed")


def test_unknown_step_and_wrong_form():
    tracker = _tracker()
    progress = _started(tracker)

    with pytest.raises(UnknownStepError):
        tracker.record_response(progress, "pain-gone", "3")

    with pytest.raises(ValueError):
        tracker.skip(replace(progress, form_id="other-form"))

    print("✓ Unknown step and wrong form test passed")


if __name__ == '__main__':
    print("\n" + "="*60)
    print("TESTING FORM PROGRESS TRACKER")
    print("="*60 + "\n")

    test_start()
    test_empty_form_starts_completed()
    test_full_walkthrough()
    test_first_answer_moves_to_in_progress()
    test_invalid_answer_leaves_progress_unchanged()
    test_completed_form_rejects_everything()
    test_skip_rules()
    test_end_of_flow_with_missing_required()
    test_finish()
    test_back_and_reanswer()
    test_pause_keeps_form_resumable()
    test_conditional_next()
    test_evaluate_condition()
    test_completion_percentage_rounding()
    test_unknown_step_and_wrong_form()

    print("\n" + "="*60)
    print("ALL FORM PROGRESS TRACKER TESTS PASSED ✓")
    print("="*60 + "\n")
