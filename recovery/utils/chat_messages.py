"""
Chat message templates for conversational form delivery.

Fixed, deterministic text only; nothing here is generated. The chat
transport decides how to display it.

Templates:
- Form introduction / completion / pause / resume
- Validation feedback (re-prompt)
- Acknowledgments for answers that warrant one (pain level, emergency
  yes/no questions, medications)
"""

from typing import Any, Optional

from recovery.contracts import ConversationalStep, FormDefinition, QuestionType
from recovery.core.response_validator import to_number


def form_introduction(form: FormDefinition) -> str:
    """
    Opening message for a form.

    Examples:
        >>> form_introduction(form)
        "I'd like to help you complete the Daily Check-in. This should take about 3 minutes. Let's get started!"
    """
    text = f"I'd like to help you complete the {form.name}."
    if form.description:
        text += f" {form.description}"
    if form.estimated_minutes:
        text += f" This should take about {form.estimated_minutes} minutes."
    if form.allow_partial_completion:
        text += " You can save your progress and come back later if needed."
    return text + " Let's get started!"


def validation_feedback(error: str) -> str:
    return f"{error}\n\nLet's try that again."


def acknowledgment(step: ConversationalStep, value: Any) -> Optional[str]:
    """Short acknowledgment for an accepted answer, or None"""
    if step.type == QuestionType.PAIN_SCALE:
        level = to_number(value)
        if level is None:
            return None
        if level >= 7:
            return "I understand you're experiencing significant pain. I've noted this for your care team."
        if level >= 4:
            return "Thank you for letting me know about your pain level. We'll monitor this closely."
        if level <= 2:
            return "I'm glad to hear your pain is well-controlled."
        return None

    if step.type == QuestionType.YES_NO:
        if 'emergency' in step.question_id.lower() and value == "yes":
            return "This requires immediate attention. Please contact your care team right away."
        return None

    if step.type == QuestionType.MEDICATION_SEARCH:
        return f"Got it. I've recorded {value} in your medication list."

    return None


def form_completion(form: FormDefinition, total_questions: int, skipped_questions: int = 0) -> str:
    text = f"Great job! You've completed the {form.name}."
    if skipped_questions > 0:
        answered = total_questions - skipped_questions
        text += f" You answered {answered} out of {total_questions} questions."
    text += " Your responses have been saved and will be reviewed by your care team."
    if form.clinical_purpose:
        text += f" This information helps us {form.clinical_purpose[0].lower()}{form.clinical_purpose[1:]}."
    return text


def form_pause(form: FormDefinition, percentage: int) -> str:
    return (
        f"Your progress has been saved ({percentage}% complete). "
        f"You can continue the {form.name} anytime by selecting it from your tasks."
    )


def form_resume(form: FormDefinition, last_question: str, percentage: int) -> str:
    return (
        f"Welcome back! Let's continue with the {form.name} ({percentage}% complete).\n\n"
        f"We were at: \"{last_question}\""
    )


def already_completed(form: FormDefinition) -> str:
    return f"You've already completed the {form.name}. Thank you!"
