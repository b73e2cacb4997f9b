"""
Form Compiler - turn a structured form into a conversational step sequence

Responsibilities:
- Linearize sections (by sort_order) x questions (stored order) into steps
- Chain steps through next_step_id, skipping empty sections
- Count total and required questions
- Render a step as a chat prompt (pure formatting)

Design principles:
- Deterministic: same FormDefinition always yields identical steps and ids
  (PatientFormProgress.current_step_id depends on it across sessions)
- Recompute, don't patch: re-sorted sections require a fresh compile
- Medium independent: output is plain data, rendering is a separate
  pure function
- conditional_next is an extension point; nothing populates it here
"""

import logging
import re
from typing import List, Optional

from recovery.contracts import (
    ConversationalFormData,
    ConversationalStep,
    FormDefinition,
    QuestionType,
)
from recovery.errors import UnknownStepError

logger = logging.getLogger(__name__)

_SECOND_PERSON = re.compile(r"\b(you|your)\b", re.IGNORECASE)

# Guidance appended after the question text, per question type
TYPE_GUIDANCE = {
    QuestionType.YES_NO: "(Please answer Yes or No)",
    QuestionType.SCALE: "(On a scale of 0-10)",
    QuestionType.PAIN_SCALE: (
        "(On a scale of 0-10, where 0 is no pain and 10 is the worst pain imaginable)"
    ),
    QuestionType.DATE: "(Please provide the date in MM/DD/YYYY format)",
    QuestionType.TIME: "(Please provide the time as HH:MM AM/PM)",
    QuestionType.MEDICATION_SEARCH: (
        "(You can type the medication name or scan your medication bottle)"
    ),
    QuestionType.CONDITION_SEARCH: "(Start typing to search for medical conditions)",
    QuestionType.FILE_UPLOAD: "(Please upload the requested file)",
    QuestionType.IMAGE_UPLOAD: "(Please upload an image or take a photo)",
}


def step_id_for(section_id: str, question_id: str) -> str:
    """Stable step identifier for a question inside a section"""
    return f"{section_id}-{question_id}"


def compile_form(form: FormDefinition) -> ConversationalFormData:
    """
    Compile a form into its conversational flow.

    Sections are visited in sort_order (stable for equal keys), questions in
    stored order. Each step points at the following question; the last
    question of a section points at the first question of the next
    non-empty section; the final step has next_step_id None.

    Args:
        form: Form definition

    Returns:
        ConversationalFormData with flow, total_questions, required_questions
    """
    ordered = sorted(form.sections, key=lambda section: section.sort_order)

    # Flatten first, then chain, so empty sections drop out naturally
    flat = [
        (section, question)
        for section in ordered
        for question in section.questions
    ]

    steps: List[ConversationalStep] = []
    required_questions = 0

    for index, (section, question) in enumerate(flat):
        if question.required:
            required_questions += 1

        next_step_id = None
        if index + 1 < len(flat):
            next_section, next_question = flat[index + 1]
            next_step_id = step_id_for(next_section.id, next_question.id)

        steps.append(ConversationalStep(
            step_id=step_id_for(section.id, question.id),
            section_id=section.id,
            section_name=section.name,
            question_id=question.id,
            question=question.text,
            type=question.type,
            required=question.required,
            options=tuple(question.options),
            validation_rules=question.validation_rules,
            help_text=question.help_text or None,
            medical_definition=question.medical_definition or None,
            voice_prompt=question.voice_prompt or None,
            next_step_id=next_step_id,
            conditional_next=(),
        ))

    logger.info(
        f"Compiled form {form.id}: {len(steps)} steps "
        f"({required_questions} required) across {len(ordered)} sections"
    )

    return ConversationalFormData(
        form=form,
        conversational_flow=tuple(steps),
        total_questions=len(steps),
        required_questions=required_questions,
    )


def find_step(form_data: ConversationalFormData, step_id: str) -> ConversationalStep:
    """
    Look up a step by id.

    Raises:
        UnknownStepError: If step_id is not in the compiled flow
    """
    for step in form_data.conversational_flow:
        if step.step_id == step_id:
            return step
    raise UnknownStepError(step_id, form_data.form.id)


def find_step_by_question(form_data: ConversationalFormData, question_id: str) -> ConversationalStep:
    """
    Look up a step by question id.

    Raises:
        UnknownStepError: If no step carries that question
    """
    for step in form_data.conversational_flow:
        if step.question_id == question_id:
            return step
    raise UnknownStepError(question_id, form_data.form.id)


def first_step_id(form_data: ConversationalFormData) -> Optional[str]:
    """Id of the first step, None for a form without questions"""
    if not form_data.conversational_flow:
        return None
    return form_data.conversational_flow[0].step_id


def _personalize(text: str, patient_name: str) -> str:
    def substitute(match):
        return patient_name if match.group(1).lower() == "you" else f"{patient_name}'s"
    return _SECOND_PERSON.sub(substitute, text)


def render_prompt(step: ConversationalStep, patient_name: Optional[str] = None) -> str:
    """
    Render a step as a chat prompt.

    Pure and total: never raises and reads nothing but its arguments.

    Args:
        step: Conversational step
        patient_name: Optional name substituted into second-person phrasing

    Returns:
        str: Prompt text

    Examples:
        >>> render_prompt(yes_no_step)
        'Do you have a fever? (Please answer Yes or No)'
    """
    prompt = step.voice_prompt or step.question or ""

    if patient_name:
        prompt = _personalize(prompt, patient_name)

    if step.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.SINGLE_CHOICE):
        if step.options:
            lines = [
                f"{index}. {option.label}"
                for index, option in enumerate(step.options, start=1)
            ]
            prompt += "\n\nOptions:\n" + "\n".join(lines)
    else:
        guidance = TYPE_GUIDANCE.get(step.type)
        if guidance:
            prompt += f" {guidance}"

    if step.help_text:
        prompt += f"\n\n{step.help_text}"

    if step.medical_definition:
        prompt += f"\n\nMedical context: {step.medical_definition}"

    return prompt
