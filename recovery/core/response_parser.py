"""
Response Parser - normalize free-text or transcribed-voice answers

Responsibilities:
- Map yes/no synonyms onto "yes" / "no"
- Pull the first number out of numeric answers ("about a 7")
- Resolve choice answers by 1-based position or label
- Trim everything else

Design principles:
- Never raises: unparsable input degrades to the trimmed original string,
  and the validator decides whether it is acceptable
- No acceptance rules here (those live only in response_validator)
- Keycap emoji and check/cross marks are accepted, since chat clients
  send them from quick-reply buttons
"""

import logging
import re
from typing import Any

from recovery.contracts import CHOICE_TYPES, NUMERIC_TYPES, ConversationalStep, QuestionType

logger = logging.getLogger(__name__)

# Yes/no normalization mappings
YES_VALUES = {'yes', 'y', 'yeah', 'yep', 'sure', 'ok', 'okay', 'true', '✅'}
NO_VALUES = {'no', 'n', 'nope', 'nah', 'false', '❌'}

# Keycap emoji -> number (0-9 are digit + U+FE0F + U+20E3)
KEYCAP_NUMBERS = {f"{digit}\ufe0f\u20e3": digit for digit in range(10)}
KEYCAP_NUMBERS['\U0001f51f'] = 10

_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")
_LEADING_INDEX = re.compile(r"^(\d+)")


def _to_number(text: str):
    """First number in text as int (when integral) or float, None if absent"""
    match = _NUMBER_PATTERN.search(text)
    if match is None:
        return None
    number = float(match.group(0))
    return int(number) if number.is_integer() else number


def _parse_choice(step: ConversationalStep, text: str) -> Any:
    index = None
    if text in KEYCAP_NUMBERS:
        index = KEYCAP_NUMBERS[text] - 1
    else:
        match = _LEADING_INDEX.match(text)
        if match:
            index = int(match.group(1)) - 1

    if index is not None and 0 <= index < len(step.options):
        return step.options[index].value

    lowered = text.lower()
    for option in step.options:
        if str(option.label).strip().lower() == lowered:
            return option.value

    return text


def parse_input(step: ConversationalStep, raw: Any) -> Any:
    """
    Normalize a raw answer according to the step's question type.

    Args:
        step: Step being answered
        raw: Raw user text (voice answers arrive already transcribed)

    Returns:
        Normalized value: "yes"/"no", a number, an option value, or the
        trimmed input string when nothing applies

    Examples:
        >>> parse_input(yes_no_step, "Yep")
        'yes'
        >>> parse_input(pain_step, "pain is about 7 today")
        7
        >>> parse_input(choice_step, "2")   # second option's value
        'moderate'
    """
    text = raw.strip() if isinstance(raw, str) else ("" if raw is None else str(raw).strip())
    step_type = step.type

    if step_type == QuestionType.YES_NO:
        lowered = text.lower()
        if lowered in YES_VALUES:
            return "yes"
        if lowered in NO_VALUES:
            return "no"
        return text

    if step_type in NUMERIC_TYPES:
        if text in KEYCAP_NUMBERS:
            return KEYCAP_NUMBERS[text]
        number = _to_number(text)
        return text if number is None else number

    if step_type in CHOICE_TYPES:
        return _parse_choice(step, text)

    # date is format-checked by the validator, never reformatted here
    return text
