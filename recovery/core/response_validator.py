"""
Response Validator - single source of truth for "can this answer be accepted"

Responsibilities:
- Required-field check
- Type-specific checks (number bounds, email, phone, date, yes/no, scales)
- Author-supplied pattern rules

Design principles:
- Pure and total: never raises, reads nothing but its arguments
- Runs on parsed values (see response_parser.parse_input)
- No other module re-implements these checks

Check order: required -> type-specific -> custom pattern. The first
failure wins.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Optional

from recovery.contracts import ConversationalStep, QuestionType
from recovery.results import ValidationResult

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "This question is required."
INVALID_FORMAT_MESSAGE = "Invalid format."

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_PATTERN = re.compile(r"^\d{3}-?\d{3}-?\d{4}$")
_NON_PHONE_CHARS = re.compile(r"[^\d-]")

DATE_FORMATS = (
    "%m/%d/%Y",   # MM/DD/YYYY
    "%m-%d-%Y",   # MM-DD-YYYY
    "%Y-%m-%d",   # YYYY-MM-DD
    "%m/%d/%y",   # MM/DD/YY
    "%B %d, %Y",  # March 4, 2025
    "%b %d, %Y",  # Mar 4, 2025
)

VALID = ValidationResult(is_valid=True)


def _invalid(message: str) -> ValidationResult:
    return ValidationResult(is_valid=False, error=message)


def is_empty(value: Any) -> bool:
    """None, blank strings and empty collections count as no answer"""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def to_number(value: Any) -> Optional[float]:
    """Finite float for value, None if it is not a finite number"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_date(value: Any) -> Optional[datetime]:
    """Calendar date for value in one of DATE_FORMATS (or ISO-8601), else None"""
    if not isinstance(value, str):
        return None
    text = value.strip()
    for date_format in DATE_FORMATS:
        try:
            return datetime.strptime(text, date_format)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _format_bound(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


def _validate_type(step: ConversationalStep, value: Any) -> ValidationResult:
    step_type = step.type
    rules = step.validation_rules

    if step_type == QuestionType.NUMBER:
        number = to_number(value)
        if number is None:
            return _invalid("Please enter a valid number.")
        if rules is not None and rules.min is not None and number < rules.min:
            return _invalid(f"Value must be at least {_format_bound(rules.min)}.")
        if rules is not None and rules.max is not None and number > rules.max:
            return _invalid(f"Value must be no more than {_format_bound(rules.max)}.")

    elif step_type == QuestionType.EMAIL:
        if not isinstance(value, str) or not _EMAIL_PATTERN.match(value):
            return _invalid("Please enter a valid email address.")

    elif step_type == QuestionType.PHONE:
        digits = _NON_PHONE_CHARS.sub("", str(value))
        if not _PHONE_PATTERN.match(digits):
            return _invalid("Please enter a valid phone number.")

    elif step_type == QuestionType.DATE:
        if parse_date(value) is None:
            return _invalid("Please enter a valid date.")

    elif step_type == QuestionType.YES_NO:
        if not isinstance(value, str) or value.strip().lower() not in ("yes", "no"):
            return _invalid("Please answer Yes or No.")

    elif step_type in (QuestionType.PAIN_SCALE, QuestionType.SCALE):
        number = to_number(value)
        if number is None or number < 0 or number > 10:
            return _invalid("Please enter a number between 0 and 10.")

    return VALID


def _validate_pattern(step: ConversationalStep, value: Any) -> ValidationResult:
    rules = step.validation_rules
    if rules is None or not rules.pattern:
        return VALID

    try:
        pattern = re.compile(rules.pattern)
    except re.error as e:
        # Malformed author pattern: the check is skipped, never the answer
        logger.warning(f"[{step.step_id}] Ignoring invalid validation pattern {rules.pattern!r}: {e}")
        return VALID

    if not pattern.search(str(value)):
        return _invalid(rules.message or INVALID_FORMAT_MESSAGE)
    return VALID


def validate(step: ConversationalStep, value: Any) -> ValidationResult:
    """
    Decide whether a (parsed) answer is acceptable for a step.

    Args:
        step: Step being answered
        value: Parsed answer (output of parse_input)

    Returns:
        ValidationResult(is_valid, error)

    Examples:
        >>> validate(pain_step, "11")
        ValidationResult(is_valid=False, error='Please enter a number between 0 and 10.')
        >>> validate(yes_no_step, "yes")
        ValidationResult(is_valid=True, error=None)
    """
    if is_empty(value):
        if step.required:
            return _invalid(REQUIRED_MESSAGE)
        # Optional and unanswered: nothing further to check
        return VALID

    result = _validate_type(step, value)
    if not result.is_valid:
        return result

    return _validate_pattern(step, value)
