"""
Conversation intents recognised before an input is treated as an answer.

Invariants:
- Intent phrases short-circuit answer processing (no parse, no validate)
- Matching is exact on the trimmed, lower-cased input, so "no pain" is an
  answer while "skip" is an intent
- Exactly one intent per input; ANSWER is the fallback

Design:
- ConversationIntent is a string-based enum for JSON serialization
- Phrase sets are closed and small on purpose: free text must not be
  mistaken for navigation
"""

from enum import Enum
from typing import Any


class ConversationIntent(str, Enum):
    """
    What a patient input asks the form flow to do.

    ANSWER: Record the input as the answer to the current step.
    SKIP:   Move past the current step without answering. Required steps
            can only be skipped when the form allows partial completion.
    BACK:   Return to the previously visited step.
    PAUSE:  Save progress and leave; the form stays resumable.
    FINISH: End the form now; completes it when allowed.
    """
    ANSWER = "answer"
    SKIP = "skip"
    BACK = "back"
    PAUSE = "pause"
    FINISH = "finish"


SKIP_PHRASES = frozenset({
    'skip', 'pass', 'next', "i don't know", 'not sure', 'n/a', 'na', '-',
})
BACK_PHRASES = frozenset({
    'back', 'previous', 'go back', 'last question', 'undo',
})
PAUSE_PHRASES = frozenset({
    'pause', 'stop', 'save', 'later', 'break', 'exit',
})
FINISH_PHRASES = frozenset({
    'finish', 'done', "i'm done", 'submit', 'finish form', 'end form',
})


def _normalize(raw: Any) -> str:
    if not isinstance(raw, str):
        return ""
    # Curly apostrophes come from mobile keyboards
    return raw.strip().lower().replace("’", "'")


def is_skip_intent(raw: Any) -> bool:
    return _normalize(raw) in SKIP_PHRASES


def is_back_intent(raw: Any) -> bool:
    return _normalize(raw) in BACK_PHRASES


def is_pause_intent(raw: Any) -> bool:
    return _normalize(raw) in PAUSE_PHRASES


def is_finish_intent(raw: Any) -> bool:
    return _normalize(raw) in FINISH_PHRASES


def classify_intent(raw: Any) -> ConversationIntent:
    """
    Classify a raw input.

    Examples:
        >>> classify_intent("Skip")
        <ConversationIntent.SKIP: 'skip'>
        >>> classify_intent("7")
        <ConversationIntent.ANSWER: 'answer'>
    """
    if is_skip_intent(raw):
        return ConversationIntent.SKIP
    if is_back_intent(raw):
        return ConversationIntent.BACK
    if is_pause_intent(raw):
        return ConversationIntent.PAUSE
    if is_finish_intent(raw):
        return ConversationIntent.FINISH
    return ConversationIntent.ANSWER
