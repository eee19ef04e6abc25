"""Command interpreter: maps worker text and button payloads to intents."""
import re
from enum import Enum
from typing import Optional, Tuple


class Intent(Enum):
    """What a worker asked for."""
    START = "start"
    COMPLETE = "done"
    PROBLEM = "problem"
    SKIP_LOCATION = "skip_location"
    GREETING = "greeting"


START_WORDS = frozenset({"start", "ok", "yes", "👍"})
DONE_WORDS = frozenset({"done", "complete", "finished", "✅"})
PROBLEM_WORDS = frozenset({"problem", "issue", "help", "❌"})
SKIP_LOCATION_WORDS = frozenset({"skip location"})

# Bare words that earn a "no active task" reply when nothing is assigned
NO_TASK_REPLY_WORDS = frozenset({"start", "done", "complete", "problem", "help", "ok", "yes"})

CALLBACK_PATTERN = re.compile(r"^task_(start|done|problem)_(.+)$")

CALLBACK_INTENTS = {
    "start": Intent.START,
    "done": Intent.COMPLETE,
    "problem": Intent.PROBLEM,
}


def normalize_text(text: str) -> str:
    """Trim and lowercase worker text."""
    return (text or "").strip().lower()


def is_greeting_command(normalized: str) -> bool:
    """True for the /start onboarding command (with or without deep-link payload)."""
    return normalized == "/start" or normalized.startswith("/start ")


def interpret_text(text: str) -> Optional[Intent]:
    """
    Match worker text against the command vocabulary.

    Returns:
        Intent or None for free-form text
    """
    normalized = normalize_text(text)
    if is_greeting_command(normalized):
        return Intent.GREETING
    if normalized in START_WORDS:
        return Intent.START
    if normalized in DONE_WORDS:
        return Intent.COMPLETE
    if normalized in PROBLEM_WORDS:
        return Intent.PROBLEM
    if normalized in SKIP_LOCATION_WORDS:
        return Intent.SKIP_LOCATION
    return None


def parse_callback_data(data: str) -> Optional[Tuple[Intent, str]]:
    """
    Parse a button payload of the form task_<action>_<taskId>.

    Returns:
        (intent, task_id) or None if the payload is not a task action
    """
    match = CALLBACK_PATTERN.match(data or "")
    if not match:
        return None
    action, task_id = match.groups()
    return CALLBACK_INTENTS[action], task_id
