"""
Transcript export/import: plain text for reading, JSON for round-tripping.
"""

import json
from datetime import date
from typing import List, Optional, Sequence, Tuple

from .schema import Message, Speaker


class TranscriptError(ValueError):
    """An imported transcript is malformed."""


def export_filename(fmt: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"debate-{today.isoformat()}.{fmt}"


def to_text(topic: str, history: Sequence[Message]) -> str:
    entries = "\n\n".join(
        f"{i}. [{m.speaker.label}]: {m.content}" for i, m in enumerate(history, start=1)
    )
    return f"Topic: {topic}\n\n{entries}"


def to_json(topic: str, history: Sequence[Message]) -> str:
    return json.dumps(
        {"topic": topic, "history": [m.to_dict() for m in history]},
        indent=2,
        ensure_ascii=False,
    )


def from_json(data: str) -> Tuple[str, List[Message]]:
    """Parse a JSON export back into ``(topic, history)``."""
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as e:
        raise TranscriptError(f"Invalid transcript JSON: {e}") from e
    return from_dict(parsed)


def from_dict(parsed) -> Tuple[str, List[Message]]:
    if not isinstance(parsed, dict):
        raise TranscriptError("Transcript must be an object with 'topic' and 'history'")
    topic = parsed.get("topic")
    if not isinstance(topic, str):
        raise TranscriptError("Transcript 'topic' must be a string")
    raw_history = parsed.get("history", [])
    if not isinstance(raw_history, list):
        raise TranscriptError("Transcript 'history' must be a list")

    history = []
    for i, entry in enumerate(raw_history):
        try:
            message = Message.from_dict(entry)
        except (KeyError, TypeError, ValueError):
            raise TranscriptError(f"Invalid history entry at position {i}") from None
        if not isinstance(message.content, str):
            raise TranscriptError(f"History entry {i} content must be a string")
        history.append(message)
    return topic, history


def check_alternation(history: Sequence[Message], first: Speaker) -> None:
    """Raise TranscriptError unless speakers alternate starting from ``first``."""
    expected = first
    for i, message in enumerate(history):
        if message.speaker is not expected:
            raise TranscriptError(
                f"History entry {i} is from {message.speaker.value}, expected {expected.value}"
            )
        expected = expected.other
