"""
Base abstract class for the model backends that take debate turns.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import httpx

from ..debate.schema import Message, Speaker
from ..prompts.templates import EMPTY_REPLY_PLACEHOLDER, OPENING_PROMPT


class TurnError(Exception):
    """A provider failed to produce a turn. ``status`` is the upstream HTTP status, if any."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


def render_transcript(history: Sequence[Message]) -> str:
    """Flatten history into ``SPEAKER: content`` lines."""
    return "\n".join(render_line(m) for m in history)


def render_line(message: Message) -> str:
    return f"{message.speaker.label}: {message.content}"


class TurnProvider(ABC):
    """
    Abstract base class for a debater backend.

    Providers are stateless with respect to the conversation: each call to
    ``take_turn`` receives the full history and returns one new message.
    Only the HTTP connection pool lives on the instance.
    """

    speaker: Speaker
    backend_name: str = "LLM"

    def __init__(self, default_topic: str = "technology"):
        self.default_topic = default_topic
        self._client: Optional[httpx.AsyncClient] = None

    @abstractmethod
    async def initialize(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        """Create the HTTP client. ``transport`` lets tests swap the network out."""
        pass

    @abstractmethod
    async def take_turn(self, history: Sequence[Message], topic: Optional[str] = None) -> Message:
        """
        Produce the next message for ``self.speaker``.

        Args:
            history: every message so far, in conversational order.
            topic: the debate topic; only used to open the conversation.

        Raises:
            TurnError: on transport failure, a non-success upstream response
                       or a response that cannot be parsed.
        """
        pass

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def opening_prompt(self, topic: Optional[str]) -> str:
        topic = (topic or "").strip() or self.default_topic
        return OPENING_PROMPT.format(topic=topic)

    def shape_error(self) -> TurnError:
        return TurnError(f"{self.backend_name} error: unexpected response shape")

    def _reply(self, text: Optional[str]) -> Message:
        if text is not None and not isinstance(text, str):
            raise self.shape_error()
        content = (text or "").strip() or EMPTY_REPLY_PLACEHOLDER
        return Message(speaker=self.speaker, content=content)

    async def _post(self, path: str, payload: dict) -> dict:
        """POST ``payload`` and return the decoded JSON body, mapping failures to TurnError."""
        if not self._client:
            raise RuntimeError(f"{type(self).__name__} not initialized")
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise TurnError(f"{self.backend_name} error: {type(e).__name__}: {e}") from e

        if response.is_error:
            raise TurnError(
                f"{self.backend_name} error {response.status_code}: {response.text}",
                status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise TurnError(f"{self.backend_name} error: invalid JSON response") from e
        if not isinstance(data, dict):
            raise self.shape_error()
        return data
