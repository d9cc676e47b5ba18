"""
Hosted debater: one turn through the OpenAI Responses API.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import OpenAIConfig
from ..debate.schema import Message, Speaker
from ..prompts.templates import CONTINUATION_PROMPT, OPENAI_SYSTEM_PROMPT
from .base import TurnError, TurnProvider, render_transcript

logger = logging.getLogger(__name__)


def extract_output_text(data: Dict[str, Any]) -> str:
    """Pull the generated text out of a Responses API body. Raises ValueError on a bad shape."""
    text = data.get("output_text")
    if isinstance(text, str):
        return text
    output = data.get("output") or []
    if not isinstance(output, list):
        raise ValueError("'output' is not a list")
    parts = []
    for item in output:
        if not isinstance(item, dict):
            raise ValueError("output item is not an object")
        if item.get("type") != "message":
            continue
        for content in item.get("content") or []:
            if not isinstance(content, dict):
                raise ValueError("content part is not an object")
            if content.get("type") == "output_text":
                part = content.get("text", "")
                if not isinstance(part, str):
                    raise ValueError("output_text is not a string")
                parts.append(part)
    return "".join(parts)


class OpenAITurnProvider(TurnProvider):
    """
    Flattens the whole history into one user message: a transcript to
    continue, or an opening prompt when the debate has not started yet.
    """

    speaker = Speaker.OPENAI
    backend_name = "OpenAI"

    def __init__(self, config: OpenAIConfig, default_topic: str = "technology"):
        super().__init__(default_topic)
        self.config = config

    async def initialize(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self.config.timeout, connect=10.0),
            transport=transport,
        )
        logger.info("OpenAI provider initialized (model=%s)", self.config.model)

    def build_input(self, history: Sequence[Message], topic: Optional[str] = None) -> List[Dict[str, str]]:
        if history:
            prompt = CONTINUATION_PROMPT.format(transcript=render_transcript(history))
        else:
            prompt = self.opening_prompt(topic)
        return [
            {"role": "system", "content": OPENAI_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def take_turn(self, history: Sequence[Message], topic: Optional[str] = None) -> Message:
        if not self.config.api_key:
            raise TurnError("OpenAI error: OPENAI_API_KEY is not configured")

        payload = {
            "model": self.config.model,
            "input": self.build_input(history, topic),
        }
        logger.info("Calling OpenAI (model=%s, history=%d)", self.config.model, len(history))
        try:
            data = await self._post("/responses", payload)
        except TurnError as e:
            logger.error(e.message)
            raise
        try:
            text = extract_output_text(data)
        except ValueError as e:
            logger.error("Unexpected OpenAI response shape: %s", e)
            raise self.shape_error() from e
        return self._reply(text)
