"""
Local debater: one turn through Ollama's /api/chat endpoint.
"""

import logging
from typing import Dict, List, Optional, Sequence

import httpx

from ..config import OllamaConfig
from ..debate.schema import Message, Speaker
from ..prompts.templates import OLLAMA_SYSTEM_PROMPT, YOUR_TURN_PROMPT
from .base import TurnError, TurnProvider, render_line

logger = logging.getLogger(__name__)


class OllamaTurnProvider(TurnProvider):
    """
    Replays the history as labelled assistant messages, then asks the
    model to take its turn. Non-streaming.
    """

    speaker = Speaker.LLAMA
    backend_name = "Ollama"

    def __init__(self, config: OllamaConfig, default_topic: str = "technology"):
        super().__init__(default_topic)
        self.config = config

    async def initialize(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(self.config.timeout, connect=10.0),
            transport=transport,
        )
        logger.info(
            "Ollama provider initialized (model=%s, url=%s)",
            self.config.model, self.config.base_url,
        )

    def build_messages(self, history: Sequence[Message], topic: Optional[str] = None) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": OLLAMA_SYSTEM_PROMPT}]
        messages.extend({"role": "assistant", "content": render_line(m)} for m in history)
        instruction = YOUR_TURN_PROMPT if history else self.opening_prompt(topic)
        messages.append({"role": "user", "content": instruction})
        return messages

    async def take_turn(self, history: Sequence[Message], topic: Optional[str] = None) -> Message:
        payload = {
            "model": self.config.model,
            "messages": self.build_messages(history, topic),
            "stream": False,
        }
        logger.info("Calling Ollama (model=%s, history=%d)", self.config.model, len(history))
        try:
            data = await self._post("/api/chat", payload)
        except TurnError as e:
            logger.error(e.message)
            raise
        message = data.get("message") or {}
        if not isinstance(message, dict):
            logger.error("Unexpected Ollama response shape: %r", message)
            raise self.shape_error()
        return self._reply(message.get("content"))
