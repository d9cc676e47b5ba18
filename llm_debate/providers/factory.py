"""
Factory for binding a turn provider to each speaker.
"""

from typing import Dict

from .base import TurnProvider
from .ollama_provider import OllamaTurnProvider
from .openai_provider import OpenAITurnProvider
from ..config import AppConfig
from ..debate.schema import Speaker


def create_providers(config: AppConfig) -> Dict[Speaker, TurnProvider]:
    """Instantiate one provider per speaker from config."""
    default_topic = config.debate.default_topic
    return {
        Speaker.OPENAI: OpenAITurnProvider(config.openai, default_topic),
        Speaker.LLAMA: OllamaTurnProvider(config.ollama, default_topic),
    }


def parse_speaker(name: str) -> Speaker:
    """Map a configured speaker name to a Speaker."""
    try:
        return Speaker(name.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown speaker: {name}") from None
