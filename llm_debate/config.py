"""
Centralized configuration for the LLM debate demo.
All settings loaded from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv


@dataclass
class OpenAIConfig:
    """Hosted model (OpenAI Responses API) configuration."""
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4.1-mini"
    timeout: float = 60.0


@dataclass
class OllamaConfig:
    """Locally served model (Ollama) configuration."""
    base_url: str = "http://localhost:11434"
    model: str = "llama3"
    timeout: float = 120.0  # local models can be slow on first load


@dataclass
class DebateConfig:
    """Turn-taking configuration."""
    max_rounds: int = 10
    turn_delay: float = 2.0  # seconds between a completed turn and the next one
    first_speaker: str = "openai"
    default_topic: str = "technology"


@dataclass
class ServerConfig:
    """HTTP / WebSocket server configuration."""
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class AppConfig:
    """Top-level application configuration."""
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    debate: DebateConfig = field(default_factory=DebateConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables (including .env file)."""
        load_dotenv()
        config = cls()

        # Hosted model
        config.openai.api_key = os.getenv("OPENAI_API_KEY", config.openai.api_key)
        config.openai.base_url = os.getenv("OPENAI_BASE_URL", config.openai.base_url)
        config.openai.model = os.getenv("OPENAI_MODEL", config.openai.model)
        timeout = os.getenv("OPENAI_TIMEOUT")
        if timeout:
            config.openai.timeout = float(timeout)

        # Local model
        config.ollama.base_url = os.getenv("OLLAMA_BASE_URL", config.ollama.base_url)
        config.ollama.model = os.getenv("OLLAMA_MODEL", config.ollama.model)
        timeout = os.getenv("OLLAMA_TIMEOUT")
        if timeout:
            config.ollama.timeout = float(timeout)

        # Debate loop
        max_rounds = os.getenv("DEBATE_MAX_ROUNDS")
        if max_rounds:
            config.debate.max_rounds = int(max_rounds)
        delay = os.getenv("DEBATE_TURN_DELAY")
        if delay:
            config.debate.turn_delay = float(delay)
        config.debate.first_speaker = os.getenv(
            "DEBATE_FIRST_SPEAKER", config.debate.first_speaker
        ).lower()
        config.debate.default_topic = os.getenv(
            "DEBATE_DEFAULT_TOPIC", config.debate.default_topic
        )

        # Server config
        config.server.host = os.getenv("SERVER_HOST", config.server.host)
        port = os.getenv("SERVER_PORT")
        if port:
            config.server.port = int(port)

        return config
