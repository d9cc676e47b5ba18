from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Speaker(str, Enum):
    """The two debaters. Values double as wire labels."""
    OPENAI = "openai"  # hosted model
    LLAMA = "llama"    # locally served model

    @property
    def label(self) -> str:
        return self.value.upper()

    @property
    def other(self) -> "Speaker":
        return Speaker.LLAMA if self is Speaker.OPENAI else Speaker.OPENAI


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    STOPPED = "stopped"
    ERRORED = "errored"


@dataclass(frozen=True)
class Message:
    """A single debate turn."""
    speaker: Speaker
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"speaker": self.speaker.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(speaker=Speaker(data["speaker"]), content=data["content"])


@dataclass
class SessionState:
    """Mutable state of one debate session. Only the controller writes it."""
    first_speaker: Speaker = Speaker.OPENAI
    topic: str = ""
    history: List[Message] = field(default_factory=list)
    current_speaker: Optional[Speaker] = None
    round_count: int = 0
    status: SessionStatus = SessionStatus.IDLE
    error: Optional[str] = None

    def __post_init__(self):
        if self.current_speaker is None:
            self.current_speaker = self.first_speaker

    @property
    def running(self) -> bool:
        return self.status is SessionStatus.RUNNING

    def clear(self) -> None:
        self.history = []
        self.current_speaker = self.first_speaker
        self.round_count = 0
        self.status = SessionStatus.IDLE
        self.error = None
