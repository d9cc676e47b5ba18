import json
from enum import Enum
from typing import Dict, Any
from dataclasses import dataclass, asdict


# Server to browser messages pushed over /ws
class ServerMessageType(str, Enum):
    SYNC = "sync"
    MESSAGE = "message"
    STATUS = "status"
    ERROR = "error"


@dataclass
class ServerMessage:
    type: ServerMessageType
    payload: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def sync(cls, snapshot: Dict[str, Any]) -> "ServerMessage":
        """Full session state, sent once to every newly connected client."""
        return cls(type=ServerMessageType.SYNC, payload=snapshot)

    @classmethod
    def message(cls, speaker: str, content: str, round_count: int) -> "ServerMessage":
        return cls(
            type=ServerMessageType.MESSAGE,
            payload={"speaker": speaker, "content": content, "round": round_count},
        )

    @classmethod
    def status(cls, snapshot: Dict[str, Any]) -> "ServerMessage":
        return cls(type=ServerMessageType.STATUS, payload=snapshot)

    @classmethod
    def error(cls, speaker: str, error: str) -> "ServerMessage":
        return cls(type=ServerMessageType.ERROR, payload={"speaker": speaker, "error": error})
