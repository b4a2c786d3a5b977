"""Session-related data models."""

import random
import string
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any


DEFAULT_SESSION_EXPIRY_HOURS = 24


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def generate_session_id(timestamp_ms: Optional[int] = None) -> str:
    """Create a session id from a millisecond timestamp and a random suffix."""
    timestamp = timestamp_ms if timestamp_ms is not None else now_ms()
    random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=8))
    return f"{timestamp}-{random_suffix}"


class SessionStatus(str, Enum):
    """Lifecycle status of a transcription session."""
    IDLE = "idle"
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.SUCCEEDED, SessionStatus.FAILED, SessionStatus.CANCELED)

    @property
    def is_in_flight(self) -> bool:
        return self in (SessionStatus.STARTING, SessionStatus.PROCESSING)


@dataclass
class AudioSource:
    """Provenance of the submitted audio, never the raw bytes."""
    type: str  # "file" | "url"
    name: Optional[str] = None
    size: Optional[int] = None
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class TranscriptionOptions:
    """Transcription parameters captured at submission time."""
    language: str = "auto"
    diarize: bool = False


@dataclass
class TranscriptionSession:
    """Durable record of a single transcription attempt."""
    id: str
    audio_source: AudioSource
    options: TranscriptionOptions
    created_at: int
    last_updated_at: int
    expires_at: int
    status: SessionStatus = SessionStatus.STARTING
    job_id: Optional[str] = None
    progress: float = 0.0
    staged_file_path: Optional[str] = None
    api_responses: List[Dict[str, Any]] = field(default_factory=list)
    result: Optional[str] = None
    error: Optional[str] = None

    def is_expired(self, now: Optional[int] = None) -> bool:
        return self.expires_at <= (now if now is not None else now_ms())

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON storage."""
        data = asdict(self)
        data["status"] = self.status.value
        data["audio_source"] = self.audio_source.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptionSession":
        """Rebuild a session from its stored JSON form."""
        data = dict(data)
        data["status"] = SessionStatus(data.get("status", SessionStatus.IDLE.value))
        data["audio_source"] = AudioSource(**data.get("audio_source", {"type": "file"}))
        data["options"] = TranscriptionOptions(**data.get("options", {}))
        data["api_responses"] = list(data.get("api_responses") or [])
        return cls(**data)

    @classmethod
    def field_names(cls) -> List[str]:
        return list(cls.__dataclass_fields__.keys())
