"""Event models for the polling event channel and session updates."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Any, Dict

from .session import SessionStatus


class PollingEventType(str, Enum):
    """Kinds of events emitted by the polling engine."""
    RESPONSE = "response"   # diagnostic snapshot of a status check
    STATUS = "status"
    PROGRESS = "progress"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class PollingEvent:
    """Tagged event emitted by the polling engine."""
    type: PollingEventType
    payload: Dict[str, Any] = field(default_factory=dict)
    job_id: Optional[str] = None
    generation: int = 0
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class TranscriptionUpdate:
    """Snapshot of orchestrator state published to UI subscribers."""
    status: SessionStatus
    progress: float
    session_id: Optional[str] = None
    job_id: Optional[str] = None
    error: Optional[str] = None
    result: Optional[str] = None
    message: Optional[str] = None
