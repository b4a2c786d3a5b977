"""Data models for the Transcriptr application."""

from .session import (
    SessionStatus,
    AudioSource,
    TranscriptionOptions,
    TranscriptionSession,
)
from .audio import AudioPayload
from .events import PollingEventType, PollingEvent, TranscriptionUpdate
from .api import SubmissionResponse, JobStatusResponse, StagedFile

__all__ = [
    "SessionStatus",
    "AudioSource",
    "TranscriptionOptions",
    "TranscriptionSession",
    "AudioPayload",
    "PollingEventType",
    "PollingEvent",
    "TranscriptionUpdate",
    # Wire models
    "SubmissionResponse",
    "JobStatusResponse",
    "StagedFile",
]
