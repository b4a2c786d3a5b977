"""Remote transcription job submission and polling."""

from .api_client import TranscriptionApiClient
from .submitter import JobSubmitter
from .polling import PollingEngine, PollingPolicy, map_remote_status
from .output import normalize_output

__all__ = [
    "TranscriptionApiClient",
    "JobSubmitter",
    "PollingEngine",
    "PollingPolicy",
    "map_remote_status",
    "normalize_output",
]
