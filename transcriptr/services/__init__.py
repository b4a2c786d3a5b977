"""Services layer for Transcriptr orchestration logic."""

from .cleanup import CleanupCoordinator
from .orchestrator import TranscriptionOrchestrator

__all__ = [
    "CleanupCoordinator",
    "TranscriptionOrchestrator",
]
