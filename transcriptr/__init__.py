"""Transcriptr - remote transcription job orchestration."""

__version__ = "0.1.0"
