"""Local persistence for transcription sessions."""

from .cookie import SessionCookie
from .session_store import SessionStore

__all__ = [
    "SessionCookie",
    "SessionStore",
]
