"""Terminal user interface for Transcriptr."""

from .progress_screen import ProgressScreen, render_history

__all__ = [
    "ProgressScreen",
    "render_history",
]
