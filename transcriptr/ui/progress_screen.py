"""Terminal rendering of transcription progress and session history."""

import logging
from datetime import datetime
from typing import Iterable, Optional

from pubsub import pub
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskID
from rich.table import Table
from rich.text import Text

from ..models.events import TranscriptionUpdate
from ..models.session import SessionStatus, TranscriptionSession

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    SessionStatus.IDLE: "Ready to transcribe",
    SessionStatus.STARTING: "Transcription engine starting. Please wait 4-5 seconds.",
    SessionStatus.PROCESSING: "Processing audio. This will depend on the length of your audio.",
    SessionStatus.SUCCEEDED: "Processing complete! Loading result...",
    SessionStatus.FAILED: "The transcription encountered an error during processing.",
    SessionStatus.CANCELED: "This transcription was cancelled, please try again.",
}

STATUS_STYLES = {
    SessionStatus.IDLE: "white",
    SessionStatus.STARTING: "blue",
    SessionStatus.PROCESSING: "magenta",
    SessionStatus.SUCCEEDED: "green",
    SessionStatus.FAILED: "red",
    SessionStatus.CANCELED: "yellow",
}


class ProgressScreen:
    """Renders orchestrator updates published on a pub/sub topic."""

    def __init__(self, topic: str, console: Optional[Console] = None):
        """Initialize progress screen.

        Args:
            topic: Pub/sub topic carrying TranscriptionUpdate messages
            console: Rich console to draw on
        """
        self.topic = topic
        self.console = console or Console()
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>5.1f}%"),
            console=self.console,
        )
        self.task_id: Optional[TaskID] = None
        self.last_update: Optional[TranscriptionUpdate] = None

    def __enter__(self):
        self.progress.start()
        self.task_id = self.progress.add_task(STATUS_MESSAGES[SessionStatus.IDLE], total=100)
        pub.subscribe(self.on_update, self.topic)
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        try:
            pub.unsubscribe(self.on_update, self.topic)
        except Exception as e:
            logger.warning(f"Error during unsubscribe: {e}")
        self.progress.stop()

    def on_update(self, update: TranscriptionUpdate) -> None:
        """Handle a state update from the orchestrator."""
        self.last_update = update
        if self.task_id is None:
            return
        style = STATUS_STYLES.get(update.status, "white")
        description = f"[{style}]{STATUS_MESSAGES.get(update.status, update.status.value)}"
        self.progress.update(self.task_id, completed=update.progress, description=description)

    def render_outcome(self, update: TranscriptionUpdate) -> None:
        """Print the final transcript or error."""
        if update.status is SessionStatus.SUCCEEDED:
            self.console.print(Panel(update.result or "", title="Transcript", border_style="green"))
        elif update.error:
            self.console.print(Panel(Text(update.error, style="red"), title="Error", border_style="red"))
        else:
            self.console.print(Text(STATUS_MESSAGES.get(update.status, ""), style="yellow"))


def _format_ms(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def render_history(sessions: Iterable[TranscriptionSession], console: Optional[Console] = None) -> Table:
    """Print stored sessions as a table and return it."""
    console = console or Console()
    table = Table(title="Transcription History", show_header=True, header_style="bold magenta")
    table.add_column("Session", style="cyan")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Updated")
    table.add_column("Expires")

    for session in sessions:
        source = session.audio_source.name or session.audio_source.url or "-"
        style = STATUS_STYLES.get(session.status, "white")
        table.add_row(
            session.id,
            source,
            Text(session.status.value, style=style),
            f"{session.progress:.0f}%",
            _format_ms(session.last_updated_at),
            _format_ms(session.expires_at),
        )

    console.print(table)
    return table
