"""Main application entry point for Transcriptr."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from .config import TranscriptrConfig
from .models.audio import AudioPayload
from .models.session import SessionStatus, TranscriptionOptions
from .services.orchestrator import TranscriptionOrchestrator
from .ui.progress_screen import ProgressScreen, render_history

logger = logging.getLogger(__name__)


def setup_logging(config: TranscriptrConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/transcriptr.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only warnings, the progress bar owns the terminal
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("Transcriptr starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def _build_orchestrator(ctx: click.Context) -> TranscriptionOrchestrator:
    return TranscriptionOrchestrator(ctx.obj['config'])


async def _track(orchestrator: TranscriptionOrchestrator, console: Console, start) -> bool:
    with ProgressScreen(orchestrator.topic, console=console) as screen:
        try:
            await start()
            update = await orchestrator.wait()
        except (KeyboardInterrupt, asyncio.CancelledError):
            await orchestrator.cancel()
            raise
        finally:
            await orchestrator.close()
    screen.render_outcome(update)
    return update.status is SessionStatus.SUCCEEDED


@click.group()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='Path to configuration YAML file (defaults to built-in settings)')
@click.option('--log-level', default=None,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Set logging level (overrides config)')
@click.version_option(version='0.1.0', prog_name='Transcriptr')
@click.pass_context
def cli(ctx: click.Context, config_path, log_level) -> None:
    """Transcriptr - submit audio for remote transcription and track it to completion."""
    try:
        config = TranscriptrConfig(config_path)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))
    setup_logging(config, log_level or config.get('logging.level', 'INFO'))
    ctx.obj = {'config': config, 'console': Console()}


@cli.command()
@click.argument('source')
@click.option('--language', default='auto', show_default=True, help='Audio language code or "auto"')
@click.option('--diarize/--no-diarize', default=False, help='Label speakers in the transcript')
@click.pass_context
def transcribe(ctx: click.Context, source: str, language: str, diarize: bool) -> None:
    """Transcribe SOURCE, a local audio file or an http(s) URL."""
    options = TranscriptionOptions(language=language, diarize=diarize)
    if source.startswith(('http://', 'https://')):
        payload = source
    else:
        path = Path(source)
        if not path.is_file():
            raise click.ClickException(f"Audio file not found: {source}")
        payload = AudioPayload.from_path(path)

    orchestrator = _build_orchestrator(ctx)
    ok = asyncio.run(_track(orchestrator, ctx.obj['console'],
                            lambda: orchestrator.submit(payload, options)))
    ctx.exit(0 if ok else 1)


@cli.command()
@click.option('--job-id', default=None, help='Resume the session tracking this remote job')
@click.pass_context
def resume(ctx: click.Context, job_id: Optional[str]) -> None:
    """Resume tracking the last transcription that was still in progress."""
    orchestrator = _build_orchestrator(ctx)
    session = orchestrator.find_recoverable(job_id)
    if session is None:
        ctx.obj['console'].print("No recoverable session found.")
        return

    ctx.obj['console'].print(f"Resuming session {session.id} (job {session.job_id})")
    ok = asyncio.run(_track(orchestrator, ctx.obj['console'],
                            lambda: orchestrator.resume(session)))
    ctx.exit(0 if ok else 1)


@cli.command()
@click.pass_context
def history(ctx: click.Context) -> None:
    """List stored sessions (expired ones are removed first)."""
    orchestrator = _build_orchestrator(ctx)
    render_history(orchestrator.history(), console=ctx.obj['console'])


@cli.command()
@click.argument('session_id')
@click.pass_context
def delete(ctx: click.Context, session_id: str) -> None:
    """Delete a stored session."""
    orchestrator = _build_orchestrator(ctx)
    if orchestrator.store.get(session_id) is None:
        raise click.ClickException(f"Session not found: {session_id}")

    async def _delete() -> bool:
        try:
            return await orchestrator.delete_session(session_id)
        finally:
            await orchestrator.close()

    if not asyncio.run(_delete()):
        raise click.ClickException(f"Could not delete session {session_id}")
    ctx.obj['console'].print(f"Deleted session {session_id}")


@cli.command()
@click.pass_context
def sweep(ctx: click.Context) -> None:
    """Remove expired sessions."""
    orchestrator = _build_orchestrator(ctx)
    removed = orchestrator.store.sweep_expired()
    ctx.obj['console'].print(f"Removed {removed} expired session(s)")


def main() -> None:
    """Main entry point for Transcriptr."""
    cli()


if __name__ == "__main__":
    main()
