"""Top-level orchestration of a transcription job's lifecycle.

submit -> (stage) -> create job -> poll -> resolve/fail -> cleanup, with the
session persisted after every mutation and every state change published on a
pubsub topic for whatever renders it.
"""

import asyncio
import logging
from dataclasses import replace
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from pubsub import pub

from ..config import TranscriptrConfig
from ..exceptions import TranscriptrError, UnsupportedFormat, user_friendly_message
from ..models.audio import AudioPayload
from ..models.events import PollingEvent, PollingEventType, TranscriptionUpdate
from ..models.session import (
    AudioSource,
    SessionStatus,
    TranscriptionOptions,
    TranscriptionSession,
)
from ..storage.session_store import SessionStore
from ..transcription.api_client import TranscriptionApiClient
from ..transcription.output import normalize_output
from ..transcription.polling import PollingEngine, PollingPolicy
from ..transcription.submitter import JobSubmitter
from ..upload.strategy import UploadStrategy, UploadStrategySelector
from .cleanup import CleanupCoordinator

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "transcription.session"

# Fixed progress milestones before polling takes over
PROGRESS_SESSION_CREATED = 5.0
PROGRESS_STAGING = 10.0
PROGRESS_INLINE_ENCODED = 15.0
PROGRESS_STAGED = 20.0
PROGRESS_SUBMITTED = 25.0

_SESSION_FIELDS = {"status", "progress", "job_id", "result", "error"}


class TranscriptionOrchestrator:
    """Drives one transcription at a time from submission to terminal outcome."""

    def __init__(self,
                 config: Optional[TranscriptrConfig] = None,
                 store: Optional[SessionStore] = None,
                 api_client: Optional[TranscriptionApiClient] = None,
                 selector: Optional[UploadStrategySelector] = None,
                 policy: Optional[PollingPolicy] = None,
                 topic: str = DEFAULT_TOPIC):
        """Initialize orchestrator.

        Args:
            config: Application configuration (defaults are used if None)
            store: Session store (built from config if None)
            api_client: Remote API client (built from config if None)
            selector: Upload strategy selector (built from config if None)
            policy: Polling policy (taken from config if None)
            topic: Pub/sub topic on which state updates are published
        """
        self.config = config or TranscriptrConfig()
        self.api_client = api_client or TranscriptionApiClient(
            base_url=self.config.get_api_base_url(),
            staging_upload_url=self.config.get_staging_upload_url(),
            timeout_seconds=float(self.config.get('api.request_timeout_seconds', 30)),
        )
        self.store = store or SessionStore(
            data_dir=self.config.get_data_directory(),
            expiry_ms=self.config.get_session_expiry_ms(),
        )
        self.selector = selector or UploadStrategySelector(
            threshold_bytes=self.config.get_upload_threshold_bytes(),
            supported_formats=self.config.get_supported_formats(),
        )
        self.submitter = JobSubmitter(self.api_client, self.config.get('api.model_id'))
        self.polling = PollingEngine(
            self.api_client,
            self._on_polling_event,
            policy or self.config.get_polling_policy(),
        )
        self.cleanup = CleanupCoordinator(self.api_client)
        self.topic = topic

        self.state = TranscriptionUpdate(status=SessionStatus.IDLE, progress=0.0)
        self.session: Optional[TranscriptionSession] = None

        self._staged_path: Optional[str] = None
        self._attempt = 0
        self._done: Optional[asyncio.Event] = None

        logger.info(f"TranscriptionOrchestrator initialized, publishing on topic: {topic}")

    # ------------------------------------------------------------------
    # Public lifecycle
    # ------------------------------------------------------------------

    async def submit(self,
                     source: Union[AudioPayload, str],
                     options: Optional[TranscriptionOptions] = None) -> Optional[TranscriptionSession]:
        """Start a transcription for a file payload or an audio URL.

        Returns once the job is submitted and polling has started (or the
        attempt failed). Use ``wait()`` for the terminal outcome. No exception
        from remote calls escapes this method.

        Returns:
            The session tracking this attempt, or None if the payload was
            rejected before a session was created
        """
        options = options or TranscriptionOptions()
        if self.state.status.is_in_flight or self.polling.is_active:
            logger.info("Submission requested while a job is active, resetting first")
            await self.reset()

        self._attempt += 1
        attempt = self._attempt
        self._done = asyncio.Event()

        try:
            audio_source, strategy = self._preflight(source)
        except UnsupportedFormat as e:
            logger.warning(f"Rejected payload before submission: {e.message}")
            self.session = None
            self._apply(status=SessionStatus.FAILED, progress=0.0, error=e.message,
                        session_id=None, job_id=None, result=None)
            self._done.set()
            return None

        # Leftover staged file from a previous failed attempt
        self._schedule_cleanup()

        self.session = self.store.create(options, audio_source)
        self._apply(status=SessionStatus.STARTING, progress=PROGRESS_SESSION_CREATED,
                    session_id=self.session.id, job_id=None, error=None, result=None)

        try:
            job_id = await self._transmit(source, strategy, options, attempt)
        except Exception as e:
            if attempt == self._attempt:
                self._fail(e)
            return self.session

        if job_id is None or attempt != self._attempt:
            logger.info("Submission finished after reset, not starting polling")
            return self.session

        self._log({"message": "Received initial response", "response": {"id": job_id}})
        self._apply(job_id=job_id, progress=PROGRESS_SUBMITTED)
        self.polling.start(job_id, initial_progress=self.state.progress)
        return self.session

    async def wait(self, timeout: Optional[float] = None) -> TranscriptionUpdate:
        """Wait until the current attempt reaches a terminal state or is reset."""
        if self._done is not None:
            await asyncio.wait_for(self._done.wait(), timeout)
        return self.state

    async def run(self,
                  source: Union[AudioPayload, str],
                  options: Optional[TranscriptionOptions] = None,
                  timeout: Optional[float] = None) -> TranscriptionUpdate:
        """Submit and wait for the outcome."""
        await self.submit(source, options)
        return await self.wait(timeout)

    async def reset(self) -> None:
        """Cancel the current attempt and return to idle.

        Idempotent: a second call stops nothing and cleans up nothing.
        """
        self._attempt += 1
        self.polling.stop()
        self._schedule_cleanup()

        if self.session is not None and not self.session.status.is_terminal:
            self._persist(status=SessionStatus.CANCELED, progress=0.0)
            self.store.cookie.clear()
        self.session = None

        if self.state.status is not SessionStatus.IDLE or self.state.progress:
            self._apply(status=SessionStatus.IDLE, progress=0.0, error=None, result=None,
                        session_id=None, job_id=None)
        if self._done is not None:
            self._done.set()

    cancel = reset

    async def close(self, cleanup_timeout: float = 10.0) -> None:
        """Tear down: stop polling, reclaim staged storage and close connections.

        The session itself is left as is so it can be resumed later.
        """
        self._attempt += 1
        await self.polling.shutdown()
        self._schedule_cleanup()
        await self.cleanup.drain(timeout=cleanup_timeout)
        await self.api_client.close()
        if self._done is not None:
            self._done.set()
        logger.info("TranscriptionOrchestrator shut down")

    async def __aenter__(self):
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Recovery and history
    # ------------------------------------------------------------------

    def find_recoverable(self, job_id: Optional[str] = None) -> Optional[TranscriptionSession]:
        """Return the persisted session that was still in flight, if any.

        Args:
            job_id: Remote job to look for; the active session is used if None
        """
        if job_id:
            session = self.store.find_by_job_id(job_id)
        else:
            session = self.store.get_active()
        if session is not None and session.status.is_in_flight:
            logger.info(f"Found recoverable session: {session.id}")
            return session
        return None

    async def resume(self, session: Optional[TranscriptionSession] = None) -> Optional[TranscriptionSession]:
        """Resume tracking a persisted session by restarting polling on its job."""
        session = session or self.find_recoverable()
        if session is None:
            return None
        if session.is_expired(self.store.clock()):
            logger.warning(f"Session {session.id} has expired and cannot be resumed")
            return None

        if self.polling.is_active:
            await self.reset()

        self._attempt += 1
        self._done = asyncio.Event()
        self.session = session
        self._staged_path = session.staged_file_path
        self.state = TranscriptionUpdate(status=session.status, progress=session.progress,
                                         session_id=session.id, job_id=session.job_id)

        if not session.job_id:
            self._fail(TranscriptrError("Session cannot be resumed because its job was never submitted"))
            self._schedule_cleanup()
            return session

        self.store.update(session.id)
        self.store.cookie.set(session.id)
        self._apply(message="Resumed session")
        self.polling.start(session.job_id, initial_progress=session.progress)
        return session

    async def discard(self, session: TranscriptionSession) -> bool:
        """Drop a recoverable session, reclaiming its staged file."""
        if self.session is not None and self.session.id == session.id:
            await self.reset()
        elif session.staged_file_path:
            self.cleanup.schedule(session.staged_file_path)
        return self.store.delete(session.id)

    def history(self) -> List[TranscriptionSession]:
        """Sweep expired sessions, then list what remains."""
        self.store.sweep_expired()
        return self.store.list_all()

    async def delete_session(self, session_id: str) -> bool:
        if self.session is not None and self.session.id == session_id:
            await self.reset()
        return self.store.delete(session_id)

    # ------------------------------------------------------------------
    # Submission internals
    # ------------------------------------------------------------------

    def _preflight(self, source: Union[AudioPayload, str]):
        if isinstance(source, AudioPayload):
            strategy = self.selector.select_strategy(source)
            return AudioSource(type="file", name=source.name, size=source.size), strategy

        parsed = urlparse(source)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise UnsupportedFormat("Please provide a valid http(s) audio URL")
        name = PurePosixPath(parsed.path).name or None
        return AudioSource(type="url", name=name, url=source), None

    async def _transmit(self,
                        source: Union[AudioPayload, str],
                        strategy: Optional[UploadStrategy],
                        options: TranscriptionOptions,
                        attempt: int) -> Optional[str]:
        audio_data = None
        audio_url = None

        if isinstance(source, str):
            self._log({"message": f"Using provided audio URL: {source}"})
            audio_url = source
        else:
            size_mb = source.size / 1024 / 1024
            self._log({"message": f"Processing file: {source.name}, Size: {size_mb:.2f} MB, "
                                  f"Type: {source.content_type}"})

            if strategy is UploadStrategy.STAGED:
                threshold_mb = self.selector.threshold_bytes / 1024 / 1024
                self._log({"message": f"Large file detected ({size_mb:.2f}MB >= {threshold_mb:.0f}MB). "
                                      f"Uploading to temporary storage..."})
                self._apply(progress=PROGRESS_STAGING)
                data = await asyncio.to_thread(source.read_bytes)
                staged = await self.api_client.upload_staged_file(data, source.content_type, source.name)

                if attempt != self._attempt:
                    self.cleanup.schedule(staged.path)
                    return None

                self._staged_path = staged.path
                self._persist(staged_file_path=staged.path)
                self._log({"message": "File uploaded to temporary storage successfully", "url": staged.url})
                self._apply(progress=PROGRESS_STAGED)
                audio_url = staged.url
            else:
                audio_data = await asyncio.to_thread(source.to_data_url)
                self._apply(progress=PROGRESS_INLINE_ENCODED)

        if attempt != self._attempt:
            return None
        return await self.submitter.submit(options, audio_data=audio_data, audio_url=audio_url)

    # ------------------------------------------------------------------
    # Polling events
    # ------------------------------------------------------------------

    async def _on_polling_event(self, event: PollingEvent) -> None:
        if event.generation != self.polling.generation or self.session is None:
            logger.debug(f"Ignoring stale polling event: {event.type.value}")
            return

        payload = event.payload
        if event.type is PollingEventType.RESPONSE:
            self._log(payload)
        elif event.type is PollingEventType.STATUS:
            if payload["status"] is not self.state.status:
                self._apply(status=payload["status"])
        elif event.type is PollingEventType.PROGRESS:
            progress = max(self.state.progress, payload["progress"])
            if progress != self.state.progress:
                self._apply(progress=progress)
        elif event.type is PollingEventType.SUCCESS:
            self._on_success(payload.get("output"))
        elif event.type is PollingEventType.ERROR:
            logger.error(f"Job {self.state.job_id} ended with {payload['kind']}: {payload['error']}")
            self._apply(status=payload["status"], progress=0.0, error=payload["error"])
            self._finish()

    def _on_success(self, output: Any) -> None:
        try:
            text = normalize_output(output)
        except TranscriptrError as e:
            self._fail(e)
            return

        self._apply(status=SessionStatus.SUCCEEDED, progress=100.0, result=text, error=None)
        self._schedule_cleanup()
        self._finish()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _fail(self, error: BaseException) -> None:
        message = user_friendly_message(error)
        logger.error(f"Error transcribing audio: {error}")
        self._log({"error": str(error)})
        self._apply(status=SessionStatus.FAILED, progress=0.0, error=message)
        self._finish()

    def _finish(self) -> None:
        if self._done is not None:
            self._done.set()

    def _apply(self, message: Optional[str] = None, **changes: Any) -> None:
        """Update in-memory state, persist session fields and publish."""
        self.state = replace(self.state, message=message, **changes)
        session_patch = {k: v for k, v in changes.items() if k in _SESSION_FIELDS}
        if session_patch:
            self._persist(**session_patch)
        self._publish()

    def _persist(self, **patch: Any) -> None:
        """Apply a patch to the in-memory session and the store.

        A store failure is logged by the store; the in-memory copy stays
        authoritative so the job keeps running.
        """
        if self.session is None:
            return
        if "job_id" in patch and self.session.job_id and patch["job_id"] != self.session.job_id:
            logger.error(f"Refusing to replace job id {self.session.job_id} of session {self.session.id}")
            patch.pop("job_id")

        for key, value in patch.items():
            setattr(self.session, key, value)
        self.session.last_updated_at = self.store.clock()

        if self.store.update(self.session.id, **patch) is None:
            logger.debug(f"Session {self.session.id} kept in memory only")

    def _log(self, data: Dict[str, Any]) -> None:
        """Append a diagnostic snapshot to the session's API response log."""
        if self.session is None:
            return
        self.session.api_responses.append({"timestamp": self.store.clock(), "data": data})
        self._persist(api_responses=list(self.session.api_responses))

    def _schedule_cleanup(self) -> None:
        path, self._staged_path = self._staged_path, None
        if path:
            self.cleanup.schedule(path)

    def _publish(self) -> None:
        try:
            pub.sendMessage(self.topic, update=self.state)
        except Exception as e:
            logger.error(f"Error publishing transcription update: {e}")
