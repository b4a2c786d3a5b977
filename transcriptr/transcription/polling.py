"""Polling engine that tracks a remote transcription job to completion.

The engine owns one recurring timer per instance. Each timer tick runs as its
own task, like a fixed-interval browser timer, so a slow status response may
overlap with the next tick. Both operate on the same immutable job id; what
must not happen twice is the terminal transition, which is guarded by a
per-generation ``finished`` flag.

Every ``start``/``stop`` bumps the generation counter. A tick whose response
arrives after its generation was retired is dropped without side effects.

All outcomes are reported through a single async handler as tagged
``PollingEvent``s, in the order they happen.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from ..exceptions import (
    PollingTimeout,
    PollingTransportError,
    RemoteJobCanceled,
    RemoteJobFailure,
    TranscriptrError,
    is_network_error,
    user_friendly_message,
)
from ..models.events import PollingEvent, PollingEventType
from ..models.session import SessionStatus

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Transcription timed out after several minutes."
CANCELED_MESSAGE = "Transcription was canceled"
UNKNOWN_FAILURE = "Unknown transcription error"

# Provider status names, including the raw queue states some providers report
REMOTE_STATUS_MAP = {
    "queued": SessionStatus.STARTING,
    "starting": SessionStatus.STARTING,
    "processing": SessionStatus.PROCESSING,
    "succeeded": SessionStatus.SUCCEEDED,
    "completed": SessionStatus.SUCCEEDED,
    "failed": SessionStatus.FAILED,
    "error": SessionStatus.FAILED,
    "canceled": SessionStatus.CANCELED,
    "cancelled": SessionStatus.CANCELED,
}

EventHandler = Callable[[PollingEvent], Awaitable[None]]


@dataclass(frozen=True)
class PollingPolicy:
    """Cadence, attempt bound and progress range of the polling loop."""
    interval_seconds: float = 1.5
    initial_delay_seconds: float = 0.1
    max_attempts: int = 200  # 5 minutes at 1.5s
    progress_floor: float = 25.0
    progress_ceiling: float = 98.0

    def __post_init__(self):
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.interval_seconds < 0 or self.initial_delay_seconds < 0:
            raise ValueError("polling delays must not be negative")
        if not 0 <= self.progress_floor <= self.progress_ceiling < 100:
            raise ValueError("progress range must satisfy 0 <= floor <= ceiling < 100")

    @property
    def progress_increment(self) -> float:
        return (self.progress_ceiling - self.progress_floor) / self.max_attempts


def map_remote_status(status: Optional[str]) -> Optional[SessionStatus]:
    """Translate a provider status string to a local status, or None if unknown."""
    if not status:
        return None
    return REMOTE_STATUS_MAP.get(status.lower())


class PollingEngine:
    """Polls job status on a bounded schedule and reports via one handler."""

    def __init__(self,
                 api_client,
                 handler: EventHandler,
                 policy: Optional[PollingPolicy] = None):
        """Initialize polling engine.

        Args:
            api_client: Object exposing ``async get_job(job_id)``
            handler: Async callable receiving every PollingEvent
            policy: Polling cadence and bounds
        """
        self.api_client = api_client
        self.handler = handler
        self.policy = policy or PollingPolicy()

        self.job_id: Optional[str] = None
        self.attempts = 0
        self.progress = 0.0

        self._generation = 0
        self._finished = True
        self._timer: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_active(self) -> bool:
        return not self._finished

    def _is_live(self, generation: int) -> bool:
        return generation == self._generation and not self._finished

    def start(self, job_id: str, initial_progress: float = 0.0) -> int:
        """Start polling a job, replacing any loop already running.

        Must be called from inside a running event loop.

        Args:
            job_id: Provider job id to poll
            initial_progress: Progress already reached (e.g. when resuming)

        Returns:
            Generation number of the new loop
        """
        self.stop()

        self._generation += 1
        self._finished = False
        self.job_id = job_id
        self.attempts = 0
        self.progress = min(max(self.policy.progress_floor, initial_progress),
                            self.policy.progress_ceiling)

        generation = self._generation
        logger.info(f"Polling: Starting for job ID: {job_id} (generation {generation})")
        self._timer = asyncio.get_running_loop().create_task(self._run_timer(generation, job_id))
        return generation

    def stop(self) -> bool:
        """Stop polling. Safe to call when nothing is running.

        Responses already in flight are ignored when they arrive.

        Returns:
            True if an active loop was stopped
        """
        was_active = self.is_active
        self._cancel_timer()
        self._generation += 1
        self._finished = True
        if was_active:
            logger.info(f"Polling: Stopped for job ID: {self.job_id}")
        return was_active

    async def shutdown(self) -> None:
        """Stop polling and cancel every outstanding tick."""
        self.stop()
        ticks = list(self._ticks)
        for task in ticks:
            task.cancel()
        if ticks:
            await asyncio.gather(*ticks, return_exceptions=True)

    async def wait_idle(self) -> None:
        """Wait until the timer and all spawned ticks have completed."""
        while True:
            pending = [t for t in list(self._ticks) + [self._timer] if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    async def _run_timer(self, generation: int, job_id: str) -> None:
        await asyncio.sleep(self.policy.initial_delay_seconds)
        loop = asyncio.get_running_loop()

        for _ in range(self.policy.max_attempts):
            if not self._is_live(generation):
                return
            task = loop.create_task(self._tick(generation, job_id))
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self.policy.interval_seconds)

    async def _tick(self, generation: int, job_id: str) -> None:
        if not self._is_live(generation):
            return

        self.attempts += 1
        attempt = self.attempts
        logger.debug(f"Polling: Attempt #{attempt} for {job_id}")

        try:
            response = await self.api_client.get_job(job_id)
        except Exception as e:
            if not self._is_live(generation):
                logger.debug(f"Polling: Ignoring error from retired loop for {job_id}: {e}")
                return
            logger.error(f"Error during polling for {job_id}: {e}")
            message = user_friendly_message(e)
            await self._finish(
                generation,
                SessionStatus.FAILED,
                error=PollingTransportError(message, status=getattr(e, "status", None)),
                diagnostic={"error": f"Polling Error: {message}", "isNetworkError": is_network_error(e)},
            )
            return

        if not self._is_live(generation):
            logger.debug(f"Polling: Ignoring late response for {job_id} (attempt {attempt})")
            return

        await self._emit(generation, PollingEventType.RESPONSE, {
            "message": f"Status check #{attempt}",
            "status": response.status,
            "response": response.model_dump(),
        })

        status = map_remote_status(response.status)

        if status in (SessionStatus.STARTING, SessionStatus.PROCESSING):
            self.progress = min(self.progress + self.policy.progress_increment,
                                self.policy.progress_ceiling)
            await self._emit(generation, PollingEventType.STATUS, {"status": status})
            await self._emit(generation, PollingEventType.PROGRESS, {"progress": self.progress})
        elif status is SessionStatus.SUCCEEDED:
            logger.info(f"Transcription succeeded for {job_id}")
            await self._finish(generation, SessionStatus.SUCCEEDED, output=response.output)
            return
        elif status is SessionStatus.FAILED:
            reason = response.error or UNKNOWN_FAILURE
            logger.error(f"Transcription failed for {job_id}: {reason}")
            await self._finish(
                generation,
                SessionStatus.FAILED,
                error=RemoteJobFailure(f"Transcription failed: {reason}"),
                diagnostic={"error": f"Transcription Error: {reason}"},
            )
            return
        elif status is SessionStatus.CANCELED:
            logger.warning(f"Transcription canceled for {job_id}")
            await self._finish(
                generation,
                SessionStatus.CANCELED,
                error=RemoteJobCanceled(CANCELED_MESSAGE),
                diagnostic={"message": "Transcription canceled"},
            )
            return
        else:
            logger.warning(f"Polling: Unknown remote status '{response.status}' for {job_id}")

        if attempt >= self.policy.max_attempts:
            logger.error(f"Polling timeout after {attempt} attempts for {job_id}")
            await self._finish(
                generation,
                SessionStatus.FAILED,
                error=PollingTimeout(TIMEOUT_MESSAGE),
                diagnostic={"error": "Polling timed out"},
            )

    async def _finish(self,
                      generation: int,
                      status: SessionStatus,
                      output: Any = None,
                      error: Optional[TranscriptrError] = None,
                      diagnostic: Optional[Dict[str, Any]] = None) -> None:
        """Apply the terminal transition once per generation."""
        if not self._is_live(generation):
            return
        self._finished = True
        self._cancel_timer()
        self.progress = 100.0 if status is SessionStatus.SUCCEEDED else 0.0

        if diagnostic:
            await self._dispatch(PollingEventType.RESPONSE, diagnostic, generation)

        if status is SessionStatus.SUCCEEDED:
            await self._dispatch(PollingEventType.SUCCESS,
                                 {"output": output, "progress": self.progress}, generation)
        else:
            await self._dispatch(PollingEventType.ERROR,
                                 {"status": status, "error": error.message, "kind": type(error).__name__,
                                  "progress": self.progress},
                                 generation)

    async def _emit(self, generation: int, event_type: PollingEventType, payload: Dict[str, Any]) -> None:
        if not self._is_live(generation):
            return
        await self._dispatch(event_type, payload, generation)

    async def _dispatch(self, event_type: PollingEventType, payload: Dict[str, Any], generation: int) -> None:
        event = PollingEvent(type=event_type, payload=payload, job_id=self.job_id, generation=generation)
        try:
            await self.handler(event)
        except Exception as e:
            logger.error(f"Error in polling event handler for {event_type.value}: {e}", exc_info=True)
