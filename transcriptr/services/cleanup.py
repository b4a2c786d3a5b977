"""Best-effort deletion of temporarily staged audio files."""

import asyncio
import logging
import re
from typing import Optional, Set

logger = logging.getLogger(__name__)

_STAGED_PATH_PATTERN = re.compile(r"temp_audio/[^?#]+")


def resolve_staged_path(path: str) -> str:
    """Reduce a full staging URL to its object path when possible."""
    if not path.startswith("http"):
        return path
    match = _STAGED_PATH_PATTERN.search(path)
    if match:
        return match.group(0)
    logger.warning(f"Could not extract file path from URL, using as-is: {path}")
    return path


class CleanupCoordinator:
    """Deletes staged files without ever blocking or failing the caller."""

    def __init__(self, api_client):
        """Initialize cleanup coordinator.

        Args:
            api_client: Object exposing ``async delete_staged_file(path) -> bool``
        """
        self.api_client = api_client
        self._scheduled: Set[str] = set()
        self._pending: Set[asyncio.Task] = set()

    async def cleanup(self, path: Optional[str]) -> bool:
        """Delete a staged file. Already-deleted files count as success.

        Returns:
            True if the file is gone, False if deletion failed
        """
        if not path:
            logger.warning("No file path provided for cleanup")
            return False

        file_path = resolve_staged_path(path)
        try:
            deleted = await self.api_client.delete_staged_file(file_path)
        except Exception as e:
            logger.error(f"Error during file cleanup for {file_path}: {e}")
            return False

        if deleted:
            logger.info(f"Cleanup successful: {file_path}")
        return deleted

    def schedule(self, path: Optional[str]) -> Optional[asyncio.Task]:
        """Start a fire-and-forget cleanup, at most once per path.

        A path is forgotten again once its file is confirmed gone.

        Returns:
            The cleanup task, or None if nothing was scheduled
        """
        if not path or path in self._scheduled:
            return None
        self._scheduled.add(path)

        task = asyncio.get_running_loop().create_task(self._cleanup_once(path))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.debug(f"Scheduled cleanup for {path}")
        return task

    async def _cleanup_once(self, path: str) -> bool:
        deleted = await self.cleanup(path)
        # Failed paths stay recorded so they are not retried
        if deleted:
            self._scheduled.discard(path)
        return deleted

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for pending cleanups to finish."""
        pending = list(self._pending)
        if not pending:
            return
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} cleanup requests still pending after {timeout}s")
