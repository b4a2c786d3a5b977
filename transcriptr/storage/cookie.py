"""Short-lived marker of the currently active session id."""

import json
import logging
from pathlib import Path
from typing import Optional, Callable

from ..models.session import now_ms

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "session_cookie.json"
DEFAULT_COOKIE_MAX_AGE_MS = 24 * 60 * 60 * 1000


class SessionCookie:
    """File-backed equivalent of a path-scoped session cookie with a max age."""

    def __init__(self,
                 path: Path,
                 max_age_ms: int = DEFAULT_COOKIE_MAX_AGE_MS,
                 clock: Callable[[], int] = now_ms):
        self.path = Path(path)
        self.max_age_ms = max_age_ms
        self.clock = clock

    def get(self) -> Optional[str]:
        """Return the stored session id, or None if missing or expired."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session cookie {self.path}: {e}")
            return None

        if data.get('expires_at', 0) <= self.clock():
            logger.debug("Session cookie expired")
            return None
        return data.get('session_id')

    def set(self, session_id: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps({
                'session_id': session_id,
                'expires_at': self.clock() + self.max_age_ms,
            }), encoding='utf-8')
        except OSError as e:
            logger.error(f"Error writing session cookie: {e}")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error clearing session cookie: {e}")
