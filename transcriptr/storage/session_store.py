"""SQLite backed persistence for transcription sessions.

Each session is stored as one JSON document keyed by session id. Status,
expiry, job id and last update time are mirrored into indexed columns so that
active-session lookup and expiry sweeps never scan the whole table.

Every public operation degrades gracefully: when the database cannot be
opened or written, the error is logged and a neutral value (None, False, an
empty list or zero) is returned instead of raising into the caller.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional, List, Callable, Dict, Any, Tuple

from ..exceptions import PersistenceUnavailable
from ..models.session import (
    AudioSource,
    SessionStatus,
    TranscriptionOptions,
    TranscriptionSession,
    generate_session_id,
    now_ms,
    DEFAULT_SESSION_EXPIRY_HOURS,
)
from .cookie import SessionCookie, SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)

DB_NAME = "sessions.db"
SCHEMA_VERSION = 1
IN_FLIGHT_STATUSES: Tuple[str, ...] = (
    SessionStatus.IDLE.value,
    SessionStatus.STARTING.value,
    SessionStatus.PROCESSING.value,
)


class SessionStore:
    """Durable local record of transcription sessions."""

    def __init__(self,
                 data_dir: str = "./data",
                 expiry_ms: int = DEFAULT_SESSION_EXPIRY_HOURS * 60 * 60 * 1000,
                 cookie: Optional[SessionCookie] = None,
                 clock: Callable[[], int] = now_ms):
        """Initialize session store.

        Args:
            data_dir: Directory holding the database and the session cookie
            expiry_ms: Lifetime of a new session in milliseconds
            cookie: Active session marker (defaults to one in data_dir)
            clock: Millisecond clock, injectable for tests
        """
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / DB_NAME
        self.expiry_ms = expiry_ms
        self.clock = clock
        self.cookie = cookie or SessionCookie(self.data_dir / SESSION_COOKIE_NAME, clock=clock)
        self.available = False

        try:
            self._ensure_initialised()
            self.available = True
            logger.info(f"SessionStore initialized at: {self.db_path}")
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Session store unavailable, continuing without persistence: {e}")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ensure_initialised(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    job_id TEXT,
                    expires_at INTEGER NOT NULL,
                    last_updated_at INTEGER NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON sessions(expires_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_job_id ON sessions(job_id)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "INSERT OR IGNORE INTO metadata(key, value) VALUES(?, ?)",
                ("schema_version", str(SCHEMA_VERSION)),
            )

    def _require_available(self) -> None:
        if not self.available:
            raise PersistenceUnavailable("Session store is not available")

    def _write(self, session: TranscriptionSession) -> None:
        self._require_available()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sessions(id, status, job_id, expires_at, last_updated_at, data)
                VALUES(?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.status.value,
                    session.job_id,
                    session.expires_at,
                    session.last_updated_at,
                    json.dumps(session.to_dict()),
                ),
            )

    def _read(self, session_id: str) -> Optional[TranscriptionSession]:
        self._require_available()
        with self._connect() as conn:
            row = conn.execute("SELECT data FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            return None
        return _decode(row[0])

    def _exists(self, session_id: str) -> bool:
        try:
            self._require_available()
            with self._connect() as conn:
                row = conn.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,)).fetchone()
        except (sqlite3.Error, PersistenceUnavailable) as e:
            logger.error(f"Error checking session {session_id}: {e}")
            return False
        return row is not None

    def save(self, session: TranscriptionSession) -> bool:
        """Persist a full session record as is.

        Returns:
            True if the record was written
        """
        try:
            self._write(session)
            logger.debug(f"Session saved: {session.id}")
            return True
        except (sqlite3.Error, PersistenceUnavailable) as e:
            logger.error(f"Error saving session {session.id}: {e}")
            return False

    def _allocate_id(self) -> str:
        # A cookie id is only reused while no record claims it
        cookie_id = self.cookie.get()
        if cookie_id:
            if not self._exists(cookie_id):
                return cookie_id
            logger.debug(f"Cookie session {cookie_id} already has a record, allocating a new id")

        session_id = generate_session_id(self.clock())
        self.cookie.set(session_id)
        return session_id

    def create(self,
               options: TranscriptionOptions,
               audio_source: AudioSource) -> TranscriptionSession:
        """Create and immediately persist a new session.

        The session is returned even when it could not be persisted, so the
        caller can keep working in memory.
        """
        now = self.clock()
        session = TranscriptionSession(
            id=self._allocate_id(),
            audio_source=audio_source,
            options=options,
            created_at=now,
            last_updated_at=now,
            expires_at=now + self.expiry_ms,
        )
        self.save(session)
        logger.info(f"Created new session: {session.id}")
        return session

    def get(self, session_id: str) -> Optional[TranscriptionSession]:
        try:
            return self._read(session_id)
        except (sqlite3.Error, PersistenceUnavailable, ValueError, TypeError, KeyError) as e:
            logger.error(f"Error loading session {session_id}: {e}")
            return None

    def get_active(self) -> Optional[TranscriptionSession]:
        """Find the session to resume, if any.

        Preference order: the session named by the cookie when it is still
        unexpired and non-terminal, else the most recently updated unexpired
        non-terminal session.
        """
        now = self.clock()
        placeholders = ",".join("?" for _ in IN_FLIGHT_STATUSES)
        try:
            self._require_available()
            with self._connect() as conn:
                rows = conn.execute(
                    f"""
                    SELECT id, data FROM sessions
                    WHERE status IN ({placeholders}) AND expires_at > ?
                    ORDER BY last_updated_at DESC
                    """,
                    (*IN_FLIGHT_STATUSES, now),
                ).fetchall()
        except (sqlite3.Error, PersistenceUnavailable) as e:
            logger.error(f"Error finding active session: {e}")
            return None

        sessions = _decode_rows(rows)
        if not sessions:
            return None

        cookie_id = self.cookie.get()
        if cookie_id:
            for session in sessions:
                if session.id == cookie_id:
                    return session

        return sessions[0]

    def update(self, session_id: str, **patch: Any) -> Optional[TranscriptionSession]:
        """Merge a partial patch into a stored session.

        Fields omitted from the patch keep their stored values; last_updated_at
        is always bumped.

        Raises:
            ValueError: If the patch names an unknown field
        """
        unknown = set(patch) - set(TranscriptionSession.field_names())
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")

        try:
            session = self._read(session_id)
            if session is None:
                logger.warning(f"Session not found: {session_id}")
                return None

            merged: Dict[str, Any] = session.to_dict()
            merged.update(_serialize_patch(patch))
            merged["id"] = session_id
            merged["last_updated_at"] = self.clock()

            updated = TranscriptionSession.from_dict(merged)
            self._write(updated)
            return updated
        except (sqlite3.Error, PersistenceUnavailable, ValueError, TypeError, KeyError) as e:
            logger.error(f"Error updating session {session_id}: {e}")
            return None

    def delete(self, session_id: str) -> bool:
        try:
            self._require_available()
            with self._connect() as conn:
                conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        except (sqlite3.Error, PersistenceUnavailable) as e:
            logger.error(f"Error deleting session {session_id}: {e}")
            return False

        if self.cookie.get() == session_id:
            self.cookie.clear()
        logger.info(f"Deleted session: {session_id}")
        return True

    def list_all(self) -> List[TranscriptionSession]:
        """List every stored session, most recently updated first."""
        try:
            self._require_available()
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT id, data FROM sessions ORDER BY last_updated_at DESC"
                ).fetchall()
        except (sqlite3.Error, PersistenceUnavailable) as e:
            logger.error(f"Error listing sessions: {e}")
            return []
        return _decode_rows(rows)

    def find_by_job_id(self, job_id: str) -> Optional[TranscriptionSession]:
        """Find the most recently updated session tracking a remote job."""
        try:
            self._require_available()
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT id, data FROM sessions WHERE job_id = ? ORDER BY last_updated_at DESC",
                    (job_id,),
                ).fetchall()
        except (sqlite3.Error, PersistenceUnavailable) as e:
            logger.error(f"Error looking up job {job_id}: {e}")
            return None
        sessions = _decode_rows(rows)
        return sessions[0] if sessions else None

    def sweep_expired(self) -> int:
        """Remove every session whose expiry has passed.

        Returns:
            Number of sessions removed
        """
        now = self.clock()
        try:
            self._require_available()
            with self._connect() as conn:
                expired_ids = [row[0] for row in conn.execute(
                    "SELECT id FROM sessions WHERE expires_at <= ?", (now,)
                ).fetchall()]
                conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (now,))
        except (sqlite3.Error, PersistenceUnavailable) as e:
            logger.error(f"Error during expiry sweep: {e}")
            return 0

        cookie_id = self.cookie.get()
        if cookie_id and cookie_id in expired_ids:
            self.cookie.clear()

        if expired_ids:
            logger.info(f"Cleaned up {len(expired_ids)} expired sessions")
        return len(expired_ids)


def _decode(data: str) -> TranscriptionSession:
    return TranscriptionSession.from_dict(json.loads(data))


def _decode_rows(rows: List[Tuple[str, str]]) -> List[TranscriptionSession]:
    """Decode (id, data) rows, skipping records that no longer parse."""
    sessions = []
    for session_id, data in rows:
        try:
            sessions.append(_decode(data))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Skipping unreadable session record {session_id}: {e}")
    return sessions


def _serialize_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    serialized = {}
    for key, value in patch.items():
        if isinstance(value, SessionStatus):
            value = value.value
        elif isinstance(value, AudioSource):
            value = value.to_dict()
        elif isinstance(value, TranscriptionOptions):
            value = {"language": value.language, "diarize": value.diarize}
        serialized[key] = value
    return serialized
