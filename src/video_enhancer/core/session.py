"""Session file registry for bulk cleanup.

This module tracks which files belong to which client session so that a
session's uploads and outputs can be deleted together. The registry is
process-lifetime state: it is created at startup, cleared at shutdown and
not persisted, so files of sessions lost in a restart are only reclaimed
by the retention sweeper.

Example:
    >>> from video_enhancer.core.session import SessionRegistry
    >>> registry = SessionRegistry()
    >>> registry.register("abc123", Path("/uploads/clip.mov"), SessionFileType.INPUT)
    >>> registry.cleanup_session("abc123")
    [PosixPath('/uploads/clip.mov')]
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from video_enhancer.core.types import SessionFileRecord, SessionFileType

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Concurrency-safe mapping of session id to owned files.

    A single lock guards the mapping; it is held only for dictionary
    operations, never across file deletion.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, list[SessionFileRecord]] = {}

    def register(
        self,
        session_id: str,
        path: Path,
        file_type: SessionFileType | str = SessionFileType.INPUT,
    ) -> SessionFileRecord:
        """Associate a file with a session.

        Registering the same path twice for a session keeps one record.

        Args:
            session_id: Owning session.
            path: File path (stored absolute).
            file_type: Input or output.

        Returns:
            The session file record.
        """
        record = SessionFileRecord(
            session_id=session_id,
            path=Path(path).expanduser().absolute(),
            file_type=file_type,
        )

        with self._lock:
            records = self._sessions.setdefault(session_id, [])
            for existing in records:
                if existing.path == record.path:
                    return existing
            records.append(record)

        logger.debug(f"Session {session_id}: tracking {record.file_type.value} {record.path.name}")
        return record

    def files(self, session_id: str) -> list[SessionFileRecord]:
        """Get a snapshot of the files registered for a session."""
        with self._lock:
            return list(self._sessions.get(session_id, []))

    def sessions(self) -> list[str]:
        """Get the ids of all sessions with registered files."""
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def cleanup_session(self, session_id: str) -> list[Path]:
        """Delete every file of a session and forget the session.

        Deletion errors are logged, never raised.

        Args:
            session_id: Session to clean up.

        Returns:
            Paths that were actually deleted.
        """
        with self._lock:
            records = self._sessions.pop(session_id, [])

        deleted = self._delete_records(records)
        if records:
            logger.info(
                f"Cleaned up session {session_id}: {len(deleted)} of {len(records)} files deleted"
            )
        return deleted

    def cleanup_all(self) -> list[Path]:
        """Delete the files of every session and clear the registry."""
        with self._lock:
            all_records = [record for records in self._sessions.values() for record in records]
            self._sessions.clear()

        deleted = self._delete_records(all_records)
        if all_records:
            logger.info(f"Cleaned up all sessions: {len(deleted)} files deleted")
        return deleted

    def clear(self) -> None:
        """Forget every session without touching files."""
        with self._lock:
            self._sessions.clear()

    @staticmethod
    def _delete_records(records: list[SessionFileRecord]) -> list[Path]:
        deleted: list[Path] = []
        for record in records:
            try:
                record.path.unlink()
                deleted.append(record.path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Failed to delete {record.path}: {e}")
        return deleted


__all__ = ["SessionRegistry"]
