"""In-memory session map with per-session single-flight.

All mutation happens on the event loop thread, so a plain set is
enough for the busy flag: ``claim`` checks and marks in one
synchronous step with no await in between.
"""
from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator

from webbot.engine.errors import InvalidInputError, NotFoundError, SessionBusyError
from webbot.shared.models.session import Session, is_valid_session_id
from webbot.shared.services.persistence import SessionStore

logger = logging.getLogger(__name__)


def validate_session_id(session_id: object) -> str:
    if not is_valid_session_id(session_id):
        raise InvalidInputError(f"Invalid session id: {session_id!r}")
    return session_id  # type: ignore[return-value]


class SessionRegistry:
    """Owns resident sessions and the busy set."""

    def __init__(self, store: SessionStore) -> None:
        self._store = store
        self._sessions: dict[str, Session] = store.load_all()
        self._busy: set[str] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @property
    def busy_sessions(self) -> frozenset[str]:
        return frozenset(self._busy)

    def is_busy(self, session_id: str) -> bool:
        return session_id in self._busy

    @contextlib.contextmanager
    def claim(self, session_id: str) -> Iterator[Session]:
        """Mark ``session_id`` busy for the duration of the block.

        A second claim for the same id raises ``SessionBusyError``
        instead of waiting.
        """
        validate_session_id(session_id)
        if session_id in self._busy:
            logger.info("Rejecting concurrent turn for busy session %s", session_id)
            raise SessionBusyError(session_id)
        self._busy.add(session_id)
        try:
            yield self.get_or_create(session_id)
        finally:
            self._busy.discard(session_id)

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        session = self._sessions.get(validate_session_id(session_id))
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    def get_or_create(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(id=validate_session_id(session_id))
            self._sessions[session_id] = session
            logger.info("Created session %s", session_id)
        return session

    def list(self) -> list[Session]:
        """Resident sessions, most recently updated first."""
        return sorted(self._sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def save(self, session: Session) -> None:
        self._store.save(session)

    def clear(self, session_id: str) -> Session:
        """Empty a session's history; clearing an unknown id creates it empty."""
        if session_id in self._busy:
            raise SessionBusyError(session_id)
        session = self.get_or_create(validate_session_id(session_id))
        session.clear()
        self._store.save(session)
        logger.info("Cleared session %s", session_id)
        return session

    def delete(self, session_id: str) -> None:
        self.require(session_id)
        if session_id in self._busy:
            raise SessionBusyError(session_id)
        del self._sessions[session_id]
        self._store.delete(session_id)
        logger.info("Deleted session %s", session_id)

    def flush_all(self) -> int:
        """Persist every resident session; returns how many were written."""
        written = 0
        for session in self._sessions.values():
            try:
                self._store.save(session)
                written += 1
            except OSError:
                logger.exception("Failed to persist session %s", session.id)
        logger.info("Flushed %d session(s) to %s", written, self._store.directory)
        return written
