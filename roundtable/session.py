"""Session creation and an explicit keyed session store."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from roundtable.models import DebateConfig, DebateSession
from roundtable.validation import InvalidConfigError, validate_debate_config

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a session id is not in the store."""


class SessionBusyError(RuntimeError):
    """Raised when a session is already being driven by another run."""


def create_session(config: DebateConfig) -> DebateSession:
    """Validate config and mint a pending session with a fresh id.

    Raises:
        InvalidConfigError: If the configuration fails validation.
    """
    validation = validate_debate_config(config)
    if not validation.is_valid:
        raise InvalidConfigError(validation.errors)
    return DebateSession(id=str(uuid.uuid4()), config=config)


class SessionStore:
    """In-memory sessions keyed by id, with one writer per session at a time.

    Callers mutate a session only inside ``lease``. A second lease on a
    session that is already leased fails immediately rather than queueing
    behind the active run.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, DebateSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def create(self, config: DebateConfig) -> DebateSession:
        session = create_session(config)
        self.add(session)
        return session

    def add(self, session: DebateSession) -> None:
        if session.id in self._sessions:
            raise ValueError(f"Session {session.id} already stored")
        self._sessions[session.id] = session
        self._locks[session.id] = asyncio.Lock()
        logger.debug("Stored session %s", session.id)

    def get(self, session_id: str) -> DebateSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def remove(self, session_id: str) -> DebateSession:
        session = self.get(session_id)
        if self._locks[session_id].locked():
            raise SessionBusyError(f"Session {session_id} is in use")
        del self._sessions[session_id]
        del self._locks[session_id]
        return session

    def ids(self) -> list[str]:
        return list(self._sessions)

    def is_leased(self, session_id: str) -> bool:
        self.get(session_id)
        return self._locks[session_id].locked()

    @asynccontextmanager
    async def lease(self, session_id: str) -> AsyncIterator[DebateSession]:
        session = self.get(session_id)
        lock = self._locks[session_id]
        if lock.locked():
            raise SessionBusyError(f"Session {session_id} is already being run")
        async with lock:
            yield session

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
