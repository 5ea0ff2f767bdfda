"""Upload session tracking store."""

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from casitas.assembly.exceptions import InvalidTransitionError
from casitas.models.status import SESSION_TRANSITIONS, SessionState

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UploadSession:
    """Server-side bookkeeping for one in-progress chunked upload."""

    upload_id: str
    file_name: str
    declared_size: int  # Advisory only, never checked against received bytes
    record_id: str
    created_at: datetime
    field_name: Optional[str] = None
    total_chunks: Optional[int] = None
    chunks: Dict[int, str] = field(default_factory=dict)
    chunk_sizes: Dict[int, int] = field(default_factory=dict)
    received_bytes: int = 0
    state: SessionState = SessionState.INITIATED
    assembled_path: Optional[str] = None
    media_url: Optional[str] = None

    def expected_chunks(self, chunk_size: int) -> int:
        """Number of chunk slots the session must fill before finalize.

        Uses the declared chunk count when the client sent one, otherwise
        derives it from the declared size and the agreed chunk size.
        """
        if self.total_chunks is not None:
            return self.total_chunks
        if self.declared_size <= 0:
            return 1
        return math.ceil(self.declared_size / chunk_size)

    def first_missing_chunk(self, chunk_size: int) -> Optional[int]:
        """Smallest unpopulated chunk index, or None if every slot is filled."""
        for index in range(self.expected_chunks(chunk_size)):
            if index not in self.chunks:
                return index
        return None

    @property
    def holds_assembled_media(self) -> bool:
        """Whether a previous finalize already assembled or stored the file."""
        return self.assembled_path is not None or self.media_url is not None

    def transition(self, new_state: SessionState) -> None:
        """Move to ``new_state`` if the transition table allows it."""
        if new_state not in SESSION_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Upload {self.upload_id} cannot go from {self.state.value} to {new_state.value}"
            )
        self.state = new_state


class SessionStore:
    """In-memory store for upload sessions.

    All methods are synchronous and guarded by a lock, so they are safe to
    call from the event loop and from worker threads alike.
    """

    def __init__(self, clock: Clock = utc_now):
        self._sessions: Dict[str, UploadSession] = {}
        self._lock = threading.Lock()
        self.clock = clock

    def get(self, upload_id: str) -> Optional[UploadSession]:
        """Retrieve a session by upload id."""
        with self._lock:
            return self._sessions.get(upload_id)

    def set(self, session: UploadSession) -> Optional[UploadSession]:
        """Store a session, returning the one it replaced, if any."""
        with self._lock:
            previous = self._sessions.get(session.upload_id)
            self._sessions[session.upload_id] = session
            return previous

    def delete(self, upload_id: str) -> Optional[UploadSession]:
        """Remove a session, returning it if it existed."""
        with self._lock:
            return self._sessions.pop(upload_id, None)

    def sweep(self, retention: timedelta) -> list[UploadSession]:
        """Remove every session created more than ``retention`` ago.

        Sessions are removed regardless of their state.

        Returns:
            The removed sessions, so their scratch files can be cleaned up
        """
        cutoff = self.clock() - retention
        with self._lock:
            expired = [s for s in self._sessions.values() if s.created_at < cutoff]
            for session in expired:
                del self._sessions[session.upload_id]
        if expired:
            logger.info(
                f"Swept {len(expired)} expired upload sessions",
                extra={"upload_ids": [s.upload_id for s in expired]},
            )
        return expired

    def list_all(self) -> list[UploadSession]:
        """List all live sessions."""
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
