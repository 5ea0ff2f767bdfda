"""Status enumerations shared by the server and the client side."""

from enum import Enum


class SessionState(str, Enum):
    """Lifecycle of an upload session inside the assembly service."""

    INITIATED = "initiated"  # Session created, no chunk received yet
    RECEIVING = "receiving"  # Some chunks received
    COMPLETE = "complete"  # Every chunk slot populated
    FINALIZING = "finalizing"  # Finalize in progress
    FINALIZED = "finalized"  # Media stored and record updated


SESSION_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INITIATED: frozenset({SessionState.RECEIVING, SessionState.COMPLETE}),
    SessionState.RECEIVING: frozenset({SessionState.RECEIVING, SessionState.COMPLETE}),
    SessionState.COMPLETE: frozenset({SessionState.COMPLETE, SessionState.FINALIZING}),
    SessionState.FINALIZING: frozenset(
        {SessionState.FINALIZED, SessionState.COMPLETE, SessionState.RECEIVING}
    ),
    SessionState.FINALIZED: frozenset(),
}


class QueueItemStatus(str, Enum):
    """Status of an item in the offline upload queue."""

    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


QUEUE_TRANSITIONS: dict[QueueItemStatus, frozenset[QueueItemStatus]] = {
    QueueItemStatus.PENDING: frozenset({QueueItemStatus.UPLOADING}),
    QueueItemStatus.UPLOADING: frozenset(
        {QueueItemStatus.COMPLETED, QueueItemStatus.ERROR, QueueItemStatus.PENDING}
    ),
    QueueItemStatus.ERROR: frozenset({QueueItemStatus.PENDING}),
    QueueItemStatus.COMPLETED: frozenset(),
}


class UploadStatus(str, Enum):
    """Progress status shown to UI observers.

    Superset of ``QueueItemStatus`` with the server-side finalize phases.
    Any status may follow any other.
    """

    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    STORING = "storing"
    UPDATING = "updating"
    COMPLETED = "completed"
    ERROR = "error"
