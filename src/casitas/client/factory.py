"""Client side wiring from settings."""

from casitas.client.connectivity import ConnectivityMonitor
from casitas.client.offline_queue import OfflineUploadQueue
from casitas.client.progress import UploadProgressTracker
from casitas.client.queue_storage import QueueStorage
from casitas.client.transfer import ChunkTransferClient
from casitas.client.worker import QueueWorker
from casitas.core.config import Settings, settings as default_settings


def build_transfer_client(settings: Settings = default_settings) -> ChunkTransferClient:
    return ChunkTransferClient(
        base_url=settings.UPLOAD_SERVICE_URL,
        chunk_size=settings.CHUNK_SIZE_BYTES,
        timeout=settings.CLIENT_REQUEST_TIMEOUT,
    )


def build_progress_tracker(settings: Settings = default_settings) -> UploadProgressTracker:
    return UploadProgressTracker(settings.PROGRESS_STATE_PATH)


def build_queue_worker(settings: Settings = default_settings) -> tuple[QueueWorker, ConnectivityMonitor]:
    """Build the queue worker and the monitor feeding it connectivity events.

    The worker starts offline; the monitor's first successful health check
    brings it online and triggers a run.
    """
    client = build_transfer_client(settings)
    queue = OfflineUploadQueue(
        storage=QueueStorage(settings.QUEUE_DIR),
        client=client,
        max_attempts=settings.QUEUE_MAX_ATTEMPTS,
    )
    worker = QueueWorker(queue, poll_interval_seconds=settings.QUEUE_POLL_INTERVAL_SECONDS, online=False)
    monitor = ConnectivityMonitor(client, worker, interval_seconds=settings.CONNECTIVITY_CHECK_INTERVAL_SECONDS)
    return worker, monitor
