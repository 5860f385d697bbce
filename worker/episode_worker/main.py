"""
Episode Worker Entry Point

Starts the worker that consumes transcode jobs pushed by the Laravel
application and reports episode status back to it.

Usage:
    python -m episode_worker.main
    episode-worker

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379/0)
    QUEUE_NAME: Inbound queue (default: transcode)
    STATUS_QUEUE_NAME: Queue receiving EpisodeUpdated jobs (default: default)
    MINIO_*: Object storage endpoint, credentials and bucket
    LOGGING: "true" logs to stdout, otherwise to LOG_DIR files
"""

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from redis import Redis
from redis.backoff import ExponentialBackoff

from .config import Settings, get_settings
from .dispatcher import Dispatcher, ErrorSignal, JobSignal
from .errors import StorageError
from .object_storage import ObjectStorage
from .queues import QueueClient, get_redis_connection, queue_key
from .tasks import JobContext, build_scope, validate_ffmpeg_available

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("episode_worker.worker")


def configure_logging(settings: Settings) -> None:
    """
    Configure the root logger.

    LOGGING=true sends everything to stdout; otherwise errors go to
    error.log and everything to combined.log under LOG_DIR.
    """
    level = logging.INFO if settings.is_production else logging.DEBUG

    if settings.log_to_console:
        handlers = [logging.StreamHandler(sys.stdout)]
    else:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        error_handler = logging.FileHandler(log_dir / "error.log")
        error_handler.setLevel(logging.ERROR)
        handlers = [error_handler, logging.FileHandler(log_dir / "combined.log")]

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def _log_job(signal_: JobSignal) -> None:
    logger.info(f"Received {signal_.name}; no local handler runs for it")


def _log_error(signal_: ErrorSignal) -> None:
    logger.debug(f"Error signal: {type(signal_.error).__name__}")


def _queue_error(error: Exception) -> None:
    _log_error(ErrorSignal(error=error))


def create_worker(connection: Redis, settings: Settings, storage: ObjectStorage) -> tuple:
    """
    Wire the queue clients, job context and dispatcher together.

    Args:
        connection: Redis connection shared by both queues
        settings: Worker settings
        storage: Object storage gateway

    Returns:
        Tuple of (inbound QueueClient, Dispatcher)
    """
    scope = build_scope(settings)
    backoff = ExponentialBackoff(cap=settings.queue_backoff_cap, base=settings.queue_backoff_base)

    inbound = QueueClient(
        connection,
        queue_key(settings.queue_name, settings.redis_prefix),
        scope,
        block_timeout=settings.queue_block_timeout,
        backoff=backoff,
        on_error=_queue_error,
    )
    status_queue = QueueClient(
        connection,
        queue_key(settings.status_queue_name, settings.redis_prefix),
        scope,
    )

    context = JobContext(settings=settings, status_queue=status_queue, storage=storage)
    dispatcher = Dispatcher(scope, context, on_job=_log_job, on_error=_log_error)
    return inbound, dispatcher


def install_signal_handlers(stop_event: threading.Event) -> None:
    """
    Stop the listen loop on SIGTERM / SIGINT once the current job ends.

    A blocking pop with no timeout only notices the first signal when the
    next job arrives; a second signal interrupts immediately.
    """

    def _handle(signum, frame):
        if stop_event.is_set():
            raise KeyboardInterrupt
        logger.info(f"Received signal {signum}, shutting down after current job")
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def start_worker(settings: Optional[Settings] = None) -> None:
    """
    Connect to Redis and object storage, then process jobs until stopped.

    This function blocks and runs until the worker is terminated.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    logger.info("Starting episode worker...")

    try:
        connection = get_redis_connection(settings.redis_url)

        # Verify Redis connection
        connection.ping()
        logger.info("Successfully connected to Redis")

    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        sys.exit(1)

    storage = ObjectStorage.from_settings(settings)
    try:
        buckets = storage.list_buckets()
        logger.info(f"Buckets: {', '.join(buckets)}")
    except StorageError as e:
        logger.warning(f"Object storage not reachable yet: {e}")

    if not validate_ffmpeg_available(settings.ffmpeg_bin):
        logger.warning(f"{settings.ffmpeg_bin} is not available; jobs will fail until it is installed")

    inbound, dispatcher = create_worker(connection, settings, storage)

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    try:
        inbound.listen(dispatcher, stop_event)
    except KeyboardInterrupt:
        logger.info("Worker shutdown requested")

    logger.info("Worker stopped")


def main() -> None:
    """Main entry point for the worker module."""
    start_worker()


if __name__ == "__main__":
    main()
