"""
Episode Worker Package

Redis-backed worker that takes transcode jobs from a Laravel queue and
turns uploaded episodes into HLS packages:
- Laravel job envelopes with PHP-serialized commands
- ffprobe/ffmpeg HLS transcoding with progress tracking
- MinIO / S3 object storage for sources and outputs
- Episode status reports pushed back to Laravel
"""

from .config import Settings, get_settings
from .dispatcher import Dispatcher, ErrorSignal, ExecutableCommand, JobSignal
from .queues import JobEnvelope, QueueClient, get_redis_connection, queue_key
from .serializer import CommandKind, Scope

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    # Queue protocol
    "JobEnvelope",
    "QueueClient",
    "get_redis_connection",
    "queue_key",
    # Dispatch
    "CommandKind",
    "Scope",
    "Dispatcher",
    "ExecutableCommand",
    "JobSignal",
    "ErrorSignal",
]
