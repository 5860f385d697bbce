"""
Episode Processing Task

Handles ProcessEpisode commands dispatched by the Laravel application:
1. Report "processing"
2. Download the source episode from object storage
3. Transcode it into an HLS package
4. Upload the package, then delete the local and remote sources
5. Report "success" with the episode duration, or "failed"

Exactly one success or failed report follows the processing report.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field

from ..config import Settings
from ..dispatcher import ExecutableCommand
from ..errors import FilesystemError
from ..filesystem import create_dir, episode_work_dir, remove
from ..object_storage import ObjectStorage, object_key
from ..queues import QueueClient
from ..serializer import CommandKind, Scope
from .transcode import HlsConfig, TranscodePipeline

logger = logging.getLogger(__name__)

STATUS_PROCESSING = "processing"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

SOURCE_FILENAME = "source"
OUTPUT_DIRNAME = "hls"


@dataclass
class JobContext:
    """Shared collaborators handed to every executable command."""

    settings: Settings
    status_queue: QueueClient
    storage: ObjectStorage


class EpisodeUpdated(BaseModel):
    """
    Status update consumed by the Laravel application.

    data holds {"status": ..., "seconds": ...}; seconds is only present
    on success.
    """

    episode: str
    data: Dict[str, Union[str, float]] = Field(default_factory=dict)

    @classmethod
    def for_status(cls, episode: str, status: str, seconds: Optional[float] = None) -> "EpisodeUpdated":
        data: Dict[str, Union[str, float]] = {"status": status}
        if seconds is not None:
            data["seconds"] = seconds
        return cls(episode=episode, data=data)

    @property
    def status(self) -> Optional[str]:
        return self.data.get("status")


class ProcessEpisode(ExecutableCommand):
    """Transcode one uploaded episode."""

    episode: str

    def handle(self, context: JobContext) -> None:
        process_episode(self.episode, context)


def build_scope(settings: Settings) -> Scope:
    """Register the episode commands under the PHP class names from settings."""
    scope = Scope()
    scope.register(settings.process_command_class, ProcessEpisode, CommandKind.EXECUTABLE)
    scope.register(settings.status_command_class, EpisodeUpdated, CommandKind.EVENT_ONLY)
    return scope


def hls_config_from_settings(settings: Settings) -> HlsConfig:
    return HlsConfig(
        segment_duration=settings.segment_duration,
        aspect_ratio=settings.aspect_fraction,
        ffmpeg_bin=settings.ffmpeg_bin,
    )


def report_status(
    context: JobContext,
    episode: str,
    status: str,
    seconds: Optional[float] = None,
) -> None:
    """
    Push an EpisodeUpdated command to the status queue.

    Raises:
        QueueUnavailable: If the push fails
    """
    update = EpisodeUpdated.for_status(episode, status, seconds)
    queue = context.status_queue
    queue.push(queue.scope.tag_for(update), update)
    logger.info(f"Episode {episode}: {status}")


def _cleanup_work_dir(work_dir: Optional[Path]) -> None:
    if work_dir is None or not work_dir.exists():
        return
    try:
        remove(work_dir)
    except FilesystemError as e:
        logger.warning(f"Could not clean up {work_dir}: {e}")


def process_episode(episode: str, context: JobContext) -> None:
    """
    Run the full download -> transcode -> upload workflow for one episode.

    The remote source is deleted only after the upload succeeded, so a
    failure at any step leaves the source object in place.

    Args:
        episode: Episode name; also the object name under source_prefix
        context: Settings, status queue and storage gateway

    Raises:
        QueueUnavailable: If a status report cannot be pushed
    """
    settings = context.settings
    report_status(context, episode, STATUS_PROCESSING)

    work_dir: Optional[Path] = None
    try:
        work_dir = episode_work_dir(settings.work_dir, episode)
        if work_dir.exists():
            logger.warning(f"Removing leftover files from an earlier run in {work_dir}")
            remove(work_dir)
        output_dir = create_dir(work_dir / OUTPUT_DIRNAME)
        source_path = work_dir / SOURCE_FILENAME
        source_key = object_key(settings.source_prefix, episode)

        context.storage.download_file(source_key, source_path)

        pipeline = TranscodePipeline(
            source_path,
            output_dir,
            config=hls_config_from_settings(settings),
            ffprobe_bin=settings.ffprobe_bin,
            timeout_seconds=settings.encode_timeout,
            on_progress=lambda percent: logger.info(f"Episode {episode}: {percent}%"),
        )
        pipeline.process()

        remove(source_path)
        context.storage.upload_directory(output_dir, object_key(settings.destination_prefix, episode))
        context.storage.delete_file(source_key)
        remove(work_dir)

    except Exception as e:
        logger.error(f"Processing episode {episode} failed: {e}", exc_info=True)
        _cleanup_work_dir(work_dir)
        report_status(context, episode, STATUS_FAILED)
        return

    report_status(context, episode, STATUS_SUCCESS, seconds=pipeline.duration)
