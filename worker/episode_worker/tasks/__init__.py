"""
Episode Worker Tasks

Commands executed from the queue and the pipeline behind them.

Commands:
- ProcessEpisode: download, transcode to HLS, upload, report status
- EpisodeUpdated: status update pushed back to the Laravel application
"""

from .episode import (
    EpisodeUpdated,
    JobContext,
    ProcessEpisode,
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_SUCCESS,
    build_scope,
    process_episode,
    report_status,
)
from .ffmpeg_runner import run_ffmpeg_with_progress, validate_ffmpeg_available
from .transcode import PipelineState, TranscodePipeline

__all__ = [
    # Commands
    "EpisodeUpdated",
    "ProcessEpisode",
    "JobContext",
    "build_scope",
    # Task functions
    "process_episode",
    "report_status",
    "run_ffmpeg_with_progress",
    "validate_ffmpeg_available",
    "PipelineState",
    "TranscodePipeline",
    # Status values
    "STATUS_PROCESSING",
    "STATUS_SUCCESS",
    "STATUS_FAILED",
]
