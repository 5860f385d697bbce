"""
HLS Transcode Pipeline

Probe a source, pick the renditions it can feed, encode them all in one
FFmpeg run and write the master playlist.
"""

from .ffmpeg_templates import HlsConfig, build_hls_command
from .manifest import MASTER_PLAYLIST_NAME, build_master_playlist, write_master_playlist
from .pipeline import PipelineState, TranscodePipeline
from .probe import SourceProbe, probe_source
from .renditions import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_RENDITIONS,
    Rendition,
    is_eligible,
    select_eligible_renditions,
)

__all__ = [
    "HlsConfig",
    "build_hls_command",
    "MASTER_PLAYLIST_NAME",
    "build_master_playlist",
    "write_master_playlist",
    "PipelineState",
    "TranscodePipeline",
    "SourceProbe",
    "probe_source",
    "DEFAULT_ASPECT_RATIO",
    "DEFAULT_RENDITIONS",
    "Rendition",
    "is_eligible",
    "select_eligible_renditions",
]
