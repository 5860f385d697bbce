"""
FFmpeg Command Templates for HLS Packaging

Builds one ffmpeg invocation that reads the source once and writes every
eligible rendition as its own HLS variant (segments + sub-playlist).
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from .renditions import DEFAULT_ASPECT_RATIO, Ratio, Rendition

logger = logging.getLogger(__name__)

# Ceiling and buffer relative to the nominal bitrate
MAXRATE_FACTOR = 1.07
BUFSIZE_FACTOR = 1.5


@dataclass
class HlsConfig:
    """Encoder settings shared by every rendition."""

    segment_duration: int = 5
    aspect_ratio: Ratio = DEFAULT_ASPECT_RATIO
    audio_codec: str = "aac"
    audio_sample_rate: int = 48000
    video_codec: str = "h264"
    profile: str = "main"
    crf: int = 20
    ffmpeg_bin: str = "ffmpeg"


def build_static_params(config: HlsConfig) -> List[str]:
    """Codec parameters repeated for each output."""
    return [
        "-c:a", config.audio_codec,
        "-ar", str(config.audio_sample_rate),
        "-c:v", config.video_codec,
        "-profile:v", config.profile,
        "-crf", str(config.crf),
        "-sc_threshold", "0",
    ]


def build_scale_filter(width: int, height: int) -> str:
    """
    Fill the frame then crop the overflow, so every output is exactly WxH.

    Formula: scale=W:H:force_original_aspect_ratio=increase,crop=W:H
    """
    return f"scale={width}:{height}:force_original_aspect_ratio=increase,crop={width}:{height}"


def build_rendition_args(rendition: Rendition, dest: str, config: HlsConfig) -> List[str]:
    """
    Output arguments for a single rendition.

    Args:
        rendition: Quality level to encode
        dest: Output directory
        config: Shared encoder settings

    Returns:
        ffmpeg arguments ending with the rendition's playlist path
    """
    width = rendition.output_width(config.aspect_ratio)
    maxrate = int(rendition.bitrate * MAXRATE_FACTOR)
    bufsize = int(rendition.bitrate * BUFSIZE_FACTOR)

    return [
        *build_static_params(config),
        "-vf", build_scale_filter(width, rendition.height),
        "-b:v", f"{rendition.bitrate}k",
        "-maxrate", f"{maxrate}k",
        "-bufsize", f"{bufsize}k",
        "-b:a", f"{rendition.audiorate}k",
        "-hls_time", str(config.segment_duration),
        "-hls_playlist_type", "vod",
        "-hls_segment_filename", os.path.join(dest, rendition.segment_pattern),
        os.path.join(dest, rendition.playlist_name),
    ]


def build_hls_command(
    src: Union[str, os.PathLike],
    dest: Union[str, os.PathLike],
    renditions: Sequence[Rendition],
    config: Optional[HlsConfig] = None,
) -> List[str]:
    """
    Build the complete ffmpeg command for all renditions.

    Args:
        src: Source video path
        dest: Output directory for segments and sub-playlists
        renditions: Eligible renditions, in output order
        config: Shared encoder settings (defaults to HlsConfig())

    Returns:
        Command as list of arguments for subprocess
    """
    config = config or HlsConfig()
    src, dest = os.fspath(src), os.fspath(dest)

    cmd = [config.ffmpeg_bin, "-hide_banner", "-y", "-i", src]
    for rendition in renditions:
        cmd.extend(build_rendition_args(rendition, dest, config))

    return cmd
