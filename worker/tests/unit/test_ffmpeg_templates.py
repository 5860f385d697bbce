"""
Unit tests for HLS ffmpeg command generation.
"""

import os

from episode_worker.tasks.transcode.ffmpeg_templates import (
    HlsConfig,
    build_hls_command,
    build_rendition_args,
    build_scale_filter,
    build_static_params,
)
from episode_worker.tasks.transcode.renditions import DEFAULT_RENDITIONS, Rendition

R720 = Rendition(height=720, bitrate=2800, audiorate=128)


def option(args, flag):
    """Value following a flag."""
    return args[args.index(flag) + 1]


class TestStaticParams:
    """Tests for codec parameters shared by every output."""

    def test_defaults(self):
        assert build_static_params(HlsConfig()) == [
            "-c:a", "aac",
            "-ar", "48000",
            "-c:v", "h264",
            "-profile:v", "main",
            "-crf", "20",
            "-sc_threshold", "0",
        ]


class TestScaleFilter:
    def test_fill_then_crop(self):
        assert build_scale_filter(1280, 720) == (
            "scale=1280:720:force_original_aspect_ratio=increase,crop=1280:720"
        )


class TestRenditionArgs:
    """Tests for one rendition's output arguments."""

    def test_720p(self):
        """Test bitrate ceilings, segmenting and output paths."""
        args = build_rendition_args(R720, "/out", HlsConfig())

        assert option(args, "-vf") == "scale=1280:720:force_original_aspect_ratio=increase,crop=1280:720"
        assert option(args, "-b:v") == "2800k"
        assert option(args, "-maxrate") == "2996k"
        assert option(args, "-bufsize") == "4200k"
        assert option(args, "-b:a") == "128k"
        assert option(args, "-hls_time") == "5"
        assert option(args, "-hls_playlist_type") == "vod"
        assert option(args, "-hls_segment_filename") == os.path.join("/out", "720p_%03d.ts")
        assert args[-1] == os.path.join("/out", "720p.m3u8")

    def test_segment_duration(self):
        args = build_rendition_args(R720, "/out", HlsConfig(segment_duration=10))
        assert option(args, "-hls_time") == "10"

    def test_maxrate_truncates(self):
        """Test fractional kbps values are truncated."""
        args = build_rendition_args(Rendition(144, 200, 64), "/out", HlsConfig())
        assert option(args, "-maxrate") == "214k"
        assert option(args, "-bufsize") == "300k"
        assert option(args, "-vf").startswith("scale=256:144:")


class TestBuildHlsCommand:
    """Tests for the complete command."""

    def test_single_input_many_outputs(self):
        """Test the source is read once and each rendition gets a playlist."""
        cmd = build_hls_command("/in/source", "/out", DEFAULT_RENDITIONS)

        assert cmd[:5] == ["ffmpeg", "-hide_banner", "-y", "-i", "/in/source"]
        assert cmd.count("-i") == 1
        assert cmd.count("-vf") == len(DEFAULT_RENDITIONS)
        playlists = [arg for arg in cmd if arg.endswith(".m3u8")]
        assert playlists == [os.path.join("/out", r.playlist_name) for r in DEFAULT_RENDITIONS]

    def test_custom_binary(self):
        cmd = build_hls_command("/in/source", "/out", [R720], HlsConfig(ffmpeg_bin="/opt/ffmpeg"))
        assert cmd[0] == "/opt/ffmpeg"

    def test_no_renditions(self):
        assert build_hls_command("/in/source", "/out", []) == [
            "ffmpeg", "-hide_banner", "-y", "-i", "/in/source",
        ]
