"""
Transcode Pipeline

Converts one source video into an HLS package:

    PROBING -> RENDITION_SELECTION -> ARGUMENT_BUILD -> ENCODING
            -> MANIFEST_WRITE -> DONE

Any failure moves the pipeline to FAILED and re-raises; later states do not
run, so a failed encode never leaves a master playlist behind.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from ..ffmpeg_runner import run_ffmpeg_with_progress
from .ffmpeg_templates import HlsConfig, build_hls_command
from .manifest import write_master_playlist
from .probe import SourceProbe, probe_source
from .renditions import DEFAULT_RENDITIONS, Rendition, select_eligible_renditions

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    PENDING = "pending"
    PROBING = "probing"
    RENDITION_SELECTION = "rendition_selection"
    ARGUMENT_BUILD = "argument_build"
    ENCODING = "encoding"
    MANIFEST_WRITE = "manifest_write"
    DONE = "done"
    FAILED = "failed"


class TranscodePipeline:
    """
    Produce a master playlist plus one HLS variant per eligible rendition.

    Args:
        src: Source video file
        dest: Existing output directory
        renditions: Candidate ladder, ascending
        config: Encoder settings (segment length, aspect ratio, binaries)
        ffprobe_bin: ffprobe executable
        timeout_seconds: Encoder timeout (None: unlimited)
        on_progress: Called with each new encode percentage
        on_end: Called once after the playlist is written
    """

    def __init__(
        self,
        src: Union[str, Path],
        dest: Union[str, Path],
        renditions: Sequence[Rendition] = DEFAULT_RENDITIONS,
        config: Optional[HlsConfig] = None,
        ffprobe_bin: str = "ffprobe",
        timeout_seconds: Optional[int] = None,
        on_progress: Optional[Callable[[int], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
    ):
        self.src = Path(src)
        self.dest = Path(dest)
        self.renditions = list(renditions)
        self.config = config or HlsConfig()
        self.ffprobe_bin = ffprobe_bin
        self.timeout_seconds = timeout_seconds
        self.on_progress = on_progress
        self.on_end = on_end

        self.state = PipelineState.PENDING
        self.probe: Optional[SourceProbe] = None
        self.eligible_renditions: List[Rendition] = []
        self.command: List[str] = []
        self.manifest_path: Optional[Path] = None

    @property
    def duration(self) -> float:
        """Probed source duration in seconds (0.0 before probing)."""
        return self.probe.duration_seconds if self.probe else 0.0

    def process(self) -> Path:
        """
        Run every stage in order.

        Returns:
            Path: The written master playlist

        Raises:
            SpawnError: If ffprobe or ffmpeg cannot be started
            ProbeError: If the source cannot be probed
            EncodeError: If ffmpeg fails (EncodeTimeout on timeout)
            FilesystemError: If the playlist cannot be written
        """
        try:
            self.state = PipelineState.PROBING
            self.probe = probe_source(self.src, self.ffprobe_bin)

            self.state = PipelineState.RENDITION_SELECTION
            self.eligible_renditions = select_eligible_renditions(
                self.probe.width,
                self.probe.height,
                self.renditions,
                self.config.aspect_ratio,
            )
            logger.info(
                f"Eligible renditions for {self.src.name}: "
                f"{', '.join(r.name for r in self.eligible_renditions) or 'none'}"
            )

            self.state = PipelineState.ARGUMENT_BUILD
            self.command = build_hls_command(self.src, self.dest, self.eligible_renditions, self.config)

            self.state = PipelineState.ENCODING
            if self.eligible_renditions:
                run_ffmpeg_with_progress(self.command, self.on_progress, self.timeout_seconds)
            else:
                logger.warning(f"{self.src.name} is smaller than every rendition, skipping encode")

            self.state = PipelineState.MANIFEST_WRITE
            self.manifest_path = write_master_playlist(
                self.dest, self.eligible_renditions, self.config.aspect_ratio
            )
        except Exception:
            logger.error(f"Transcode of {self.src} failed in state {self.state.value}")
            self.state = PipelineState.FAILED
            raise

        self.state = PipelineState.DONE
        if self.on_end:
            self.on_end()
        return self.manifest_path
