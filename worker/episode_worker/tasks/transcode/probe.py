"""
Source Probing

Thin wrapper around the ffprobe CLI. Two plain-text queries are made per
source: stream width/height and container duration.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple, Union

from ...errors import ProbeError, SpawnError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceProbe:
    """Properties of the source video used to plan the renditions."""

    width: int
    height: int
    duration_seconds: float


def _run_ffprobe(cmd: List[str]) -> str:
    """Execute ffprobe and return its trimmed stdout."""
    logger.debug(f"ffprobe command: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as e:
        raise SpawnError(f"Cannot start {cmd[0]}: {e}") from e

    if result.returncode != 0:
        raise ProbeError(
            f"ffprobe exited with code {result.returncode}: {result.stderr.strip()}"
        )

    return result.stdout.strip()


def parse_resolution(output: str) -> Tuple[int, int]:
    """
    Parse "WIDTHxHEIGHT" as printed by -of csv=s=x:p=0.

    Raises:
        ProbeError: Unless output holds two positive integers
    """
    # Some containers repeat the line or leave a trailing separator
    line = output.strip().splitlines()[0].strip().rstrip("x") if output.strip() else ""
    try:
        width_text, height_text = line.split("x")
        width, height = int(width_text), int(height_text)
    except ValueError:
        raise ProbeError(f"Cannot parse resolution from ffprobe output: {output!r}") from None

    if width <= 0 or height <= 0:
        raise ProbeError(f"Invalid resolution {width}x{height}")
    return width, height


def parse_duration(output: str) -> float:
    """
    Parse the container duration in seconds.

    Raises:
        ProbeError: Unless output is one positive number
    """
    try:
        duration = float(output.strip())
    except ValueError:
        raise ProbeError(f"Cannot parse duration from ffprobe output: {output!r}") from None

    # float() accepts "nan" and "inf"; neither is a usable duration
    if not (0 < duration < float("inf")):
        raise ProbeError(f"Invalid duration {duration}")
    return duration


def probe_resolution(src: Union[str, Path], ffprobe_bin: str = "ffprobe") -> Tuple[int, int]:
    output = _run_ffprobe([
        ffprobe_bin,
        "-v", "error",
        "-select_streams", "v:0",
        "-show_entries", "stream=width,height",
        "-of", "csv=s=x:p=0",
        str(src),
    ])
    return parse_resolution(output)


def probe_duration(src: Union[str, Path], ffprobe_bin: str = "ffprobe") -> float:
    output = _run_ffprobe([
        ffprobe_bin,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(src),
    ])
    return parse_duration(output)


def probe_source(src: Union[str, Path], ffprobe_bin: str = "ffprobe") -> SourceProbe:
    """
    Probe a source video's resolution and duration.

    Args:
        src: Path to the source video
        ffprobe_bin: ffprobe executable

    Returns:
        SourceProbe with width, height and duration

    Raises:
        SpawnError: If ffprobe cannot be started
        ProbeError: If ffprobe fails or prints something unparsable
    """
    width, height = probe_resolution(src, ffprobe_bin)
    duration = probe_duration(src, ffprobe_bin)
    logger.info(f"Probed {src}: {width}x{height}, {duration:.2f}s")
    return SourceProbe(width=width, height=height, duration_seconds=duration)
