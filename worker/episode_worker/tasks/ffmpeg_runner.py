"""
FFmpeg Runner with Progress Tracking

Runs one FFmpeg command with:
- Progress parsed from the diagnostic stream (Duration: / time=)
- Deduplicated, non-decreasing progress callbacks
- Optional timeout enforcement
- Process group management for clean termination
- Detailed error reporting
"""

import logging
import math
import os
import re
import signal
import subprocess
import time
from collections import deque
from typing import Callable, List, Optional

from ..errors import EncodeError, EncodeTimeout, SpawnError

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"Duration: (\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
TIME_PATTERN = re.compile(r"time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")

# Lines of diagnostic output kept for error messages
OUTPUT_TAIL_LINES = 40


def parse_timestamp(match: re.Match) -> float:
    """Convert an HH:MM:SS.ss match to seconds."""
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def compute_percent(current: float, total: float) -> int:
    """floor(100 * current / total), clamped to [0, 100]."""
    return max(0, min(100, math.floor(current * 100 / total)))


class ProgressParser:
    """
    Incremental parser for FFmpeg's diagnostic stream.

    The total duration comes from the first "Duration:" line; every "time="
    afterwards yields a percentage. feed() returns the percentage only when it
    rises above the last one returned, so callers never see repeats.
    """

    def __init__(self):
        self.duration: float = 0.0
        self.progress: Optional[int] = None

    def feed(self, line: str) -> Optional[int]:
        if not self.duration:
            duration_match = DURATION_PATTERN.search(line)
            if duration_match:
                self.duration = parse_timestamp(duration_match)

        time_match = TIME_PATTERN.search(line)
        if not time_match or self.duration <= 0:
            return None

        percent = compute_percent(parse_timestamp(time_match), self.duration)
        if self.progress is not None and percent <= self.progress:
            return None

        self.progress = percent
        return percent


def run_ffmpeg_with_progress(
    cmd: List[str],
    progress_callback: Optional[Callable[[int], None]] = None,
    timeout_seconds: Optional[int] = None,
) -> float:
    """
    Run FFmpeg command and report progress from its stderr.

    This function:
    1. Runs FFmpeg in its own process group for clean termination
    2. Reads stderr line by line ("\\r" progress updates count as lines)
    3. Calls progress_callback with each new percentage
    4. Enforces timeout_seconds, if given, with SIGKILL to the process group

    Args:
        cmd: FFmpeg command as list of arguments
        progress_callback: Function called with the percentage (0-100)
        timeout_seconds: Maximum allowed runtime in seconds (None: unlimited)

    Returns:
        float: Input duration parsed from FFmpeg output (0.0 if never printed)

    Raises:
        SpawnError: If FFmpeg cannot be started
        EncodeTimeout: If FFmpeg exceeds the timeout
        EncodeError: If FFmpeg fails with non-zero exit code
    """
    logger.info(f"Starting FFmpeg (timeout={timeout_seconds}s)")
    logger.debug(f"FFmpeg command: {' '.join(cmd)}")

    try:
        # preexec_fn=os.setsid creates a new session/process group
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            preexec_fn=os.setsid,
        )
    except OSError as e:
        raise SpawnError(f"Cannot start {cmd[0]}: {e}") from e

    parser = ProgressParser()
    tail: deque = deque(maxlen=OUTPUT_TAIL_LINES)
    start_time = time.monotonic()

    try:
        for line in process.stderr:
            line = line.rstrip()
            if line:
                tail.append(line)

            if timeout_seconds is not None:
                elapsed = time.monotonic() - start_time
                if elapsed > timeout_seconds:
                    logger.warning(f"FFmpeg timeout after {elapsed:.1f}s (limit: {timeout_seconds}s)")
                    _kill_process_group(process)
                    raise EncodeTimeout(
                        f"FFmpeg exceeded timeout of {timeout_seconds} seconds",
                        output="\n".join(tail),
                    )

            percent = parser.feed(line)
            if percent is not None and progress_callback:
                progress_callback(percent)

        return_code = process.wait()

    except EncodeError:
        raise

    except Exception as e:
        # Catch any unexpected errors, ensure process is killed
        logger.error(f"Unexpected error during FFmpeg execution: {e}", exc_info=True)
        _kill_process_group(process)
        raise EncodeError(f"FFmpeg error: {e}", output="\n".join(tail)) from e

    finally:
        process.stderr.close()

    if return_code != 0:
        output = "\n".join(tail)
        error_msg = f"FFmpeg failed with code {return_code}"
        if output:
            error_msg += f": {output[-2000:]}"
        logger.error(error_msg)
        raise EncodeError(error_msg, exit_code=return_code, output=output)

    elapsed = time.monotonic() - start_time
    logger.info(f"FFmpeg completed successfully in {elapsed:.1f}s")
    return parser.duration


def _kill_process_group(process: subprocess.Popen) -> None:
    """
    Kill FFmpeg process and its entire process group.

    Uses SIGKILL to ensure immediate termination.

    Args:
        process: The subprocess.Popen instance to kill
    """
    try:
        pgid = os.getpgid(process.pid)
        logger.info(f"Killing FFmpeg process group {pgid}")
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("Process already terminated")
    except OSError as e:
        logger.warning(f"Error killing process group: {e}; killing process only")
        process.kill()
    process.wait()


def validate_ffmpeg_available(ffmpeg_bin: str = "ffmpeg") -> bool:
    """
    Check if FFmpeg is available and working.

    Returns:
        True if FFmpeg is available, False otherwise
    """
    try:
        result = subprocess.run(
            [ffmpeg_bin, "-version"],
            capture_output=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"FFmpeg not available: {e}")
        return False
    return result.returncode == 0
