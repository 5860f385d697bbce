"""
Root conftest for worker tests.

Provides:
- Settings pointing at a per-test scratch directory
- A MagicMock Redis connection that records pushes
- Fake ffmpeg/ffprobe executables (POSIX shell scripts) so the pipeline
  can run without real binaries
"""

import json
import stat
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from unittest.mock import MagicMock

import pytest

from episode_worker.config import Settings
from episode_worker.tasks.episode import build_scope


# ============================================================================
# Settings and scope
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with isolated work and log directories."""
    return Settings(
        work_dir=str(tmp_path / "work"),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def scope(settings: Settings):
    """Scope with ProcessEpisode and EpisodeUpdated registered."""
    return build_scope(settings)


# ============================================================================
# Redis
# ============================================================================


@pytest.fixture
def redis_conn() -> MagicMock:
    """
    Mock Redis connection.

    pipeline().execute() reports a queue length of 1, blpop returns None
    (timeout) unless a test overrides it.
    """
    conn = MagicMock()
    conn.pipeline.return_value.execute.return_value = [1, 1]
    conn.blpop.return_value = None
    return conn


def _pushed_payloads(conn: MagicMock) -> List[dict]:
    payloads = []
    for call in conn.pipeline.return_value.rpush.call_args_list:
        key, value = call.args
        if not str(key).endswith(":notify"):
            payloads.append(json.loads(value))
    return payloads


@pytest.fixture
def pushed_payloads() -> Callable[[MagicMock], List[dict]]:
    """Decode every JSON payload rpush'ed through a mock pipeline (notify markers excluded)."""
    return _pushed_payloads


# ============================================================================
# Fake binaries
# ============================================================================


def _write_executable(path: Path, content: str) -> Path:
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_ffprobe(tmp_path: Path) -> Callable[..., Path]:
    """
    Factory for a fake ffprobe.

    The script answers the stream=width,height query with `resolution` and
    the format=duration query with `duration`, exiting with `exit_code`.
    """

    def factory(resolution: str = "1920x1080", duration: str = "12.500000", exit_code: int = 0) -> Path:
        script = f"""#!/bin/sh
case "$*" in
  *stream=width,height*) echo "{resolution}" ;;
  *format=duration*) echo "{duration}" ;;
esac
if [ {exit_code} -ne 0 ]; then
  echo "fake ffprobe failure" >&2
fi
exit {exit_code}
"""
        return _write_executable(tmp_path / "ffprobe", script)

    return factory


@pytest.fixture
def fake_ffmpeg(tmp_path: Path) -> Callable[..., Path]:
    """
    Factory for a fake ffmpeg.

    The script records its arguments (one per line) in ffmpeg_args.txt,
    writes `stderr` to its stderr verbatim (so "\\r" progress lines can be
    simulated) and exits with `exit_code`.
    """

    def factory(stderr: str = "", exit_code: int = 0, pause_after_first_line: Optional[int] = None) -> Path:
        args_file = tmp_path / "ffmpeg_args.txt"
        output_file = tmp_path / "ffmpeg_stderr.txt"
        output_file.write_text(stderr)

        if pause_after_first_line:
            emit = (
                f'head -n 1 "{output_file}" >&2\n'
                f"sleep {pause_after_first_line}\n"
                f'tail -n +2 "{output_file}" >&2\n'
            )
        else:
            emit = f'cat "{output_file}" >&2\n'

        script = (
            "#!/bin/sh\n"
            f'printf "%s\\n" "$@" > "{args_file}"\n'
            f"{emit}"
            f"exit {exit_code}\n"
        )
        return _write_executable(tmp_path / "ffmpeg", script)

    return factory


def _ffmpeg_stderr(duration: str = "00:00:10.00", times: Sequence[str] = ()) -> str:
    lines = [
        "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'source':",
        f"  Duration: {duration}, start: 0.000000, bitrate: 1205 kb/s",
        "  Stream #0:0(und): Video: h264 (High), yuv420p, 1920x1080, 25 fps",
    ]
    progress = "\r".join(
        f"frame=  {i * 25} fps= 50 q=28.0 size=  256kB time={t} bitrate= 200.0kbits/s speed=2x"
        for i, t in enumerate(times, start=1)
    )
    return "\n".join(lines) + "\n" + progress + ("\n" if progress else "")


@pytest.fixture
def ffmpeg_stderr() -> Callable[..., str]:
    """Build diagnostic output resembling a real ffmpeg run."""
    return _ffmpeg_stderr
