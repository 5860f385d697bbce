"""
Unit tests for the ffmpeg runner and progress parsing.

Process tests run a fake ffmpeg shell script, so no real encoder is needed.
"""

import pytest

from episode_worker.errors import EncodeError, EncodeTimeout, SpawnError
from episode_worker.tasks.ffmpeg_runner import (
    ProgressParser,
    compute_percent,
    run_ffmpeg_with_progress,
    validate_ffmpeg_available,
)


class TestComputePercent:
    def test_floor(self):
        assert compute_percent(3.0, 10.0) == 30
        assert compute_percent(3.99, 10.0) == 39

    def test_clamped(self):
        assert compute_percent(12.0, 10.0) == 100
        assert compute_percent(-1.0, 10.0) == 0


class TestProgressParser:
    """Tests for parsing Duration: / time= lines."""

    def test_no_progress_before_duration(self):
        """Test time= lines are ignored until the duration is known."""
        parser = ProgressParser()
        assert parser.feed("frame=1 time=00:00:01.00 bitrate=1k") is None
        assert parser.progress is None

    def test_duration_then_progress(self):
        parser = ProgressParser()
        assert parser.feed("  Duration: 00:01:40.00, start: 0.000000, bitrate: 1205 kb/s") is None
        assert parser.duration == 100.0
        assert parser.feed("frame=10 time=00:00:25.50 bitrate=1k") == 25
        assert parser.feed("frame=20 time=00:01:00.00 bitrate=1k") == 60

    def test_first_duration_wins(self):
        """Test later Duration: lines (e.g. secondary inputs) are ignored."""
        parser = ProgressParser()
        parser.feed("  Duration: 00:00:10.00, start: 0.000000")
        parser.feed("  Duration: 01:00:00.00, start: 0.000000")
        assert parser.duration == 10.0

    def test_hours(self):
        parser = ProgressParser()
        parser.feed("  Duration: 02:00:00.00, start: 0.000000")
        assert parser.duration == 7200.0
        assert parser.feed("time=01:00:00.00") == 50

    def test_monotonic_without_duplicates(self):
        """Test repeated or regressing percentages are suppressed."""
        parser = ProgressParser()
        parser.feed("  Duration: 00:00:10.00, start: 0.000000")
        emitted = [
            parser.feed(f"time={t}")
            for t in ["00:00:01.00", "00:00:01.05", "00:00:00.50", "00:00:05.00", "00:00:05.00", "00:00:12.00"]
        ]
        assert emitted == [10, None, None, 50, None, 100]

    def test_zero_percent_is_emitted_once(self):
        parser = ProgressParser()
        parser.feed("  Duration: 00:00:10.00, start: 0.000000")
        assert parser.feed("time=00:00:00.00") == 0
        assert parser.feed("time=00:00:00.01") is None


class TestRunFfmpegWithProgress:
    """Tests for running the encoder process."""

    def test_success_reports_progress(self, fake_ffmpeg, ffmpeg_stderr):
        """Test "\\r"-separated progress lines produce increasing callbacks."""
        ffmpeg = fake_ffmpeg(stderr=ffmpeg_stderr(
            duration="00:00:10.00",
            times=["00:00:02.00", "00:00:02.00", "00:00:05.00", "00:00:10.00"],
        ))
        progress = []

        duration = run_ffmpeg_with_progress([str(ffmpeg), "-i", "source"], progress.append)

        assert duration == 10.0
        assert progress == [20, 50, 100]

    def test_passes_arguments(self, fake_ffmpeg, tmp_path):
        ffmpeg = fake_ffmpeg()
        run_ffmpeg_with_progress([str(ffmpeg), "-i", "in file.mp4", "out.m3u8"])

        assert (tmp_path / "ffmpeg_args.txt").read_text().splitlines() == ["-i", "in file.mp4", "out.m3u8"]

    def test_no_duration_means_no_progress(self, fake_ffmpeg):
        ffmpeg = fake_ffmpeg(stderr="time=00:00:01.00\ntime=00:00:02.00\n")
        progress = []

        assert run_ffmpeg_with_progress([str(ffmpeg)], progress.append) == 0.0
        assert progress == []

    def test_nonzero_exit(self, fake_ffmpeg):
        """Test a failing encoder raises EncodeError with its output tail."""
        ffmpeg = fake_ffmpeg(stderr="Invalid data found when processing input\n", exit_code=1)

        with pytest.raises(EncodeError) as exc_info:
            run_ffmpeg_with_progress([str(ffmpeg)])

        assert exc_info.value.exit_code == 1
        assert "Invalid data found" in exc_info.value.output
        assert not isinstance(exc_info.value, EncodeTimeout)

    def test_missing_binary(self, tmp_path):
        with pytest.raises(SpawnError):
            run_ffmpeg_with_progress([str(tmp_path / "no-such-ffmpeg")])

    def test_timeout(self, fake_ffmpeg, ffmpeg_stderr):
        """Test the process group is killed once the timeout passes."""
        ffmpeg = fake_ffmpeg(
            stderr=ffmpeg_stderr(times=["00:00:01.00", "00:00:02.00"]),
            pause_after_first_line=2,
        )

        with pytest.raises(EncodeTimeout):
            run_ffmpeg_with_progress([str(ffmpeg)], timeout_seconds=1)


class TestValidateFfmpegAvailable:
    def test_available(self, fake_ffmpeg):
        assert validate_ffmpeg_available(str(fake_ffmpeg())) is True

    def test_failing(self, fake_ffmpeg):
        assert validate_ffmpeg_available(str(fake_ffmpeg(exit_code=1))) is False

    def test_missing(self, tmp_path):
        assert validate_ffmpeg_available(str(tmp_path / "no-such-ffmpeg")) is False
