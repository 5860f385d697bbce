"""
HLS Master Playlist

The master playlist lists one variant stream per encoded rendition and
points at that rendition's sub-playlist.
"""

from pathlib import Path
from typing import Sequence, Union

from ...errors import FilesystemError
from .renditions import DEFAULT_ASPECT_RATIO, Ratio, Rendition

MASTER_PLAYLIST_NAME = "playlist.m3u8"

PLAYLIST_HEADER = "#EXTM3U\n#EXT-X-VERSION:3\n"


def build_master_playlist(
    renditions: Sequence[Rendition],
    aspect_ratio: Ratio = DEFAULT_ASPECT_RATIO,
) -> str:
    """
    Render the master playlist text.

    Same renditions in the same order always give the same text.

    Example:
        #EXTM3U
        #EXT-X-VERSION:3
        #EXT-X-STREAM-INF:BANDWIDTH=2800000,RESOLUTION=1280x720,NAME="720p"
        720p.m3u8
    """
    lines = [PLAYLIST_HEADER]
    for rendition in renditions:
        width = rendition.output_width(aspect_ratio)
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={rendition.bitrate * 1000},"
            f"RESOLUTION={width}x{rendition.height},"
            f'NAME="{rendition.name}"\n'
            f"{rendition.playlist_name}\n"
        )
    return "".join(lines)


def write_master_playlist(
    dest: Union[str, Path],
    renditions: Sequence[Rendition],
    aspect_ratio: Ratio = DEFAULT_ASPECT_RATIO,
) -> Path:
    """Write playlist.m3u8 into dest and return its path."""
    path = Path(dest) / MASTER_PLAYLIST_NAME
    try:
        path.write_text(build_master_playlist(renditions, aspect_ratio), encoding="utf-8")
    except OSError as e:
        raise FilesystemError(f"Cannot write {path}: {e}") from e
    return path
