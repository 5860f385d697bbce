"""
HLS Rendition Ladder

Defines the output quality levels and picks the ones a source can feed
without upscaling.
"""

from dataclasses import dataclass
from fractions import Fraction
from typing import List, Sequence, Union

Ratio = Union[Fraction, int, float]

DEFAULT_ASPECT_RATIO = Fraction(16, 9)


@dataclass(frozen=True)
class Rendition:
    """
    One output quality level.

    Attributes:
        height: Output height in pixels
        bitrate: Nominal video bitrate in kbps
        audiorate: Audio bitrate in kbps
    """

    height: int
    bitrate: int
    audiorate: int

    @property
    def name(self) -> str:
        return f"{self.height}p"

    @property
    def playlist_name(self) -> str:
        return f"{self.height}p.m3u8"

    @property
    def segment_pattern(self) -> str:
        return f"{self.height}p_%03d.ts"

    def implied_width(self, aspect_ratio: Ratio = DEFAULT_ASPECT_RATIO) -> Ratio:
        """Exact width at this height for the aspect ratio (may be fractional)."""
        return self.height * aspect_ratio

    def output_width(self, aspect_ratio: Ratio = DEFAULT_ASPECT_RATIO) -> int:
        """
        Encoded width: implied width rounded to the nearest even number.

        H.264 with 4:2:0 chroma needs even dimensions, so 240p at 16:9
        becomes 426 wide and 480p becomes 854.
        """
        return int(round(Fraction(self.implied_width(aspect_ratio)) / 2)) * 2


# Ascending quality; order is preserved through selection and the manifest
DEFAULT_RENDITIONS: List[Rendition] = [
    Rendition(height=144, bitrate=200, audiorate=64),
    Rendition(height=240, bitrate=400, audiorate=64),
    Rendition(height=360, bitrate=800, audiorate=96),
    Rendition(height=480, bitrate=1400, audiorate=128),
    Rendition(height=720, bitrate=2800, audiorate=128),
    Rendition(height=1080, bitrate=5000, audiorate=192),
]


def is_eligible(
    rendition: Rendition,
    width: int,
    height: int,
    aspect_ratio: Ratio = DEFAULT_ASPECT_RATIO,
) -> bool:
    """True if a width x height source covers the rendition, boundaries included."""
    return width >= rendition.implied_width(aspect_ratio) and height >= rendition.height


def select_eligible_renditions(
    width: int,
    height: int,
    renditions: Sequence[Rendition] = DEFAULT_RENDITIONS,
    aspect_ratio: Ratio = DEFAULT_ASPECT_RATIO,
) -> List[Rendition]:
    """
    Keep the renditions a source can feed without upscaling.

    Args:
        width: Probed source width
        height: Probed source height
        renditions: Candidate ladder, in the order it should be output
        aspect_ratio: Output aspect ratio

    Returns:
        Eligible renditions in ladder order (possibly empty)

    Example:
        >>> [r.name for r in select_eligible_renditions(640, 360)]
        ['144p', '240p', '360p']
    """
    return [r for r in renditions if is_eligible(r, width, height, aspect_ratio)]
