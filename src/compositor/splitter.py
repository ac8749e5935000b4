"""Split stacked-alpha frames into their color and mask regions."""

from typing import Tuple

from compositor.errors import RegionInvariantError
from compositor.types import Region
from video.types import Frame


def split_frame(frame: Frame) -> Tuple[Region, Region]:
    """Split a W x 2H source frame into color (top) and mask (bottom) regions.

    Both regions are row-slice views of the source buffer, so no pixel data
    is copied.

    Args:
        frame: Source frame following the stacked-alpha layout

    Returns:
        (color, mask) regions, each W x H

    Raises:
        RegionInvariantError: If the frame height is odd
    """
    height = frame.data.shape[0]
    if height % 2 != 0:
        raise RegionInvariantError(
            f"Stacked-alpha frame height must be even, got {frame.width}x{height}"
        )

    half = height // 2
    color = Region(data=frame.data[:half], pixel_format=frame.pixel_format)
    mask = Region(data=frame.data[half:], pixel_format=frame.pixel_format)
    return color, mask
