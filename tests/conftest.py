"""Pytest configuration and shared fixtures."""

import asyncio
import sys
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import numpy as np
import pytest

# Add src to Python path
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))

from playback.delegate import PlaybackDelegate  # noqa: E402
from video.types import Frame, FrameMetadata, PixelFormat  # noqa: E402


def make_stacked_frame(
    width: int = 8,
    height: int = 6,
    color: Tuple[int, int, int] = (10, 20, 30),
    luminance: int = 128,
    pixel_format: PixelFormat = PixelFormat.RGB,
    frame_number: int = 0,
    display_size: Optional[Tuple[int, int]] = None,
) -> Frame:
    """Build a W x 2H stacked frame with a uniform color and gray mask.

    Args:
        width: Frame width
        height: Height of each region (the frame is twice as tall)
        color: Color of the top region as (R, G, B)
        luminance: Gray level of the bottom region
        pixel_format: Channel layout of the frame
        frame_number: Frame number for the metadata
        display_size: Declared presentation size of the whole frame
    """
    channels = pixel_format.channels
    data = np.zeros((height * 2, width, channels), dtype=np.uint8)

    red, green, blue = pixel_format.rgb_indices
    data[:height, :, red] = color[0]
    data[:height, :, green] = color[1]
    data[:height, :, blue] = color[2]
    data[height:, :, red] = luminance
    data[height:, :, green] = luminance
    data[height:, :, blue] = luminance
    if pixel_format.has_alpha:
        data[..., pixel_format.index_of("a")] = 255

    metadata = FrameMetadata(
        frame_number=frame_number,
        width=width,
        height=height * 2,
        pixel_format=pixel_format,
        pts=frame_number / 30.0,
        source="test",
        display_width=display_size[0] if display_size else None,
        display_height=display_size[1] if display_size else None,
    )
    return Frame(data=data, metadata=metadata)


class RecordingDelegate(PlaybackDelegate):
    """Delegate that records notifications in order."""

    def __init__(self) -> None:
        self.events: List[str] = []
        self.errors: List[Exception] = []

    def on_playback_started(self, controller) -> None:
        self.events.append("started")

    def on_loop(self, controller) -> None:
        self.events.append("looped")

    def on_playback_ended(self, controller) -> None:
        self.events.append("ended")

    def on_failure(self, error, controller) -> None:
        self.events.append("failed")
        self.errors.append(error)


async def settle(rounds: int = 5) -> None:
    """Let the event loop run marshaled transport callbacks."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def stacked_frame() -> Callable[..., Frame]:
    """Provide the stacked frame factory."""
    return make_stacked_frame


@pytest.fixture
def delegate() -> RecordingDelegate:
    """Provide a recording delegate."""
    return RecordingDelegate()
