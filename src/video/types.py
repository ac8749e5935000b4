"""Common frame types and sink protocol for stacked-alpha video.

This module defines the frame data structures shared by the composition
pipeline, the playback transports and the frame sinks.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Tuple

import numpy as np


class PixelFormat(str, Enum):
    """Channel layouts for 8-bit interleaved frames."""

    RGB = "rgb"
    BGR = "bgr"
    RGBA = "rgba"
    BGRA = "bgra"

    @property
    def channels(self) -> int:
        """Get number of interleaved channels."""
        return len(self.value)

    @property
    def has_alpha(self) -> bool:
        """Check if the layout carries an alpha channel."""
        return self.channels == 4

    def index_of(self, channel: str) -> int:
        """Get the position of a channel ("r", "g", "b" or "a") in the layout.

        Raises:
            ValueError: If the layout has no such channel
        """
        position = self.value.find(channel)
        if position < 0:
            raise ValueError(f"{self.value} has no '{channel}' channel")
        return position

    @property
    def rgb_indices(self) -> Tuple[int, int, int]:
        """Get positions of the red, green and blue channels."""
        return (self.index_of("r"), self.index_of("g"), self.index_of("b"))


@dataclass
class FrameMetadata:
    """Metadata associated with a video frame.

    ``display_width``/``display_height`` carry the presentation size the
    asset declares when it differs from the coded size.
    """

    frame_number: int = 0
    width: int = 1920
    height: int = 1080
    pixel_format: PixelFormat = PixelFormat.RGB
    pts: Optional[float] = None  # Presentation time in seconds
    source: str = "unknown"
    display_width: Optional[int] = None
    display_height: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate metadata after initialization."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid dimensions: {self.width}x{self.height}")

    @property
    def presentation_size(self) -> Tuple[int, int]:
        """Get (width, height) the frame should be presented at."""
        return (
            self.display_width or self.width,
            self.display_height or self.height,
        )


@dataclass
class Frame:
    """A video frame with metadata.

    Attributes:
        data: The frame data as a numpy array (H, W, C)
        metadata: Frame metadata
    """

    data: np.ndarray
    metadata: FrameMetadata

    def __post_init__(self) -> None:
        """Validate frame after initialization."""
        if self.data.ndim != 3:
            raise ValueError(f"Frame must be a 3D array, got {self.data.ndim}D")

        height, width, channels = self.data.shape
        if height != self.metadata.height or width != self.metadata.width:
            raise ValueError(
                f"Frame dimensions {width}x{height} don't match "
                f"metadata {self.metadata.width}x{self.metadata.height}"
            )

        if channels != self.metadata.pixel_format.channels:
            raise ValueError(
                f"Frame has {channels} channels, "
                f"{self.metadata.pixel_format.value} expects "
                f"{self.metadata.pixel_format.channels}"
            )

    @property
    def shape(self) -> Tuple[int, ...]:
        """Get frame shape."""
        return self.data.shape

    @property
    def width(self) -> int:
        """Get frame width."""
        return self.metadata.width

    @property
    def height(self) -> int:
        """Get frame height."""
        return self.metadata.height

    @property
    def pixel_format(self) -> PixelFormat:
        """Get frame channel layout."""
        return self.metadata.pixel_format


class FrameSinkProtocol(Protocol):
    """Protocol for consumers of presented frames.

    Sinks are called from the transport's rendering thread.
    """

    def display_frame(self, frame: Frame) -> None:
        """Present a frame.

        Args:
            frame: Frame to present; ownership passes to the sink
        """
        ...
