"""Frame types and sinks shared by composition and playback.

Example:
    >>> from video import Frame, FrameMetadata, PixelFormat, MockFrameSink
    >>> metadata = FrameMetadata(width=320, height=480, pixel_format=PixelFormat.BGR)
    >>> frame = Frame(data=np.zeros((480, 320, 3), dtype=np.uint8), metadata=metadata)
    >>> MockFrameSink().display_frame(frame)
"""

from video.types import (
    Frame,
    FrameMetadata,
    FrameSinkProtocol,
    PixelFormat,
)
from video.output import ImageSequenceSink, MockFrameSink

__all__ = [
    # Types
    "Frame",
    "FrameMetadata",
    "FrameSinkProtocol",
    "PixelFormat",
    # Sinks
    "ImageSequenceSink",
    "MockFrameSink",
]
