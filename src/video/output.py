"""Frame sinks for composited video.

This module provides an image-sequence sink that writes frames to disk and a
mock sink that keeps frames in memory for testing.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

import cv2

from video.types import Frame, PixelFormat

logger = logging.getLogger(__name__)


class MockFrameSink:
    """Mock frame sink for testing without a renderer.

    Keeps every presented frame so tests can inspect what reached the
    display. Safe to call from the transport's rendering thread.

    Example:
        >>> sink = MockFrameSink()
        >>> sink.display_frame(frame)
        >>> assert sink.frames_displayed == 1
    """

    def __init__(self, max_frames: Optional[int] = None) -> None:
        """Initialize mock sink.

        Args:
            max_frames: Keep only the most recent frames (None keeps all)
        """
        self._max_frames = max_frames
        self._frames: List[Frame] = []
        self._frames_displayed = 0
        self._lock = threading.Lock()
        self._frame_arrived = threading.Condition(self._lock)

    def display_frame(self, frame: Frame) -> None:
        """Record a presented frame.

        Args:
            frame: Frame to present
        """
        with self._frame_arrived:
            self._frames.append(frame)
            if self._max_frames is not None and len(self._frames) > self._max_frames:
                del self._frames[0]
            self._frames_displayed += 1
            self._frame_arrived.notify_all()

        logger.debug(
            f"Displayed frame {frame.metadata.frame_number} "
            f"({self._frames_displayed} total)"
        )

    def wait_for_frames(self, count: int, timeout: float = 5.0) -> bool:
        """Block until at least ``count`` frames were displayed.

        Returns:
            True if the count was reached before the timeout
        """
        with self._frame_arrived:
            return self._frame_arrived.wait_for(
                lambda: self._frames_displayed >= count, timeout=timeout
            )

    @property
    def frames(self) -> List[Frame]:
        """Get a snapshot of the kept frames."""
        with self._lock:
            return list(self._frames)

    @property
    def frames_displayed(self) -> int:
        """Get number of frames displayed."""
        with self._lock:
            return self._frames_displayed


class ImageSequenceSink:
    """Write presented frames as a numbered PNG sequence.

    Four-channel frames keep their alpha in the PNG, which makes the sink
    handy for checking composited output in an image viewer.

    Example:
        >>> sink = ImageSequenceSink("out/frames")
        >>> sink.display_frame(composited_frame)  # out/frames/frame_000001.png
    """

    def __init__(
        self, directory: Union[str, Path], prefix: str = "frame"
    ) -> None:
        """Initialize image sequence sink.

        Args:
            directory: Output directory (created if missing)
            prefix: File name prefix
        """
        self.directory = Path(directory)
        self.prefix = prefix
        self.directory.mkdir(parents=True, exist_ok=True)
        self._frames_written = 0
        self._lock = threading.Lock()

    def display_frame(self, frame: Frame) -> None:
        """Write a frame to the next file in the sequence.

        Raises:
            RuntimeError: If OpenCV fails to write the image
        """
        with self._lock:
            self._frames_written += 1
            index = self._frames_written

        path = self.directory / f"{self.prefix}_{index:06d}.png"

        # OpenCV writes BGR(A) channel order
        data = frame.data
        if frame.pixel_format == PixelFormat.RGBA:
            data = cv2.cvtColor(data, cv2.COLOR_RGBA2BGRA)
        elif frame.pixel_format == PixelFormat.RGB:
            data = cv2.cvtColor(data, cv2.COLOR_RGB2BGR)

        if not cv2.imwrite(str(path), data):
            raise RuntimeError(f"Failed to write frame: {path}")

        logger.debug(f"Wrote {path}")

    @property
    def frames_written(self) -> int:
        """Get number of frames written."""
        with self._lock:
            return self._frames_written
