"""Per-frame composition pipeline for stacked-alpha video.

This module implements the entry point a playback transport calls once per
decoded frame. It splits the stacked source, composites it into a
four-channel frame, scales it to the render size and reports failures
without ever aborting playback.
"""

import logging
import time
from typing import Callable, Optional, Tuple

import cv2

from compositor.alpha import AlphaCompositor
from compositor.errors import CompositionError, ProcessingFailedError, SizeMismatchError
from compositor.splitter import split_frame
from compositor.types import (
    CompositionStats,
    CompositorConfig,
    FrameRequest,
    FrameResult,
    StatsRecorder,
    TintSpec,
)
from video.types import Frame, FrameMetadata

logger = logging.getLogger(__name__)

FrameErrorHandler = Callable[[CompositionError, FrameRequest], None]


class CompositionPipeline:
    """Composite stacked-alpha frames on the transport's rendering thread.

    The pipeline holds no per-frame state, so overlapping calls for
    different frames are safe. Its configuration is frozen for the lifetime
    of the pipeline; a new load cycle builds a new pipeline.

    Example:
        >>> pipeline = CompositionPipeline(CompositorConfig(tint=TintSpec(color=(255, 0, 0))))
        >>> result = pipeline.process_frame(FrameRequest(source=frame))
        >>> if result.ok:
        ...     sink.display_frame(result.frame)
    """

    def __init__(
        self,
        config: Optional[CompositorConfig] = None,
        error_handler: Optional[FrameErrorHandler] = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            config: Compositor configuration
            error_handler: Called with each frame-level failure, on the
                calling (rendering) thread
        """
        self.config = config or CompositorConfig()
        self.error_handler = error_handler
        self._compositor = AlphaCompositor(
            luma_mode=self.config.luma_mode,
            output_format=self.config.output_format,
        )
        self._stats = StatsRecorder()

    @property
    def tint(self) -> Optional[TintSpec]:
        """Get the configured tint, if any."""
        return self.config.tint

    @staticmethod
    def render_size_for(width: int, height: int) -> Tuple[int, int]:
        """Get the output size for a stacked source of the given size.

        The presentation size is scaled by (1.0, 0.5): the output keeps the
        source width and half its height.
        """
        return (width, height // 2)

    def process_frame(self, request: FrameRequest) -> FrameResult:
        """Composite one source frame.

        Failures are returned in the result, counted, logged and passed to
        the error handler. The frame is not retried.

        Args:
            request: Frame request holding the stacked source frame

        Returns:
            Result holding either the composited frame or the error
        """
        start = time.perf_counter()

        try:
            frame = self._process(request.source)
        except CompositionError as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self._stats.record(elapsed_ms, ok=False)
            logger.error(f"Composition failed for frame {request.frame_number}: {e}")
            self._report(e, request)
            return FrameResult(error=e, processing_time_ms=elapsed_ms)

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._stats.record(elapsed_ms, ok=True)

        if elapsed_ms > self.config.max_frame_latency_ms:
            logger.warning(
                f"Slow composition for frame {request.frame_number}: "
                f"{elapsed_ms:.1f}ms (max: {self.config.max_frame_latency_ms}ms)"
            )

        return FrameResult(frame=frame, processing_time_ms=elapsed_ms)

    def _process(self, source: Frame) -> Frame:
        """Split, composite and scale a source frame.

        Raises:
            SizeMismatchError: If the source doesn't follow the stacked layout
            ProcessingFailedError: If image processing fails
        """
        if source.height % 2 != 0:
            raise SizeMismatchError(
                f"Source height must be even for a stacked-alpha frame, "
                f"got {source.width}x{source.height}"
            )

        color, mask = split_frame(source)
        data = self._compositor.composite(color, mask, self.config.tint)

        render_width, render_height = self.render_size_for(
            *source.metadata.presentation_size
        )
        if render_width <= 0 or render_height <= 0:
            raise SizeMismatchError(
                f"Invalid render size {render_width}x{render_height} "
                f"for source {source.width}x{source.height}"
            )

        if (render_width, render_height) != color.size:
            try:
                data = cv2.resize(
                    data, (render_width, render_height), interpolation=cv2.INTER_LINEAR
                )
            except cv2.error as e:
                raise ProcessingFailedError(
                    f"Failed to scale frame to {render_width}x{render_height}: {e}",
                    cause=e,
                ) from e

        metadata = FrameMetadata(
            frame_number=source.metadata.frame_number,
            width=render_width,
            height=render_height,
            pixel_format=self.config.output_format,
            pts=source.metadata.pts,
            source="compositor",
        )
        return Frame(data=data, metadata=metadata)

    def _report(self, error: CompositionError, request: FrameRequest) -> None:
        """Pass a frame-level failure to the error handler."""
        if self.error_handler is None:
            return

        try:
            self.error_handler(error, request)
        except Exception as e:
            logger.error(f"Error in frame error handler: {e}")

    def get_stats(self) -> CompositionStats:
        """Get current composition statistics.

        Returns:
            Composition statistics
        """
        return self._stats.snapshot()
