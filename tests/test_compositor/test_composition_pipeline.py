"""Tests for the per-frame composition pipeline."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import numpy as np
import pytest

from compositor.errors import ProcessingFailedError, SizeMismatchError
from compositor.pipeline import CompositionPipeline
from compositor.types import CompositorConfig, FrameRequest, FrameResult, TintSpec
from video.types import Frame, FrameMetadata, PixelFormat


def odd_height_frame() -> Frame:
    """Build a frame that doesn't follow the stacked layout."""
    metadata = FrameMetadata(width=4, height=7)
    return Frame(data=np.zeros((7, 4, 3), dtype=np.uint8), metadata=metadata)


class TestFrameResult:
    """Test frame results."""

    def test_needs_exactly_one_outcome(self):
        """Test result holds a frame or an error, not both or neither."""
        with pytest.raises(ValueError):
            FrameResult()
        with pytest.raises(ValueError):
            FrameResult(frame=MagicMock(), error=SizeMismatchError("x"))


class TestCompositionPipeline:
    """Test composition pipeline."""

    def test_process_conforming_frame(self, stacked_frame):
        """Test W x 2H source gives a W x H RGBA frame."""
        pipeline = CompositionPipeline()
        result = pipeline.process_frame(FrameRequest(source=stacked_frame(width=8, height=6)))

        assert result.ok
        assert result.frame.width == 8
        assert result.frame.height == 6
        assert result.frame.shape == (6, 8, 4)
        assert result.frame.pixel_format == PixelFormat.RGBA
        assert result.frame.metadata.source == "compositor"

    def test_metadata_carried_over(self, stacked_frame):
        """Test frame number and presentation time are preserved."""
        pipeline = CompositionPipeline()
        result = pipeline.process_frame(FrameRequest(source=stacked_frame(frame_number=42)))

        assert result.frame.metadata.frame_number == 42
        assert result.frame.metadata.pts == pytest.approx(42 / 30.0)

    def test_scenario_frame_size(self, stacked_frame):
        """Test a 480-high source renders at 240."""
        pipeline = CompositionPipeline()
        result = pipeline.process_frame(
            FrameRequest(source=stacked_frame(width=320, height=240))
        )

        assert result.frame.shape == (240, 320, 4)
        assert pipeline.render_size_for(320, 480) == (320, 240)

    def test_odd_height_returns_size_mismatch(self):
        """Test non-conforming heights give an error, never a buffer."""
        pipeline = CompositionPipeline()
        result = pipeline.process_frame(FrameRequest(source=odd_height_frame()))

        assert not result.ok
        assert result.frame is None
        assert isinstance(result.error, SizeMismatchError)

    def test_scaled_to_presentation_size(self, stacked_frame):
        """Test output follows the declared presentation size."""
        frame = stacked_frame(width=8, height=6, display_size=(16, 24))
        result = CompositionPipeline().process_frame(FrameRequest(source=frame))

        assert result.ok
        assert result.frame.shape == (12, 16, 4)

    def test_uniform_alpha_survives_scaling(self, stacked_frame):
        """Test scaling a uniform mask keeps uniform alpha."""
        frame = stacked_frame(width=8, height=6, luminance=77, display_size=(16, 24))
        result = CompositionPipeline().process_frame(FrameRequest(source=frame))

        assert np.all(result.frame.data[..., 3] == 77)

    def test_tint_applied(self, stacked_frame):
        """Test the configured tint recolors the output."""
        config = CompositorConfig(tint=TintSpec(color=(0, 255, 0)))
        pipeline = CompositionPipeline(config)
        result = pipeline.process_frame(
            FrameRequest(source=stacked_frame(color=(9, 9, 9), luminance=255))
        )

        assert pipeline.tint == TintSpec(color=(0, 255, 0))
        assert np.all(result.frame.data[..., 0] == 0)
        assert np.all(result.frame.data[..., 1] == 255)

    def test_bgra_output(self, stacked_frame):
        """Test output layout follows configuration."""
        config = CompositorConfig(output_format=PixelFormat.BGRA)
        result = CompositionPipeline(config).process_frame(
            FrameRequest(source=stacked_frame(color=(10, 20, 30)))
        )

        assert result.frame.pixel_format == PixelFormat.BGRA
        assert np.all(result.frame.data[..., 0] == 30)

    def test_error_handler_called(self):
        """Test frame failures reach the error handler."""
        handler = MagicMock()
        pipeline = CompositionPipeline(error_handler=handler)
        request = FrameRequest(source=odd_height_frame())

        result = pipeline.process_frame(request)

        handler.assert_called_once_with(result.error, request)

    def test_error_handler_failure_is_contained(self):
        """Test a failing error handler doesn't break the pipeline."""
        handler = MagicMock(side_effect=RuntimeError("boom"))
        pipeline = CompositionPipeline(error_handler=handler)

        result = pipeline.process_frame(FrameRequest(source=odd_height_frame()))

        assert isinstance(result.error, SizeMismatchError)

    def test_processing_failure(self, stacked_frame):
        """Test compositor failures come back as processing errors."""
        pipeline = CompositionPipeline()
        pipeline._compositor.composite = MagicMock(
            side_effect=ProcessingFailedError("unreadable buffer")
        )

        result = pipeline.process_frame(FrameRequest(source=stacked_frame()))

        assert isinstance(result.error, ProcessingFailedError)

    def test_failure_does_not_stop_next_frame(self, stacked_frame):
        """Test a bad frame doesn't affect the following one."""
        pipeline = CompositionPipeline()

        bad = pipeline.process_frame(FrameRequest(source=odd_height_frame()))
        good = pipeline.process_frame(FrameRequest(source=stacked_frame()))

        assert not bad.ok
        assert good.ok

    def test_stats(self, stacked_frame):
        """Test statistics count processed and failed frames."""
        pipeline = CompositionPipeline()
        for _ in range(3):
            pipeline.process_frame(FrameRequest(source=stacked_frame()))
        pipeline.process_frame(FrameRequest(source=odd_height_frame()))

        stats = pipeline.get_stats()
        assert stats.frames_processed == 3
        assert stats.frames_failed == 1
        assert stats.failure_rate == pytest.approx(0.25)
        assert stats.max_latency_ms >= stats.min_latency_ms >= 0.0

    def test_concurrent_frames(self, stacked_frame):
        """Test overlapping calls from several threads."""
        pipeline = CompositionPipeline(CompositorConfig(tint=TintSpec(color=(1, 2, 3))))
        frames = [stacked_frame(frame_number=i, luminance=i) for i in range(32)]

        def process(frame):
            return pipeline.process_frame(FrameRequest(source=frame))

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(process, frames))

        assert all(r.ok for r in results)
        for i, result in enumerate(results):
            assert np.all(result.frame.data[..., 3] == i)
        assert pipeline.get_stats().frames_processed == 32
