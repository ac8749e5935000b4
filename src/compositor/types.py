"""Types for stacked-alpha composition.

This module defines the configuration models and the per-frame request and
result structures used by the composition pipeline.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from compositor.errors import CompositionError
from video.types import Frame, PixelFormat


class LumaMode(str, Enum):
    """How mask luminance is read from the mask region."""

    # Masks are authored as true grayscale (R == G == B), so red is exact
    RED = "red"
    # ITU-R BT.601 weighting, for masks that are not strictly gray
    REC601 = "rec601"


class TintSpec(BaseModel):
    """Color used to recolor the mask luminance in tint mode."""

    model_config = ConfigDict(frozen=True)

    color: Tuple[int, int, int] = Field(
        (255, 255, 255), description="Tint color (R, G, B)"
    )

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Tuple[int, int, int]) -> Tuple[int, int, int]:
        """Validate each channel is an 8-bit value."""
        if any(channel < 0 or channel > 255 for channel in v):
            raise ValueError(f"Tint channels must be 0-255, got {v}")
        return v


class CompositorConfig(BaseModel):
    """Configuration for the composition pipeline.

    Frozen: a pipeline's settings don't change during a load cycle.
    """

    model_config = ConfigDict(frozen=True)

    luma_mode: LumaMode = Field(
        LumaMode.RED, description="How alpha is read from the mask region"
    )
    output_format: PixelFormat = Field(
        PixelFormat.RGBA, description="Channel layout of composited frames"
    )
    tint: Optional[TintSpec] = Field(
        None, description="Recolor the mask luminance instead of sampling color"
    )
    max_frame_latency_ms: float = Field(
        8.0, gt=0.0, description="Per-frame processing time that logs a warning"
    )

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: PixelFormat) -> PixelFormat:
        """Composited frames always carry alpha."""
        if not v.has_alpha:
            raise ValueError(f"Output format must carry alpha, got {v.value}")
        return v


@dataclass
class Region:
    """A read-only W x H window into a stacked source frame.

    Attributes:
        data: Array view (H, W, C) into the source frame buffer
        pixel_format: Channel layout shared with the source frame
    """

    data: np.ndarray
    pixel_format: PixelFormat

    @property
    def width(self) -> int:
        """Get region width."""
        return self.data.shape[1]

    @property
    def height(self) -> int:
        """Get region height."""
        return self.data.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        """Get (width, height)."""
        return (self.width, self.height)


@dataclass
class FrameRequest:
    """One decoded source frame submitted for composition."""

    source: Frame

    @property
    def frame_number(self) -> int:
        """Get the source frame number."""
        return self.source.metadata.frame_number


@dataclass
class FrameResult:
    """Outcome of composing one frame.

    Exactly one of ``frame`` and ``error`` is set.
    """

    frame: Optional[Frame] = None
    error: Optional[CompositionError] = None
    processing_time_ms: float = 0.0

    def __post_init__(self) -> None:
        """Validate result after initialization."""
        if (self.frame is None) == (self.error is None):
            raise ValueError("FrameResult needs exactly one of frame or error")

    @property
    def ok(self) -> bool:
        """Check if composition succeeded."""
        return self.error is None


class CompositionStats(BaseModel):
    """Composition pipeline statistics."""

    frames_processed: int = 0
    frames_failed: int = 0
    average_latency_ms: float = 0.0
    min_latency_ms: float = 0.0
    max_latency_ms: float = 0.0

    @property
    def failure_rate(self) -> float:
        """Calculate frame failure rate."""
        total = self.frames_processed + self.frames_failed
        return self.frames_failed / total if total > 0 else 0.0


class StatsRecorder:
    """Thread-safe accumulator behind ``CompositionStats``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processed = 0
        self._failed = 0
        self._total_ms = 0.0
        self._min_ms: Optional[float] = None
        self._max_ms = 0.0

    def record(self, latency_ms: float, ok: bool) -> None:
        """Record one processed frame."""
        with self._lock:
            if ok:
                self._processed += 1
            else:
                self._failed += 1
            self._total_ms += latency_ms
            self._min_ms = latency_ms if self._min_ms is None else min(self._min_ms, latency_ms)
            self._max_ms = max(self._max_ms, latency_ms)

    def snapshot(self) -> CompositionStats:
        """Get current statistics."""
        with self._lock:
            count = self._processed + self._failed
            return CompositionStats(
                frames_processed=self._processed,
                frames_failed=self._failed,
                average_latency_ms=self._total_ms / count if count else 0.0,
                min_latency_ms=self._min_ms or 0.0,
                max_latency_ms=self._max_ms,
            )
