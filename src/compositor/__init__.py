"""Stacked-alpha compositor package.

This package turns decoded frames that stack a color image above a grayscale
alpha mask into four-channel frames with real transparency.

Example:
    >>> from compositor import CompositionPipeline, CompositorConfig, FrameRequest
    >>> pipeline = CompositionPipeline(CompositorConfig())
    >>> result = pipeline.process_frame(FrameRequest(source=stacked_frame))
    >>> rgba = result.frame
"""

from compositor.errors import (
    CompositionError,
    ProcessingFailedError,
    RegionInvariantError,
    SizeMismatchError,
)
from compositor.types import (
    CompositionStats,
    CompositorConfig,
    FrameRequest,
    FrameResult,
    LumaMode,
    Region,
    TintSpec,
)
from compositor.splitter import split_frame
from compositor.alpha import AlphaCompositor, tint_luminance
from compositor.pipeline import CompositionPipeline

__all__ = [
    # Errors
    "CompositionError",
    "ProcessingFailedError",
    "RegionInvariantError",
    "SizeMismatchError",
    # Types
    "CompositionStats",
    "CompositorConfig",
    "FrameRequest",
    "FrameResult",
    "LumaMode",
    "Region",
    "TintSpec",
    # Composition
    "AlphaCompositor",
    "CompositionPipeline",
    "split_frame",
    "tint_luminance",
]
