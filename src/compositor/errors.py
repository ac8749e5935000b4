"""Exceptions raised while compositing stacked-alpha frames."""

from typing import Optional


class CompositionError(Exception):
    """Base class for frame-level composition failures.

    Frame-level failures are reported per frame and never stop playback.
    """


class SizeMismatchError(CompositionError):
    """Frame or region dimensions don't follow the stacked-alpha layout."""


class ProcessingFailedError(CompositionError):
    """Image processing failed while building a composited frame.

    Attributes:
        cause: The underlying OpenCV or numpy exception
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class RegionInvariantError(ValueError):
    """A frame was split in violation of the even-height contract.

    This is a programming error in the caller, not a frame-level failure:
    the composition pipeline validates frame heights before splitting, so it
    only surfaces when the splitter is used directly with a malformed frame.
    """
