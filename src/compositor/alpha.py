"""Alpha compositor merging a color region and a luminance mask region.

The compositor is pure: the same regions and tint always produce the same
bytes, which keeps it safe to call from several rendering threads at once.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from compositor.errors import ProcessingFailedError, SizeMismatchError
from compositor.types import LumaMode, Region, TintSpec
from video.types import PixelFormat

logger = logging.getLogger(__name__)

_GRAY_CONVERSIONS = {
    PixelFormat.RGB: cv2.COLOR_RGB2GRAY,
    PixelFormat.BGR: cv2.COLOR_BGR2GRAY,
    PixelFormat.RGBA: cv2.COLOR_RGBA2GRAY,
    PixelFormat.BGRA: cv2.COLOR_BGRA2GRAY,
}


class AlphaCompositor:
    """Build RGBA frames from stacked color and mask regions.

    The color channels are copied from the color region (or, in tint mode,
    reconstructed from the mask luminance and the tint color) and the alpha
    channel is the mask luminance.

    Example:
        >>> compositor = AlphaCompositor(LumaMode.RED, PixelFormat.RGBA)
        >>> color, mask = split_frame(frame)
        >>> rgba = compositor.composite(color, mask)
    """

    def __init__(
        self,
        luma_mode: LumaMode = LumaMode.RED,
        output_format: PixelFormat = PixelFormat.RGBA,
    ) -> None:
        """Initialize compositor.

        Args:
            luma_mode: How alpha is read from the mask region
            output_format: Channel layout of the composited array

        Raises:
            ValueError: If the output format has no alpha channel
        """
        if not output_format.has_alpha:
            raise ValueError(f"Output format must carry alpha, got {output_format.value}")

        self.luma_mode = luma_mode
        self.output_format = output_format

    def luminance(self, mask: Region) -> np.ndarray:
        """Read the per-pixel luminance of a mask region.

        Args:
            mask: Mask region

        Returns:
            (H, W) uint8 luminance
        """
        if self.luma_mode == LumaMode.RED:
            return mask.data[..., mask.pixel_format.index_of("r")]

        return cv2.cvtColor(
            np.ascontiguousarray(mask.data), _GRAY_CONVERSIONS[mask.pixel_format]
        )

    def composite(
        self, color: Region, mask: Region, tint: Optional[TintSpec] = None
    ) -> np.ndarray:
        """Merge color and mask regions into one four-channel array.

        Args:
            color: Color region
            mask: Mask region, same size and layout as ``color``
            tint: Recolor the mask luminance instead of sampling ``color``

        Returns:
            (H, W, 4) uint8 array in the compositor's output format

        Raises:
            SizeMismatchError: If the regions don't have the same shape
            ProcessingFailedError: If the pixel buffers can't be processed
        """
        if color.data.shape != mask.data.shape:
            raise SizeMismatchError(
                f"Color region {color.width}x{color.height} doesn't match "
                f"mask region {mask.width}x{mask.height}"
            )

        if color.pixel_format != mask.pixel_format:
            raise SizeMismatchError(
                f"Color region layout {color.pixel_format.value} doesn't match "
                f"mask region layout {mask.pixel_format.value}"
            )

        if color.data.dtype != np.uint8:
            raise ProcessingFailedError(
                f"Unsupported pixel type {color.data.dtype}, expected uint8"
            )

        try:
            return self._composite(color, mask, tint)
        except (cv2.error, ValueError, TypeError, IndexError) as e:
            raise ProcessingFailedError(f"Failed to composite frame: {e}", cause=e) from e

    def _composite(
        self, color: Region, mask: Region, tint: Optional[TintSpec]
    ) -> np.ndarray:
        """Composite without validation (blocking operation)."""
        alpha = self.luminance(mask)

        output = np.empty((color.height, color.width, 4), dtype=np.uint8)
        out_r, out_g, out_b = self.output_format.rgb_indices

        if tint is not None:
            tinted = tint_luminance(alpha, tint)
            output[..., out_r] = tinted[..., 0]
            output[..., out_g] = tinted[..., 1]
            output[..., out_b] = tinted[..., 2]
        else:
            src_r, src_g, src_b = color.pixel_format.rgb_indices
            output[..., out_r] = color.data[..., src_r]
            output[..., out_g] = color.data[..., src_g]
            output[..., out_b] = color.data[..., src_b]

        output[..., self.output_format.index_of("a")] = alpha
        return output


def tint_luminance(luminance: np.ndarray, tint: TintSpec) -> np.ndarray:
    """Recolor luminance as a full-intensity monochrome tint.

    Each output channel is ``round(L * tint / 255)``, so black stays black
    and white becomes the tint color.

    Args:
        luminance: (H, W) uint8 luminance
        tint: Tint color

    Returns:
        (H, W, 3) uint8 array in R, G, B order
    """
    scale = np.asarray(tint.color, dtype=np.uint16)
    tinted = (luminance[..., np.newaxis].astype(np.uint16) * scale + 127) // 255
    return tinted.astype(np.uint8)
