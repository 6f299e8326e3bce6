"""YCbCr skin-locus detection and skin-mask statistics."""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

from skintonex.engine.constants import SkinDetectionThresholds
from skintonex.engine.image_stats import average_rgb
from skintonex.engine.types import SkinMask

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from skintonex.engine.types import RGB, RawImageBuffer

DEFAULT_MIN_SKIN_COVERAGE = 0.1

_MORPH_KERNEL = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))


def rgb_to_cbcr(rgb: NDArray[np.float64]) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """ITU-R BT.601 full-range chroma of an ``...x3`` RGB array.

    Computed in float64 rather than with ``cv2.cvtColor``, whose 8-bit output
    rounds Cb/Cr and moves pixels across the integer locus bounds.
    """
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    cb = 128.0 - 0.168736 * r - 0.331264 * g + 0.5 * b
    cr = 128.0 + 0.5 * r - 0.418688 * g - 0.081312 * b
    return cb, cr


def _within_locus(rgb: NDArray[np.float64], thresholds: SkinDetectionThresholds) -> NDArray[np.bool_]:
    cb, cr = rgb_to_cbcr(rgb)
    return (
        (cb >= thresholds.cb_min)
        & (cb <= thresholds.cb_max)
        & (cr >= thresholds.cr_min)
        & (cr <= thresholds.cr_max)
    )


def is_skin_pixel(rgb: RGB, thresholds: SkinDetectionThresholds | None = None) -> bool:
    thresholds = thresholds or SkinDetectionThresholds()
    return bool(_within_locus(np.array([rgb.r, rgb.g, rgb.b], dtype=np.float64), thresholds))


def detect_skin_mask(image: RawImageBuffer, thresholds: SkinDetectionThresholds | None = None) -> SkinMask:
    thresholds = thresholds or SkinDetectionThresholds()
    skin = _within_locus(image.pixels.astype(np.float64), thresholds)
    return SkinMask(skin.astype(np.uint8) * 255)


def clean_skin_mask(mask: SkinMask, iterations: int = 1) -> SkinMask:
    """Remove speckles and fill pinholes with a 3x3 open followed by a close."""
    if iterations <= 0 or mask.width == 0 or mask.height == 0:
        return SkinMask(mask.mask)
    cleaned = np.array(mask.mask, dtype=np.uint8)
    cleaned = cv2.morphologyEx(cleaned, cv2.MORPH_OPEN, _MORPH_KERNEL, iterations=iterations)
    cleaned = cv2.morphologyEx(cleaned, cv2.MORPH_CLOSE, _MORPH_KERNEL, iterations=iterations)
    return SkinMask(cleaned)


def has_sufficient_skin_coverage(mask: SkinMask, min_ratio: float = DEFAULT_MIN_SKIN_COVERAGE) -> bool:
    return mask.skin_pixel_count > 0 and mask.skin_ratio >= min_ratio


def calculate_skin_average_rgb(image: RawImageBuffer, mask: SkinMask) -> RGB | None:
    """Mean color of skin pixels, or ``None`` when the mask selects nothing."""
    if not mask.matches(image):
        raise ValueError(f"Mask {mask.width}x{mask.height} does not match image {image.width}x{image.height}")
    return average_rgb(image.pixels, mask.as_bool())


def calculate_non_skin_average_rgb(image: RawImageBuffer, mask: SkinMask) -> RGB | None:
    """Mean color of background pixels, or ``None`` when everything is skin."""
    if not mask.matches(image):
        raise ValueError(f"Mask {mask.width}x{mask.height} does not match image {image.width}x{image.height}")
    return average_rgb(image.pixels, ~mask.as_bool())
