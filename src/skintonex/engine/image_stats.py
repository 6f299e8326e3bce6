"""Vectorized pixel statistics shared by the quality gate and white balance."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from skintonex.engine.constants import GRAYSCALE_WEIGHTS
from skintonex.engine.types import RGB

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from skintonex.engine.types import RawImageBuffer


def to_luminance(pixels: NDArray[np.uint8]) -> NDArray[np.float64]:
    """BT.601 luma of an HxWx3 array, as HxW float64."""
    return pixels.astype(np.float64) @ np.array(GRAYSCALE_WEIGHTS)


def average_rgb(pixels: NDArray[np.uint8], selection: NDArray[np.bool_] | None = None) -> RGB | None:
    """Mean color of the selected pixels, or ``None`` when nothing is selected."""
    flat = pixels.reshape(-1, 3)
    if selection is not None:
        flat = flat[selection.reshape(-1)]
    if flat.shape[0] == 0:
        return None
    mean = flat.mean(axis=0, dtype=np.float64)
    return RGB(r=float(mean[0]), g=float(mean[1]), b=float(mean[2]))


def calculate_image_average_rgb(image: RawImageBuffer) -> RGB | None:
    return average_rgb(image.pixels)


def rgb_luminance(rgb: RGB) -> float:
    wr, wg, wb = GRAYSCALE_WEIGHTS
    return wr * rgb.r + wg * rgb.g + wb * rgb.b
