"""White balance gain estimation and application.

Three estimators are available: gray-world over the whole frame, von Kries
adaptation from a known source white, and skin-aware balancing that estimates
the illuminant from the background with skin masked out. Gains outside the
configured bounds are rejected rather than clamped so callers fall back instead
of applying implausible corrections.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np

from skintonex.engine.awb.confidence import calculate_awb_confidence
from skintonex.engine.awb.skin_detector import (
    calculate_non_skin_average_rgb,
    clean_skin_mask,
    detect_skin_mask,
    has_sufficient_skin_coverage,
)
from skintonex.engine.color_space import linear_to_srgb, rgb_to_xyz, srgb_to_linear
from skintonex.engine.constants import (
    BRADFORD_INVERSE_MATRIX,
    BRADFORD_MATRIX,
    D65_XYZ,
    DEFAULT_ENGINE_CONFIG,
    SRGB_TO_XYZ_MATRIX,
    XYZ_TO_SRGB_MATRIX,
    AWBConfig,
)
from skintonex.engine.image_stats import average_rgb, rgb_luminance
from skintonex.engine.quality.color_temperature import calculate_cct_from_rgb
from skintonex.engine.types import RGB, UNIT_GAINS, AWBGains, AWBMethod, InvalidImageError, RawImageBuffer
from skintonex.schemas import AWBCorrectionResult

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from skintonex.engine.types import SkinMask

logger = logging.getLogger(__name__)

DEFAULT_MIN_GAIN = 0.0
DEFAULT_MAX_GAIN = 4.0
DEFAULT_MIN_BACKGROUND_LUMINANCE = 20.0


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else math.inf


# ---------------------------------------------------------------------------
# Validation and application
# ---------------------------------------------------------------------------


def is_valid_gains(gains: AWBGains, min_gain: float = DEFAULT_MIN_GAIN, max_gain: float = DEFAULT_MAX_GAIN) -> bool:
    """Every channel gain must be finite, positive, above ``min_gain`` and at most ``max_gain``."""
    return all(
        math.isfinite(value) and value > 0.0 and value > min_gain and value <= max_gain
        for value in (gains.r, gains.g, gains.b)
    )


def apply_gains(image: RawImageBuffer, gains: AWBGains) -> RawImageBuffer:
    """Multiply each channel by its gain into a new buffer, clamped to [0, 255]."""
    scaled = image.pixels.astype(np.float64) * gains.as_array()
    return RawImageBuffer(np.clip(np.rint(scaled), 0, 255).astype(np.uint8))


def calculate_applied_gains(original: RGB, corrected: RGB) -> AWBGains:
    """Effective gains that map ``original`` onto ``corrected``."""
    return AWBGains(
        r=_ratio(corrected.r, original.r),
        g=_ratio(corrected.g, original.g),
        b=_ratio(corrected.b, original.b),
    )


# ---------------------------------------------------------------------------
# Estimators
# ---------------------------------------------------------------------------


def calculate_gray_world_gains(average: RGB) -> AWBGains:
    """Gains that pull the frame average onto its own gray level."""
    gray = (average.r + average.g + average.b) / 3.0
    return AWBGains(r=_ratio(gray, average.r), g=_ratio(gray, average.g), b=_ratio(gray, average.b))


def calculate_skin_aware_gains(
    image: RawImageBuffer,
    skin_mask: SkinMask,
    min_background_luminance: float = DEFAULT_MIN_BACKGROUND_LUMINANCE,
) -> AWBGains | None:
    """Gray-world gains estimated from the pixels outside the skin mask.

    Skin is excluded from the illuminant estimate so the correction does not
    pull skin toward neutral gray. Returns ``None`` when every pixel is skin
    or the background is too dark to estimate the illuminant.
    """
    background = calculate_non_skin_average_rgb(image, skin_mask)
    if background is None or rgb_luminance(background) < min_background_luminance:
        return None
    return calculate_gray_world_gains(background)


def calculate_von_kries_matrix(source_white: RGB, target_white: RGB | None = None) -> NDArray[np.float64]:
    """Bradford von Kries adaptation as a matrix on linear sRGB.

    Without a ``target_white`` the source is adapted to D65 at its own
    luminance.
    """
    source_xyz = np.array(rgb_to_xyz(source_white.r, source_white.g, source_white.b))
    if target_white is None:
        target_xyz = np.array(D65_XYZ) * (source_xyz[1] / D65_XYZ[1])
    else:
        target_xyz = np.array(rgb_to_xyz(target_white.r, target_white.g, target_white.b))

    source_lms = BRADFORD_MATRIX @ source_xyz
    target_lms = BRADFORD_MATRIX @ target_xyz
    if np.any(np.abs(source_lms) < 1e-9):
        raise InvalidImageError("Source white is too dark for chromatic adaptation")
    scale = np.diag(target_lms / source_lms)
    return XYZ_TO_SRGB_MATRIX @ BRADFORD_INVERSE_MATRIX @ scale @ BRADFORD_MATRIX @ SRGB_TO_XYZ_MATRIX


def apply_von_kries(image: RawImageBuffer, matrix: NDArray[np.float64]) -> RawImageBuffer:
    """Apply a linear-RGB adaptation matrix to every pixel into a new buffer."""
    linear = srgb_to_linear(image.pixels.astype(np.float64) / 255.0)
    adapted = linear @ matrix.T
    encoded = linear_to_srgb(np.clip(adapted, 0.0, 1.0)) * 255.0
    return RawImageBuffer(np.clip(np.rint(encoded), 0, 255).astype(np.uint8))


def calculate_von_kries_gains(source_white: RGB, target_white: RGB | None = None) -> AWBGains:
    """Per-channel gains the von Kries transform effectively applies to ``source_white``."""
    matrix = calculate_von_kries_matrix(source_white, target_white)
    linear = srgb_to_linear(source_white.as_array() / 255.0)
    adapted = linear_to_srgb(np.clip(matrix @ linear, 0.0, None)) * 255.0
    return calculate_applied_gains(source_white, RGB(r=float(adapted[0]), g=float(adapted[1]), b=float(adapted[2])))


# ---------------------------------------------------------------------------
# Method selection
# ---------------------------------------------------------------------------


def _build_result(
    corrected: RawImageBuffer,
    gains: AWBGains,
    method: AWBMethod,
    original_cct: float,
    skin_ratio: float,
    config: AWBConfig,
) -> AWBCorrectionResult:
    corrected_average = average_rgb(corrected.pixels)
    corrected_cct = calculate_cct_from_rgb(corrected_average) if corrected_average is not None else original_cct
    return AWBCorrectionResult(
        corrected_image=corrected,
        gains=gains,
        original_cct=original_cct,
        corrected_cct=corrected_cct,
        method=method,
        confidence=calculate_awb_confidence(method, gains, skin_ratio, corrected_cct, config),
    )


def select_and_apply_awb(
    image: RawImageBuffer,
    config: AWBConfig | None = None,
    *,
    skin_mask: SkinMask | None = None,
    reference_white: RGB | None = None,
) -> AWBCorrectionResult | None:
    """Pick a white balance method for ``image`` and apply it.

    Policy: von Kries when ``reference_white`` (the captured color of a
    neutral reference surface) is supplied; no correction when the frame is
    already within tolerance of the target CCT; skin-aware when skin coverage
    is sufficient and a bright enough background remains; gray-world otherwise.

    Returns:
        The correction, or ``None`` when the only available gains are
        implausible and the caller has to fall back.

    Raises:
        InvalidImageError: If the image has no pixels.
    """
    config = config or DEFAULT_ENGINE_CONFIG.awb
    frame_average = average_rgb(image.pixels)
    if frame_average is None:
        raise InvalidImageError("Cannot white balance an empty image")
    original_cct = calculate_cct_from_rgb(frame_average)

    if skin_mask is None or not skin_mask.matches(image):
        skin_mask = clean_skin_mask(detect_skin_mask(image, config.skin_detection), config.clean_iterations)
    skin_ratio = skin_mask.skin_ratio

    if reference_white is not None:
        # A calibrated white takes precedence over the tolerance check.
        gains = calculate_von_kries_gains(reference_white)
        if not is_valid_gains(gains, config.min_gain, config.max_gain):
            logger.warning("Rejected von Kries gains %s", gains)
            return None
        corrected = apply_von_kries(image, calculate_von_kries_matrix(reference_white))
        return _build_result(corrected, gains, AWBMethod.VON_KRIES, original_cct, skin_ratio, config)

    if abs(original_cct - config.target_cct) <= config.cct_tolerance:
        logger.debug("CCT %.0fK within tolerance, skipping correction", original_cct)
        return _build_result(
            RawImageBuffer(image.pixels),
            UNIT_GAINS,
            AWBMethod.NONE,
            original_cct,
            skin_ratio,
            config,
        )

    if has_sufficient_skin_coverage(skin_mask, config.min_skin_coverage):
        gains = calculate_skin_aware_gains(image, skin_mask, config.min_background_luminance)
        if gains is None:
            logger.debug("No usable background outside the skin mask, trying gray-world")
        elif is_valid_gains(gains, config.min_gain, config.max_gain):
            corrected = apply_gains(image, gains)
            return _build_result(corrected, gains, AWBMethod.SKIN_AWARE, original_cct, skin_ratio, config)
        else:
            logger.warning("Rejected skin-aware gains %s, trying gray-world", gains)

    gains = calculate_gray_world_gains(frame_average)
    if not is_valid_gains(gains, config.min_gain, config.max_gain):
        logger.warning("Rejected gray-world gains %s", gains)
        return None
    return _build_result(apply_gains(image, gains), gains, AWBMethod.GRAY_WORLD, original_cct, skin_ratio, config)
