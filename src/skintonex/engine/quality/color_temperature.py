"""Correlated color temperature estimation (McCamy approximation)."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from skintonex.engine.color_space import rgb_to_chromaticity
from skintonex.engine.constants import (
    D65_CCT,
    D65_WHITE_POINT,
    FEEDBACK_MESSAGES,
    MCCAMY_COEFFICIENTS,
    MCCAMY_EPICENTER,
    CCTThresholds,
)
from skintonex.engine.image_stats import average_rgb, to_luminance
from skintonex.engine.types import RGB, CCTVerdict, Chromaticity, InvalidImageError
from skintonex.schemas import ColorTemperatureResult

if TYPE_CHECKING:
    from skintonex.engine.types import RawImageBuffer

_NEUTRAL_GRAY = RGB(r=128.0, g=128.0, b=128.0)


def calculate_cct_from_chromaticity(xy: Chromaticity, thresholds: CCTThresholds | None = None) -> float:
    """McCamy's cubic in ``n = (x - xe) / (ye - y)``, clamped to a finite Kelvin range."""
    thresholds = thresholds or CCTThresholds()
    denominator = MCCAMY_EPICENTER.y - xy.y
    if abs(denominator) < 1e-9:
        return thresholds.max_kelvin
    n = (xy.x - MCCAMY_EPICENTER.x) / denominator
    a, b, c, d = MCCAMY_COEFFICIENTS
    kelvin = a * n**3 + b * n**2 + c * n + d
    if not math.isfinite(kelvin):
        return thresholds.max_kelvin
    return min(max(kelvin, thresholds.min_kelvin), thresholds.max_kelvin)


def calculate_cct_from_rgb(rgb: RGB, thresholds: CCTThresholds | None = None) -> float:
    return calculate_cct_from_chromaticity(rgb_to_chromaticity(rgb), thresholds)


def calculate_bright_region_average(image: RawImageBuffer, thresholds: CCTThresholds | None = None) -> RGB | None:
    """Average color of bright pixels, or ``None`` when too few pixels are bright.

    Dark pixels carry mostly sensor noise rather than illuminant color.
    """
    thresholds = thresholds or CCTThresholds()
    if image.is_empty:
        return None
    bright = to_luminance(image.pixels) >= thresholds.bright_luminance
    if bright.mean() < thresholds.min_bright_ratio:
        return None
    return average_rgb(image.pixels, bright)


def classify_cct(kelvin: float, thresholds: CCTThresholds | None = None) -> CCTVerdict:
    thresholds = thresholds or CCTThresholds()
    if kelvin < thresholds.warm_max:
        return CCTVerdict.WARM
    if kelvin >= thresholds.cool_min:
        return CCTVerdict.COOL
    return CCTVerdict.NEUTRAL


def calculate_cct_confidence(kelvin: float, thresholds: CCTThresholds | None = None) -> float:
    """1.0 at D65, 0.7 at the edges of the acceptable range, floored at 0.1 beyond."""
    thresholds = thresholds or CCTThresholds()
    if thresholds.acceptable_min <= kelvin <= thresholds.acceptable_max:
        span = D65_CCT - thresholds.acceptable_min if kelvin < D65_CCT else thresholds.acceptable_max - D65_CCT
        if span <= 0:
            return 1.0
        return 1.0 - 0.3 * abs(kelvin - D65_CCT) / span
    if kelvin < thresholds.acceptable_min:
        beyond = thresholds.acceptable_min - kelvin
    else:
        beyond = kelvin - thresholds.acceptable_max
    return max(0.1, 0.7 - 0.6 * min(1.0, beyond / 3000.0))


def analyze_color_temperature(
    image: RawImageBuffer,
    thresholds: CCTThresholds | None = None,
) -> ColorTemperatureResult:
    """Estimate the illuminant CCT of ``image``.

    Raises:
        InvalidImageError: If the image has no pixels.
    """
    thresholds = thresholds or CCTThresholds()
    if image.is_empty:
        raise InvalidImageError("Cannot estimate color temperature of an empty image")
    rgb = calculate_bright_region_average(image, thresholds) or average_rgb(image.pixels) or _NEUTRAL_GRAY
    xy = rgb_to_chromaticity(rgb)
    kelvin = calculate_cct_from_chromaticity(xy, thresholds)
    verdict = classify_cct(kelvin, thresholds)
    return ColorTemperatureResult(
        kelvin=kelvin,
        chromaticity=xy,
        verdict=verdict,
        confidence=calculate_cct_confidence(kelvin, thresholds),
        feedback=FEEDBACK_MESSAGES[f"cct.{verdict}"],
    )


def neutral_color_temperature(confidence: float, feedback: str | None = None) -> ColorTemperatureResult:
    """A D65 reading used by fallbacks."""
    return ColorTemperatureResult(
        kelvin=D65_CCT,
        chromaticity=D65_WHITE_POINT,
        verdict=CCTVerdict.NEUTRAL,
        confidence=confidence,
        feedback=feedback or FEEDBACK_MESSAGES["cct.neutral"],
    )
