"""White balance confidence scoring."""

from __future__ import annotations

import math
from types import MappingProxyType

from skintonex.engine.constants import AWBConfig
from skintonex.engine.types import AWBGains, AWBMethod

METHOD_BASE_CONFIDENCE = MappingProxyType(
    {
        AWBMethod.SKIN_AWARE: 0.85,
        AWBMethod.VON_KRIES: 0.8,
        AWBMethod.GRAY_WORLD: 0.75,
        AWBMethod.NONE: 0.6,
    }
)


def get_method_default_confidence(method: AWBMethod) -> float:
    return METHOD_BASE_CONFIDENCE[method]


def calculate_gain_plausibility(gains: AWBGains, max_gain: float = 4.0) -> float:
    """1.0 for unit gains, falling to 0.0 as the strongest gain nears ``max_gain`` (or its inverse)."""
    values = (gains.r, gains.g, gains.b)
    if any(not math.isfinite(v) or v <= 0 for v in values) or max_gain <= 1.0:
        return 0.0
    strongest = max(abs(math.log(v)) for v in values)
    return max(0.0, 1.0 - strongest / math.log(max_gain))


def calculate_coverage_factor(skin_ratio: float, min_coverage: float) -> float:
    """Saturates once skin covers twice the minimum coverage."""
    if min_coverage <= 0:
        return 1.0
    return min(1.0, max(0.0, skin_ratio / (2.0 * min_coverage)))


def calculate_awb_confidence(
    method: AWBMethod,
    gains: AWBGains,
    skin_ratio: float,
    corrected_cct: float,
    config: AWBConfig | None = None,
) -> float:
    """Combine method, skin coverage, gain plausibility and residual cast into [0, 1].

    Args:
        method: Method that produced ``gains``.
        gains: Applied gains.
        skin_ratio: Fraction of the frame detected as skin.
        corrected_cct: CCT of the corrected frame in Kelvin.
        config: Bounds and targets; defaults to ``AWBConfig()``.

    Returns:
        The reliability of the correction.
    """
    config = config or AWBConfig()
    coverage = calculate_coverage_factor(skin_ratio, config.min_skin_coverage)
    plausibility = calculate_gain_plausibility(gains, config.max_gain)
    residual = abs(corrected_cct - config.target_cct) / config.target_cct if config.target_cct > 0 else 1.0
    cct_factor = 0.9 + 0.1 * max(0.0, 1.0 - residual)

    confidence = (
        get_method_default_confidence(method)
        * (0.8 + 0.2 * coverage)
        * (0.7 + 0.3 * plausibility)
        * cct_factor
    )
    return min(1.0, max(0.0, confidence))
