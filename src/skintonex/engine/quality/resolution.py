"""Minimum and recommended resolution check."""

from __future__ import annotations

from skintonex.engine.constants import FEEDBACK_MESSAGES, ResolutionThresholds
from skintonex.schemas import ResolutionResult


def check_resolution(width: int, height: int, thresholds: ResolutionThresholds | None = None) -> ResolutionResult:
    thresholds = thresholds or ResolutionThresholds()
    is_valid = width >= thresholds.min_width and height >= thresholds.min_height
    meets_recommended = width >= thresholds.recommended_width and height >= thresholds.recommended_height
    if not is_valid:
        feedback = FEEDBACK_MESSAGES["resolution.too_low"]
    elif not meets_recommended:
        feedback = FEEDBACK_MESSAGES["resolution.below_recommended"]
    else:
        feedback = FEEDBACK_MESSAGES["resolution.ok"]
    return ResolutionResult(
        width=width,
        height=height,
        is_valid=is_valid,
        meets_recommended=meets_recommended,
        feedback=feedback,
    )


def calculate_resolution_score(resolution: ResolutionResult) -> float:
    if not resolution.is_valid:
        return 0.0
    return 100.0 if resolution.meets_recommended else 80.0
