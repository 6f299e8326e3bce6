"""Head-pose frontality scoring."""

from __future__ import annotations

from skintonex.engine.constants import FEEDBACK_MESSAGES, FrontalityConfig
from skintonex.engine.types import FaceAngle
from skintonex.schemas import FrontalityResult


def calculate_frontality_score(angle: FaceAngle, config: FrontalityConfig | None = None) -> float:
    """0-100, where 100 is a perfectly frontal face.

    Each axis contributes its weight times the fraction of its threshold used,
    saturating at the threshold.
    """
    config = config or FrontalityConfig()
    axes = (
        (config.pitch_weight, abs(angle.pitch) / config.pitch_threshold),
        (config.yaw_weight, abs(angle.yaw) / config.yaw_threshold),
        (config.roll_weight, abs(angle.roll) / config.roll_threshold),
    )
    total_weight = sum(weight for weight, _ in axes)
    penalty = sum(weight * min(1.0, deviation) for weight, deviation in axes) / total_weight
    return 100.0 * (1.0 - penalty)


def assess_frontality(angle: FaceAngle, config: FrontalityConfig | None = None) -> FrontalityResult:
    config = config or FrontalityConfig()
    score = calculate_frontality_score(angle, config)
    within_limits = (
        abs(angle.pitch) <= config.pitch_threshold
        and abs(angle.yaw) <= config.yaw_threshold
        and abs(angle.roll) <= config.roll_threshold
    )
    is_frontal = within_limits and score >= config.min_score
    return FrontalityResult(
        score=score,
        is_frontal=is_frontal,
        pitch=angle.pitch,
        yaw=angle.yaw,
        roll=angle.roll,
        feedback=FEEDBACK_MESSAGES["face.frontal" if is_frontal else "face.angle_warning"],
    )
