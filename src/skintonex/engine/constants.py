"""Versioned engine constants and tunable configuration.

Physical constants (white point, conversion matrices) are fixed. Thresholds
are grouped into frozen pydantic models under ``EngineConfig`` so callers can
pass a modified copy without touching process-wide state. Skin-locus and
regional tone values are empirically tuned and should only change together
with new calibration data.
"""

from __future__ import annotations

from types import MappingProxyType

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from skintonex.engine.types import Chromaticity, DistanceMetric

CONFIG_VERSION = "2024.2"

# ---------------------------------------------------------------------------
# Physical constants
# ---------------------------------------------------------------------------

D65_WHITE_POINT = Chromaticity(x=0.31271, y=0.32902)
D65_XYZ: tuple[float, float, float] = (95.047, 100.0, 108.883)
D65_CCT = 6500.0

SRGB_TO_XYZ_MATRIX = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ]
)
XYZ_TO_SRGB_MATRIX = np.linalg.inv(SRGB_TO_XYZ_MATRIX)

BRADFORD_MATRIX = np.array(
    [
        [0.8951, 0.2664, -0.1614],
        [-0.7502, 1.7135, 0.0367],
        [0.0389, -0.0685, 1.0296],
    ]
)
BRADFORD_INVERSE_MATRIX = np.linalg.inv(BRADFORD_MATRIX)

for _matrix in (SRGB_TO_XYZ_MATRIX, XYZ_TO_SRGB_MATRIX, BRADFORD_MATRIX, BRADFORD_INVERSE_MATRIX):
    _matrix.setflags(write=False)

# BT.601 luma
GRAYSCALE_WEIGHTS: tuple[float, float, float] = (0.299, 0.587, 0.114)

# McCamy (1992) cubic approximation around the epicenter (0.3320, 0.1858).
MCCAMY_EPICENTER = Chromaticity(x=0.3320, y=0.1858)
MCCAMY_COEFFICIENTS: tuple[float, float, float, float] = (449.0, 3525.0, 6823.3, 5520.33)

# ---------------------------------------------------------------------------
# Confidence ladder
# ---------------------------------------------------------------------------

WHOLE_STAGE_FALLBACK_CONFIDENCE = 0.5
PARTIAL_FALLBACK_MULTIPLIER = 0.8
REJECTION_CONFIDENCE = 0.1

# ---------------------------------------------------------------------------
# Time budgets (milliseconds)
# ---------------------------------------------------------------------------

PROCESSING_TIMEOUT_MS = MappingProxyType(
    {
        "quality": 2000,
        "region": 3000,
        "awb": 3000,
        "tone": 1000,
        "total": 8000,
    }
)


class _FrozenConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Quality gate
# ---------------------------------------------------------------------------


class SharpnessThresholds(_FrozenConfig):
    """Score bands: rejected < ``acceptable_from`` <= acceptable < ``sharp_from`` <= sharp."""

    acceptable_from: float = Field(default=40.0, ge=0.0, le=100.0)
    sharp_from: float = Field(default=70.0, ge=0.0, le=100.0)
    # Laplacian variance mapped to a score of 100
    variance_ceiling: float = Field(default=500.0, gt=0.0)


class ExposureThresholds(_FrozenConfig):
    underexposed_below: float = 70.0
    overexposed_above: float = 190.0
    extreme_low: float = 30.0
    extreme_high: float = 230.0
    clip_level: int = Field(default=250, ge=0, le=255)
    crush_level: int = Field(default=5, ge=0, le=255)
    # Luminance standard deviation at which exposure confidence saturates
    contrast_reference_std: float = Field(default=64.0, gt=0.0)


class ResolutionThresholds(_FrozenConfig):
    min_width: int = Field(default=320, ge=1)
    min_height: int = Field(default=240, ge=1)
    recommended_width: int = Field(default=640, ge=1)
    recommended_height: int = Field(default=480, ge=1)


class CCTThresholds(_FrozenConfig):
    """Kelvin bands: warm < ``warm_max`` <= neutral < ``cool_min`` <= cool."""

    warm_max: float = 5500.0
    cool_min: float = 7000.0
    acceptable_min: float = 4000.0
    acceptable_max: float = 7500.0
    bright_luminance: float = 100.0
    min_bright_ratio: float = 0.1
    min_kelvin: float = 1000.0
    max_kelvin: float = 25000.0


class QualityWeights(_FrozenConfig):
    sharpness: float = 0.4
    exposure: float = 0.25
    color_temperature: float = 0.2
    resolution: float = 0.15


class QualityConfig(_FrozenConfig):
    sharpness: SharpnessThresholds = SharpnessThresholds()
    exposure: ExposureThresholds = ExposureThresholds()
    resolution: ResolutionThresholds = ResolutionThresholds()
    color_temperature: CCTThresholds = CCTThresholds()
    weights: QualityWeights = QualityWeights()


# ---------------------------------------------------------------------------
# Region extraction
# ---------------------------------------------------------------------------


class FrontalityConfig(_FrozenConfig):
    pitch_threshold: float = Field(default=10.0, gt=0.0)
    yaw_threshold: float = Field(default=15.0, gt=0.0)
    roll_threshold: float = Field(default=20.0, gt=0.0)
    pitch_weight: float = 0.3
    yaw_weight: float = 0.5
    roll_weight: float = 0.2
    min_score: float = 60.0


class RegionConfig(_FrozenConfig):
    padding_ratio: float = Field(default=0.2, ge=0.0)
    square: bool = False
    min_face_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    frontality: FrontalityConfig = FrontalityConfig()


# ---------------------------------------------------------------------------
# White balance
# ---------------------------------------------------------------------------


class SkinDetectionThresholds(_FrozenConfig):
    """YCbCr skin locus (Chai & Ngan)."""

    cb_min: float = 77.0
    cb_max: float = 127.0
    cr_min: float = 133.0
    cr_max: float = 173.0


class AWBConfig(_FrozenConfig):
    target_cct: float = D65_CCT
    cct_tolerance: float = Field(default=500.0, ge=0.0)
    min_skin_coverage: float = Field(default=0.1, ge=0.0, le=1.0)
    skin_detection_min_ratio: float = Field(default=0.05, ge=0.0, le=1.0)
    min_gain: float = Field(default=0.0, ge=0.0)
    max_gain: float = Field(default=4.0, gt=0.0)
    skin_detection: SkinDetectionThresholds = SkinDetectionThresholds()
    # Background darker than this cannot estimate the illuminant
    min_background_luminance: float = Field(default=20.0, ge=0.0)
    clean_iterations: int = Field(default=1, ge=0)


# ---------------------------------------------------------------------------
# Tone classification
# ---------------------------------------------------------------------------


class ToneConfig(_FrozenConfig):
    metric: DistanceMetric = DistanceMetric.CIEDE2000
    # Distance at which a tone score reaches zero
    max_score_distance: float = Field(default=50.0, gt=0.0)
    confidence_floor: float = Field(default=30.0, ge=0.0, le=100.0)
    margin_scale: float = Field(default=5.0, gt=0.0)
    min_skin_ratio: float = Field(default=0.05, ge=0.0, le=1.0)


class EngineConfig(_FrozenConfig):
    version: str = CONFIG_VERSION
    quality: QualityConfig = QualityConfig()
    region: RegionConfig = RegionConfig()
    awb: AWBConfig = AWBConfig()
    tone: ToneConfig = ToneConfig()


DEFAULT_ENGINE_CONFIG = EngineConfig()

# ---------------------------------------------------------------------------
# User-facing feedback
# ---------------------------------------------------------------------------

FEEDBACK_MESSAGES = MappingProxyType(
    {
        "sharpness.rejected": "The photo is blurry. Hold the camera steady and retake it.",
        "sharpness.acceptable": "The photo is slightly soft but usable.",
        "sharpness.sharp": "The photo is sharp.",
        "exposure.underexposed": "The photo is too dark. Move to a brighter place.",
        "exposure.normal": "Exposure looks good.",
        "exposure.overexposed": "The photo is too bright. Avoid direct light on the face.",
        "exposure.extreme": "Exposure is too extreme to analyze skin color.",
        "resolution.too_low": "The image resolution is too low. Use a higher resolution camera.",
        "resolution.below_recommended": "A higher resolution photo will improve accuracy.",
        "resolution.ok": "Resolution is sufficient.",
        "cct.warm": "The lighting is warm (yellowish). Natural daylight works best.",
        "cct.neutral": "Lighting color is neutral.",
        "cct.cool": "The lighting is cool (bluish). Natural daylight works best.",
        "face.not_detected": "No face was detected.",
        "face.low_confidence": "The face could not be located reliably.",
        "face.angle_warning": "Please face the camera directly.",
        "face.frontal": "Face angle looks good.",
    }
)
