"""Pydantic result schemas for every pipeline stage.

Results serialize with camelCase keys (``model_dump(by_alias=True)``), which
is the field naming callers depend on (``sharpness.verdict``,
``colorTemperature.kelvin``, ``classification.toneScores``). Pixel buffers and
masks ride along on the models for downstream stages but are excluded from
serialization.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from skintonex.engine.types import (
    RGB,
    AWBGains,
    AWBMethod,
    BoundingBox,
    CCTVerdict,
    Chromaticity,
    DegradedReason,
    DistanceMetric,
    ExposureVerdict,
    LabColor,
    LandmarkSet,
    PipelineStage,
    RawImageBuffer,
    ResultSource,
    Season,
    SharpnessVerdict,
    SkinBrightness,
    SkinMask,
    Subtype,
    TwelveTone,
    Undertone,
)


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        arbitrary_types_allowed=True,
    )


class _Tagged(_Schema):
    """Marks whether a result is a real measurement or a degraded stand-in."""

    source: ResultSource = ResultSource.MEASURED
    degraded_reason: DegradedReason | None = None

    @property
    def is_degraded(self) -> bool:
        return self.source in (ResultSource.FALLBACK, ResultSource.PARTIAL, ResultSource.REJECTED)


class StageResult(_Tagged):
    processing_time: float = Field(default=0.0, ge=0.0, description="Milliseconds spent in the stage")
    confidence: float = Field(ge=0.0, le=1.0, description="Measurement reliability (0.0-1.0)")


# ---------------------------------------------------------------------------
# Quality gate
# ---------------------------------------------------------------------------


class SharpnessResult(_Schema):
    score: float = Field(ge=0.0, le=100.0)
    laplacian_variance: float = Field(ge=0.0)
    verdict: SharpnessVerdict
    feedback: str


class ExposureResult(_Schema):
    mean_brightness: float = Field(ge=0.0, le=255.0)
    std_dev: float = Field(default=0.0, ge=0.0)
    clipped_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    crushed_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    verdict: ExposureVerdict
    extreme: bool = False
    confidence: float = Field(ge=0.0, le=1.0)
    feedback: str


class ResolutionResult(_Schema):
    width: int = Field(ge=0)
    height: int = Field(ge=0)
    is_valid: bool
    meets_recommended: bool
    feedback: str


class ColorTemperatureResult(_Schema):
    kelvin: float
    chromaticity: Chromaticity
    verdict: CCTVerdict
    confidence: float = Field(ge=0.0, le=1.0)
    feedback: str


class QualityReport(StageResult):
    is_acceptable: bool
    overall_score: float = Field(ge=0.0, le=100.0)
    sharpness: SharpnessResult
    exposure: ExposureResult
    color_temperature: ColorTemperatureResult
    resolution: ResolutionResult | None = None
    primary_issue: str | None = None
    all_issues: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Region extraction
# ---------------------------------------------------------------------------


class FaceRegion(_Schema):
    image_data: RawImageBuffer = Field(exclude=True)
    bounding_box: BoundingBox
    landmarks: LandmarkSet | None = None

    @property
    def width(self) -> int:
        return self.image_data.width

    @property
    def height(self) -> int:
        return self.image_data.height


class FrontalityResult(_Schema):
    score: float = Field(ge=0.0, le=100.0)
    is_frontal: bool
    pitch: float
    yaw: float
    roll: float
    feedback: str


class RegionResult(StageResult):
    success: bool
    face_detected: bool
    region: FaceRegion | None = None
    frontality: FrontalityResult | None = None
    feedback: str | None = None


# ---------------------------------------------------------------------------
# White balance
# ---------------------------------------------------------------------------


class AWBCorrectionResult(_Schema):
    corrected_image: RawImageBuffer = Field(exclude=True)
    gains: AWBGains
    original_cct: float
    corrected_cct: float
    method: AWBMethod
    confidence: float = Field(ge=0.0, le=1.0)


class SkinDetectionSummary(_Schema):
    detected: bool
    coverage: float = Field(ge=0.0, le=1.0)
    mask: SkinMask | None = Field(default=None, exclude=True)


class AWBMetadata(_Schema):
    processing_time: float = Field(ge=0.0)
    method_used: AWBMethod
    confidence: float = Field(ge=0.0, le=1.0)


class AWBResult(_Tagged):
    success: bool
    correction_applied: bool
    result: AWBCorrectionResult | None = None
    skin_detection: SkinDetectionSummary
    metadata: AWBMetadata
    error: str | None = None

    @property
    def confidence(self) -> float:
        return self.metadata.confidence

    @property
    def processing_time(self) -> float:
        return self.metadata.processing_time


# ---------------------------------------------------------------------------
# Tone classification
# ---------------------------------------------------------------------------


class UndertoneResult(_Schema):
    undertone: Undertone
    confidence: float = Field(ge=0.0, le=100.0)
    hue: float
    chroma: float


class ToneClassification(_Schema):
    tone: TwelveTone
    confidence: float = Field(ge=0.0, le=100.0, description="Classification certainty (0-100)")
    tone_scores: dict[TwelveTone, float]
    season: Season
    subtype: Subtype
    undertone: Undertone
    rule_based_tone: TwelveTone
    lab: LabColor
    metric: DistanceMetric = DistanceMetric.CIEDE2000

    @model_validator(mode="after")
    def _scores_cover_every_tone(self) -> ToneClassification:
        missing = set(TwelveTone) - set(self.tone_scores)
        if missing:
            raise ValueError(f"tone_scores is missing {sorted(missing)}")
        return self

    def ranked_tones(self) -> list[tuple[TwelveTone, float]]:
        """Tones ordered from best to worst score."""
        return sorted(self.tone_scores.items(), key=lambda item: item[1], reverse=True)


class ToneAnalysisResult(StageResult):
    success: bool
    classification: ToneClassification
    measured_rgb: RGB | None = None
    skin_brightness: SkinBrightness
    ita: float
    skin_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    error: str | None = None


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class PipelineResult(_Tagged):
    success: bool
    quality: QualityReport | None = None
    region: RegionResult | None = None
    awb: AWBResult | None = None
    tone: ToneAnalysisResult | None = None
    rejection_reason: str | None = None
    error: str | None = None
    executed_stages: tuple[PipelineStage, ...] = ()
    skipped_stages: tuple[PipelineStage, ...] = ()
    stage_times: dict[PipelineStage, float] = Field(default_factory=dict)
    overall_quality: float = Field(default=0.0, ge=0.0, le=100.0)
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    processing_time: float = Field(default=0.0, ge=0.0)
