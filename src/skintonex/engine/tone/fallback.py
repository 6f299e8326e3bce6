"""Tone stage fallbacks and demo mocks.

Fallbacks signal degradation through low stage confidence. Mocks are for demos
and UI work: they look like real measurements and are tagged ``mock``.
"""

from __future__ import annotations

import logging
from types import MappingProxyType

import numpy as np

from skintonex.engine.color_space import calculate_ita, lab_to_rgb
from skintonex.engine.constants import REJECTION_CONFIDENCE, WHOLE_STAGE_FALLBACK_CONFIDENCE
from skintonex.engine.tone.classifier import classify_skin_brightness, classify_tone
from skintonex.engine.tone.reference import get_reference_lab, parse_twelve_tone
from skintonex.engine.types import DegradedReason, LabColor, ResultSource, Season, TwelveTone, Undertone
from skintonex.schemas import ToneAnalysisResult, ToneClassification

logger = logging.getLogger(__name__)

# Typical Korean facial skin under D65
DEFAULT_SKIN_LAB = LabColor(L=65.0, a=10.0, b=18.0)

# Relative frequency of each tone in the target population
MOCK_TONE_WEIGHTS = MappingProxyType(
    {
        TwelveTone.LIGHT_SPRING: 8,
        TwelveTone.TRUE_SPRING: 12,
        TwelveTone.BRIGHT_SPRING: 6,
        TwelveTone.LIGHT_SUMMER: 10,
        TwelveTone.TRUE_SUMMER: 10,
        TwelveTone.MUTED_SUMMER: 12,
        TwelveTone.MUTED_AUTUMN: 10,
        TwelveTone.TRUE_AUTUMN: 12,
        TwelveTone.DEEP_AUTUMN: 6,
        TwelveTone.DEEP_WINTER: 4,
        TwelveTone.TRUE_WINTER: 5,
        TwelveTone.BRIGHT_WINTER: 5,
    }
)

SEASON_UNDERTONE = MappingProxyType(
    {
        Season.SPRING: Undertone.WARM,
        Season.AUTUMN: Undertone.WARM,
        Season.SUMMER: Undertone.COOL,
        Season.WINTER: Undertone.COOL,
    }
)


def _default_analysis(
    confidence: float,
    processing_time: float,
    source: ResultSource,
    reason: DegradedReason | None,
    *,
    success: bool,
    error: str | None = None,
) -> ToneAnalysisResult:
    classification = classify_tone(DEFAULT_SKIN_LAB)
    # The default color is not a measurement, so do not report its score margin
    classification = classification.model_copy(update={"confidence": confidence * 100.0})
    return ToneAnalysisResult(
        success=success,
        classification=classification,
        measured_rgb=None,
        skin_brightness=classify_skin_brightness(DEFAULT_SKIN_LAB),
        ita=calculate_ita(DEFAULT_SKIN_LAB),
        confidence=confidence,
        processing_time=processing_time,
        error=error,
        source=source,
        degraded_reason=reason,
    )


def generate_tone_fallback(
    processing_time: float = 0.0,
    reason: DegradedReason | None = None,
) -> ToneAnalysisResult:
    """Classify the default skin color with whole-stage fallback confidence."""
    return _default_analysis(
        WHOLE_STAGE_FALLBACK_CONFIDENCE,
        processing_time,
        ResultSource.FALLBACK,
        reason,
        success=True,
    )


def generate_error_tone_fallback(
    reason: str,
    processing_time: float = 0.0,
    degraded_reason: DegradedReason = DegradedReason.ERROR,
) -> ToneAnalysisResult:
    logger.warning("Tone analysis failed: %s", reason)
    return _default_analysis(
        REJECTION_CONFIDENCE,
        processing_time,
        ResultSource.REJECTED,
        degraded_reason,
        success=False,
        error=reason,
    )


# ---------------------------------------------------------------------------
# Mocks
# ---------------------------------------------------------------------------


def _pick_weighted_tone(rng: np.random.Generator) -> TwelveTone:
    tones = list(MOCK_TONE_WEIGHTS)
    weights = np.array([MOCK_TONE_WEIGHTS[tone] for tone in tones], dtype=np.float64)
    return tones[int(rng.choice(len(tones), p=weights / weights.sum()))]


def _mock_scores(tone: TwelveTone, rng: np.random.Generator) -> dict[TwelveTone, float]:
    season = parse_twelve_tone(tone).season
    scores: dict[TwelveTone, float] = {}
    for candidate in TwelveTone:
        if candidate == tone:
            score = rng.uniform(85.0, 95.0)
        elif parse_twelve_tone(candidate).season == season:
            score = rng.uniform(55.0, 75.0)
        else:
            score = rng.uniform(20.0, 50.0)
        scores[candidate] = round(float(score), 1)
    return scores


def generate_mock_classification(
    preferred_tone: TwelveTone | None = None,
    rng: np.random.Generator | None = None,
) -> ToneClassification:
    """Structurally valid classification with a realistic confidence (75-90).

    Args:
        preferred_tone: Tone to report; drawn from the population weights when omitted.
        rng: Random source, for reproducible demos.

    Returns:
        A classification whose Lab lies within 3 units of the tone's reference.
    """
    rng = rng or np.random.default_rng()
    tone = TwelveTone(preferred_tone) if preferred_tone is not None else _pick_weighted_tone(rng)
    parts = parse_twelve_tone(tone)
    reference = get_reference_lab(tone)
    jitter = rng.uniform(-3.0, 3.0, size=3)
    lab = LabColor(
        L=float(np.clip(reference.L + jitter[0], 0.0, 100.0)),
        a=float(reference.a + jitter[1]),
        b=float(reference.b + jitter[2]),
    )
    return ToneClassification(
        tone=tone,
        confidence=float(rng.integers(75, 91)),
        tone_scores=_mock_scores(tone, rng),
        season=parts.season,
        subtype=parts.subtype,
        undertone=SEASON_UNDERTONE[parts.season],
        rule_based_tone=tone,
        lab=lab,
    )


def generate_mock_result(
    preferred_tone: TwelveTone | None = None,
    rng: np.random.Generator | None = None,
) -> ToneAnalysisResult:
    rng = rng or np.random.default_rng()
    classification = generate_mock_classification(preferred_tone, rng)
    return ToneAnalysisResult(
        success=True,
        classification=classification,
        measured_rgb=lab_to_rgb(classification.lab),
        skin_brightness=classify_skin_brightness(classification.lab),
        ita=calculate_ita(classification.lab),
        skin_ratio=float(rng.uniform(0.15, 0.4)),
        confidence=classification.confidence / 100.0,
        processing_time=float(rng.uniform(5.0, 40.0)),
        source=ResultSource.MOCK,
    )
