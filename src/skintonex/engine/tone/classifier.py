"""Twelve-tone classification in Lab space.

Two independent views are computed for every color:

* a rule-based path (undertone, then season from lightness, then subtype from
  chroma and lightness), reported as ``rule_based_tone``;
* a distance-based path that scores all twelve regional references. Its
  arg-max is the reported ``tone`` and the season and subtype are parsed from
  it, so the reported fields never disagree with each other.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from skintonex.engine.color_space import (
    calculate_chroma,
    calculate_ciede2000,
    calculate_hue,
    calculate_ita,
    calculate_lab_distance,
)
from skintonex.engine.constants import DEFAULT_ENGINE_CONFIG, ToneConfig
from skintonex.engine.tone.reference import compose_twelve_tone, get_adjusted_reference_lab, parse_twelve_tone
from skintonex.engine.types import DistanceMetric, Season, SkinBrightness, Subtype, TwelveTone, Undertone
from skintonex.schemas import ToneClassification, UndertoneResult

if TYPE_CHECKING:
    from skintonex.engine.tone.cache import ClassificationCache
    from skintonex.engine.types import LabColor

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Rule thresholds (regional calibration)
# ---------------------------------------------------------------------------

WARM_MIN_B = 19.0
WARM_MIN_HUE = 60.0
COOL_MAX_B = 14.0
COOL_MIN_HUE = 90.0
NEUTRAL_MAX_CHROMA = 8.0

# Neutral colors lean warm above this hue when picking a season
NEUTRAL_WARM_HUE = 55.0
SPRING_MIN_L = 60.0
SUMMER_MIN_L = 58.0

LIGHT_MIN_L = 70.0
DEEP_AUTUMN_MAX_L = 50.0
DEEP_WINTER_MAX_L = 48.0
BRIGHT_SPRING_MIN_CHROMA = 32.0
BRIGHT_WINTER_MIN_CHROMA = 16.0
MUTED_SUMMER_MAX_CHROMA = 12.0
MUTED_AUTUMN_MAX_CHROMA = 22.0

# Lower bounds of each ITA band, lightest first
ITA_BANDS: tuple[tuple[float, SkinBrightness], ...] = (
    (55.0, SkinBrightness.VERY_LIGHT),
    (41.0, SkinBrightness.LIGHT),
    (28.0, SkinBrightness.INTERMEDIATE),
    (10.0, SkinBrightness.TAN),
)


# ---------------------------------------------------------------------------
# Rule-based stages
# ---------------------------------------------------------------------------


def determine_undertone(lab: LabColor) -> UndertoneResult:
    """Warm, cool or neutral from the hue and chroma of ``lab``.

    Confidence is 0-100 and grows with the distance past the deciding
    threshold. Near-gray colors are neutral with low confidence.
    """
    hue = calculate_hue(lab)
    chroma = calculate_chroma(lab)

    if chroma < NEUTRAL_MAX_CHROMA:
        undertone = Undertone.NEUTRAL
        confidence = 40.0 + 10.0 * chroma / NEUTRAL_MAX_CHROMA
    elif hue > COOL_MIN_HUE:
        undertone = Undertone.COOL
        confidence = 70.0 + min(25.0, hue - COOL_MIN_HUE)
    elif lab.b > WARM_MIN_B and hue > WARM_MIN_HUE:
        undertone = Undertone.WARM
        confidence = 70.0 + min(25.0, (lab.b - WARM_MIN_B) * 2.0 + (hue - WARM_MIN_HUE))
    elif lab.b < COOL_MAX_B:
        undertone = Undertone.COOL
        confidence = 70.0 + min(25.0, (COOL_MAX_B - lab.b) * 3.0)
    else:
        undertone = Undertone.NEUTRAL
        margin = min(lab.b - COOL_MAX_B, abs(WARM_MIN_B - lab.b))
        confidence = 50.0 + min(15.0, margin * 3.0)

    return UndertoneResult(undertone=undertone, confidence=confidence, hue=hue, chroma=chroma)


def determine_season(lab: LabColor, undertone: Undertone | UndertoneResult) -> Season:
    if isinstance(undertone, UndertoneResult):
        undertone = undertone.undertone
    if undertone == Undertone.NEUTRAL:
        undertone = Undertone.WARM if calculate_hue(lab) >= NEUTRAL_WARM_HUE else Undertone.COOL

    if undertone == Undertone.WARM:
        return Season.SPRING if lab.L >= SPRING_MIN_L else Season.AUTUMN
    return Season.SUMMER if lab.L >= SUMMER_MIN_L else Season.WINTER


def determine_subtype(lab: LabColor, season: Season) -> Subtype:
    """Pick the modifier among the three subtypes the season allows."""
    chroma = calculate_chroma(lab)
    if season == Season.SPRING:
        if lab.L >= LIGHT_MIN_L:
            return Subtype.LIGHT
        return Subtype.BRIGHT if chroma >= BRIGHT_SPRING_MIN_CHROMA else Subtype.TRUE
    if season == Season.SUMMER:
        if lab.L >= LIGHT_MIN_L:
            return Subtype.LIGHT
        return Subtype.MUTED if chroma < MUTED_SUMMER_MAX_CHROMA else Subtype.TRUE
    if season == Season.AUTUMN:
        if lab.L < DEEP_AUTUMN_MAX_L:
            return Subtype.DEEP
        return Subtype.MUTED if chroma < MUTED_AUTUMN_MAX_CHROMA else Subtype.TRUE
    if lab.L < DEEP_WINTER_MAX_L:
        return Subtype.DEEP
    return Subtype.BRIGHT if chroma > BRIGHT_WINTER_MIN_CHROMA else Subtype.TRUE


def classify_by_rules(lab: LabColor) -> TwelveTone:
    season = determine_season(lab, determine_undertone(lab))
    return compose_twelve_tone(season, determine_subtype(lab, season))


def classify_skin_brightness(lab: LabColor) -> SkinBrightness:
    ita = calculate_ita(lab)
    for lower_bound, band in ITA_BANDS:
        if ita > lower_bound:
            return band
    return SkinBrightness.DARK


# ---------------------------------------------------------------------------
# Distance-based scoring
# ---------------------------------------------------------------------------


def calculate_distance(lab1: LabColor, lab2: LabColor, metric: DistanceMetric = DistanceMetric.CIEDE2000) -> float:
    if metric == DistanceMetric.CIE76:
        return calculate_lab_distance(lab1, lab2)
    return calculate_ciede2000(lab1, lab2)


def distance_to_score(distance: float, max_distance: float) -> float:
    """100 at distance 0, falling linearly to 0 at ``max_distance``."""
    if not math.isfinite(distance):
        return 0.0
    return 100.0 * max(0.0, 1.0 - distance / max_distance)


def calculate_tone_scores(lab: LabColor, config: ToneConfig | None = None) -> dict[TwelveTone, float]:
    """Similarity (0-100) of ``lab`` to every adjusted reference tone."""
    config = config or DEFAULT_ENGINE_CONFIG.tone
    return {
        tone: distance_to_score(
            calculate_distance(lab, get_adjusted_reference_lab(tone), config.metric),
            config.max_score_distance,
        )
        for tone in TwelveTone
    }


def calculate_classification_confidence(scores: dict[TwelveTone, float], config: ToneConfig | None = None) -> float:
    """Confidence (0-100) rising with the margin between the two best scores.

    A tie gives ``confidence_floor``. The curve approaches 100 as the margin
    grows, with ``margin_scale`` setting how fast.
    """
    config = config or DEFAULT_ENGINE_CONFIG.tone
    ranked = sorted(scores.values(), reverse=True)
    if not ranked:
        return 0.0
    if len(ranked) == 1:
        return 100.0
    margin = max(0.0, ranked[0] - ranked[1])
    floor = config.confidence_floor
    return floor + (100.0 - floor) * (1.0 - math.exp(-margin / config.margin_scale))


def select_best_tone(scores: dict[TwelveTone, float]) -> TwelveTone:
    """Arg-max of ``scores``. Ties resolve to the earliest tone in declaration order."""
    return max(TwelveTone, key=lambda tone: scores.get(tone, 0.0))


def classify_tone(
    lab: LabColor,
    config: ToneConfig | None = None,
    *,
    cache: ClassificationCache | None = None,
) -> ToneClassification:
    """Classify a skin color into one of the twelve tones.

    Args:
        lab: Measured skin color.
        config: Metric and scoring parameters; defaults to the engine config.
        cache: Optional cache consulted before and filled after classification.

    Returns:
        The arg-max tone with its confidence, the full score table, the
        undertone, and the tone the rule path would have chosen.
    """
    config = config or DEFAULT_ENGINE_CONFIG.tone
    if cache is not None:
        cached = cache.get(lab, config)
        if cached is not None:
            return cached

    scores = calculate_tone_scores(lab, config)
    tone = select_best_tone(scores)
    parts = parse_twelve_tone(tone)
    undertone = determine_undertone(lab)

    classification = ToneClassification(
        tone=tone,
        confidence=calculate_classification_confidence(scores, config),
        tone_scores=scores,
        season=parts.season,
        subtype=parts.subtype,
        undertone=undertone.undertone,
        rule_based_tone=classify_by_rules(lab),
        lab=lab,
        metric=config.metric,
    )
    logger.debug(
        "Classified L=%.1f a=%.1f b=%.1f as %s (%.0f%%, rules: %s)",
        lab.L,
        lab.a,
        lab.b,
        classification.tone,
        classification.confidence,
        classification.rule_based_tone,
    )
    if cache is not None:
        cache.put(lab, config, classification)
    return classification


def calculate_tone_similarity(
    tone1: TwelveTone,
    tone2: TwelveTone,
    config: ToneConfig | None = None,
) -> float:
    """Score (0-100) between two tones' adjusted references; 100 for the same tone."""
    config = config or DEFAULT_ENGINE_CONFIG.tone
    distance = calculate_distance(
        get_adjusted_reference_lab(tone1),
        get_adjusted_reference_lab(tone2),
        config.metric,
    )
    return distance_to_score(distance, config.max_score_distance)
