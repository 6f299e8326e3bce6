"""Twelve-tone reference table and tone-id helpers.

Reference Lab values describe typical skin for each tone. The regional table
holds per-tone offsets calibrated for Korean skin; both are tuned data, so
revise them only together with new labeled samples.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from skintonex.engine.types import LabColor, Season, Subtype, TwelveTone

TONE_TABLE_VERSION = "kr-2024.2"

TONE_REFERENCE_LAB = MappingProxyType(
    {
        TwelveTone.LIGHT_SPRING: LabColor(L=75.0, a=8.0, b=22.0),
        TwelveTone.TRUE_SPRING: LabColor(L=68.0, a=12.0, b=28.0),
        TwelveTone.BRIGHT_SPRING: LabColor(L=64.0, a=17.0, b=34.0),
        TwelveTone.LIGHT_SUMMER: LabColor(L=74.0, a=5.0, b=11.0),
        TwelveTone.TRUE_SUMMER: LabColor(L=64.0, a=9.0, b=13.0),
        TwelveTone.MUTED_SUMMER: LabColor(L=60.0, a=5.0, b=8.0),
        TwelveTone.MUTED_AUTUMN: LabColor(L=57.0, a=8.0, b=17.0),
        TwelveTone.TRUE_AUTUMN: LabColor(L=55.0, a=14.0, b=26.0),
        TwelveTone.DEEP_AUTUMN: LabColor(L=46.0, a=13.0, b=22.0),
        TwelveTone.DEEP_WINTER: LabColor(L=42.0, a=6.0, b=6.0),
        TwelveTone.TRUE_WINTER: LabColor(L=52.0, a=7.0, b=5.0),
        TwelveTone.BRIGHT_WINTER: LabColor(L=55.0, a=16.0, b=8.0),
    }
)

KOREAN_ADJUSTMENTS = MappingProxyType(
    {
        TwelveTone.LIGHT_SPRING: LabColor(L=1.5, a=0.0, b=1.0),
        TwelveTone.TRUE_SPRING: LabColor(L=1.5, a=0.0, b=1.0),
        TwelveTone.BRIGHT_SPRING: LabColor(L=1.0, a=0.5, b=1.0),
        TwelveTone.LIGHT_SUMMER: LabColor(L=2.0, a=-0.5, b=0.0),
        TwelveTone.TRUE_SUMMER: LabColor(L=2.0, a=-0.5, b=0.0),
        TwelveTone.MUTED_SUMMER: LabColor(L=1.5, a=-0.5, b=0.5),
        TwelveTone.MUTED_AUTUMN: LabColor(L=1.0, a=0.0, b=1.5),
        TwelveTone.TRUE_AUTUMN: LabColor(L=1.0, a=0.0, b=1.5),
        TwelveTone.DEEP_AUTUMN: LabColor(L=1.0, a=0.5, b=1.0),
        TwelveTone.DEEP_WINTER: LabColor(L=1.0, a=-0.5, b=-0.5),
        TwelveTone.TRUE_WINTER: LabColor(L=1.0, a=-0.5, b=-0.5),
        TwelveTone.BRIGHT_WINTER: LabColor(L=1.0, a=0.0, b=-0.5),
    }
)

SEASON_SUBTYPES = MappingProxyType(
    {
        Season.SPRING: (Subtype.LIGHT, Subtype.TRUE, Subtype.BRIGHT),
        Season.SUMMER: (Subtype.LIGHT, Subtype.TRUE, Subtype.MUTED),
        Season.AUTUMN: (Subtype.MUTED, Subtype.TRUE, Subtype.DEEP),
        Season.WINTER: (Subtype.DEEP, Subtype.TRUE, Subtype.BRIGHT),
    }
)

# Neighbouring tones sit next to each other; the ring wraps around.
TONE_RING: tuple[TwelveTone, ...] = (
    TwelveTone.LIGHT_SPRING,
    TwelveTone.TRUE_SPRING,
    TwelveTone.BRIGHT_SPRING,
    TwelveTone.BRIGHT_WINTER,
    TwelveTone.TRUE_WINTER,
    TwelveTone.DEEP_WINTER,
    TwelveTone.DEEP_AUTUMN,
    TwelveTone.TRUE_AUTUMN,
    TwelveTone.MUTED_AUTUMN,
    TwelveTone.MUTED_SUMMER,
    TwelveTone.TRUE_SUMMER,
    TwelveTone.LIGHT_SUMMER,
)


@dataclass(frozen=True)
class ToneParts:
    season: Season
    subtype: Subtype


def compose_twelve_tone(season: Season | str, subtype: Subtype | str) -> TwelveTone:
    """``compose_twelve_tone("spring", "light") == "light-spring"``.

    Raises:
        ValueError: If the combination is not one of the twelve tones.
    """
    try:
        return TwelveTone(f"{Subtype(subtype)}-{Season(season)}")
    except ValueError:
        raise ValueError(f"No tone for season={season!r}, subtype={subtype!r}") from None


def parse_twelve_tone(tone: TwelveTone | str) -> ToneParts:
    """Split a tone id into season and subtype.

    Raises:
        ValueError: If ``tone`` is not a known tone id.
    """
    try:
        subtype, season = TwelveTone(tone).value.split("-")
    except ValueError:
        raise ValueError(f"Unknown tone: {tone!r}") from None
    return ToneParts(season=Season(season), subtype=Subtype(subtype))


def get_reference_lab(tone: TwelveTone) -> LabColor:
    """Unadjusted reference color. ``LabColor`` is frozen, so callers cannot alter the table."""
    return TONE_REFERENCE_LAB[tone]


def get_adjusted_reference_lab(tone: TwelveTone) -> LabColor:
    """Reference color plus its regional offset. Classification always uses these."""
    reference = TONE_REFERENCE_LAB[tone]
    delta = KOREAN_ADJUSTMENTS[tone]
    return LabColor(L=reference.L + delta.L, a=reference.a + delta.a, b=reference.b + delta.b)


def get_tones_in_season(season: Season) -> list[TwelveTone]:
    return [compose_twelve_tone(season, subtype) for subtype in SEASON_SUBTYPES[season]]


def get_adjacent_tones(tone: TwelveTone, count: int = 2) -> list[TwelveTone]:
    """The ``count`` nearest neighbours of ``tone`` on the tone ring, closest first."""
    index = TONE_RING.index(TwelveTone(tone))
    neighbours: list[TwelveTone] = []
    step = 1
    while len(neighbours) < min(count, len(TONE_RING) - 1):
        for offset in (-step, step):
            candidate = TONE_RING[(index + offset) % len(TONE_RING)]
            if candidate != tone and candidate not in neighbours and len(neighbours) < count:
                neighbours.append(candidate)
        step += 1
    return neighbours
