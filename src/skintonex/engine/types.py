"""Core value types shared by every pipeline stage.

Image-bearing types (``RawImageBuffer``, ``SkinMask``) are plain slotted
classes wrapping read-only numpy arrays. Geometry and color values are frozen
dataclasses. Every verdict is a ``StrEnum`` so serialized results keep their
string values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


class InvalidImageError(ValueError):
    """Raised when pixel data cannot be interpreted as an RGB image."""


# ---------------------------------------------------------------------------
# Verdicts and tags
# ---------------------------------------------------------------------------


class SharpnessVerdict(StrEnum):
    REJECTED = "rejected"
    ACCEPTABLE = "acceptable"
    SHARP = "sharp"


class ExposureVerdict(StrEnum):
    UNDEREXPOSED = "underexposed"
    NORMAL = "normal"
    OVEREXPOSED = "overexposed"


class CCTVerdict(StrEnum):
    WARM = "warm"
    NEUTRAL = "neutral"
    COOL = "cool"


class AWBMethod(StrEnum):
    GRAY_WORLD = "gray_world"
    VON_KRIES = "von_kries"
    SKIN_AWARE = "skin_aware"
    NONE = "none"


class Undertone(StrEnum):
    WARM = "warm"
    COOL = "cool"
    NEUTRAL = "neutral"


class Season(StrEnum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


class Subtype(StrEnum):
    LIGHT = "light"
    TRUE = "true"
    BRIGHT = "bright"
    MUTED = "muted"
    DEEP = "deep"


class TwelveTone(StrEnum):
    LIGHT_SPRING = "light-spring"
    TRUE_SPRING = "true-spring"
    BRIGHT_SPRING = "bright-spring"
    LIGHT_SUMMER = "light-summer"
    TRUE_SUMMER = "true-summer"
    MUTED_SUMMER = "muted-summer"
    MUTED_AUTUMN = "muted-autumn"
    TRUE_AUTUMN = "true-autumn"
    DEEP_AUTUMN = "deep-autumn"
    DEEP_WINTER = "deep-winter"
    TRUE_WINTER = "true-winter"
    BRIGHT_WINTER = "bright-winter"


class SkinBrightness(StrEnum):
    VERY_LIGHT = "very-light"
    LIGHT = "light"
    INTERMEDIATE = "intermediate"
    TAN = "tan"
    DARK = "dark"


class DistanceMetric(StrEnum):
    CIEDE2000 = "ciede2000"
    CIE76 = "cie76"


class ResultSource(StrEnum):
    """Where a stage output came from."""

    MEASURED = "measured"
    FALLBACK = "fallback"
    PARTIAL = "partial"
    REJECTED = "rejected"
    MOCK = "mock"


class DegradedReason(StrEnum):
    """Why a stage output is not a full measurement."""

    TIMEOUT = "timeout"
    ERROR = "error"
    INVALID_INPUT = "invalid_input"
    INSUFFICIENT_EVIDENCE = "insufficient_evidence"
    IMPLAUSIBLE_GAINS = "implausible_gains"


class PipelineStage(StrEnum):
    QUALITY = "quality"
    REGION = "region"
    AWB = "awb"
    TONE = "tone"


# ---------------------------------------------------------------------------
# Color values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RGB:
    """An sRGB triple on the 0-255 scale. Averages keep fractional values."""

    r: float
    g: float
    b: float

    def as_array(self) -> NDArray[np.float64]:
        return np.array([self.r, self.g, self.b], dtype=np.float64)


@dataclass(frozen=True)
class LabColor:
    """CIE L*a*b* color under the D65 white point."""

    L: float
    a: float
    b: float


@dataclass(frozen=True)
class Chromaticity:
    """CIE 1931 xy chromaticity coordinates."""

    x: float
    y: float


@dataclass(frozen=True)
class AWBGains:
    """Multiplicative per-channel white balance gains."""

    r: float
    g: float
    b: float

    def as_array(self) -> NDArray[np.float64]:
        return np.array([self.r, self.g, self.b], dtype=np.float64)


UNIT_GAINS = AWBGains(r=1.0, g=1.0, b=1.0)


# ---------------------------------------------------------------------------
# Geometry and detector input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in pixel coordinates.

    Detector boxes may be fractional or out of range. Boxes returned by the
    region helpers are integral and lie inside the image.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@dataclass(frozen=True)
class Point:
    x: float
    y: float
    z: float | None = None


@dataclass(frozen=True)
class LandmarkSet:
    """Ordered landmark points with an overall detection confidence in [0, 1]."""

    points: tuple[Point, ...]
    confidence: float


@dataclass(frozen=True)
class FaceAngle:
    """Head pose in degrees."""

    pitch: float
    yaw: float
    roll: float


@dataclass(frozen=True)
class DetectedFace:
    """A face reported by an external landmark detector."""

    bounding_box: BoundingBox
    confidence: float
    landmarks: LandmarkSet | None = None
    angle: FaceAngle | None = None


# ---------------------------------------------------------------------------
# Pixel buffers
# ---------------------------------------------------------------------------


class RawImageBuffer:
    """Immutable, contiguous HxWx3 uint8 RGB image.

    The backing array is owned by the buffer and marked read-only, so stages
    that transform pixels always allocate a new buffer.
    """

    __slots__ = ("_pixels",)

    channels: int = 3

    def __init__(self, pixels: NDArray[np.uint8]) -> None:
        if pixels.ndim != 3 or pixels.shape[2] != self.channels:
            raise InvalidImageError(f"Expected an HxWx{self.channels} array, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise InvalidImageError(f"Expected uint8 pixels, got {pixels.dtype}")
        owned = np.array(pixels, dtype=np.uint8, order="C", copy=True)
        owned.setflags(write=False)
        self._pixels = owned

    @classmethod
    def from_array(cls, pixels: NDArray[np.generic]) -> RawImageBuffer:
        """Build a buffer from any HxWx3 array, copying the data."""
        arr = np.asarray(pixels)
        if arr.dtype != np.uint8:
            if not np.issubdtype(arr.dtype, np.number):
                raise InvalidImageError(f"Unsupported pixel dtype {arr.dtype}")
            if arr.size and not np.isfinite(arr).all():
                raise InvalidImageError("Pixel values must be finite")
            if arr.size and (arr.min() < 0 or arr.max() > 255):
                raise InvalidImageError("Pixel values must be within [0, 255]")
            arr = np.rint(arr).astype(np.uint8)
        return cls(arr)

    @classmethod
    def from_bytes(cls, data: bytes, width: int, height: int, channels: int = 3) -> RawImageBuffer:
        """Build a buffer from packed row-major RGB bytes."""
        if channels != cls.channels:
            raise InvalidImageError(f"Only {cls.channels}-channel RGB data is supported")
        if width < 0 or height < 0:
            raise InvalidImageError(f"Invalid dimensions {width}x{height}")
        expected = width * height * channels
        if len(data) != expected:
            raise InvalidImageError(f"Expected {expected} bytes for {width}x{height}x{channels}, got {len(data)}")
        arr = np.frombuffer(data, dtype=np.uint8).reshape(height, width, channels)
        return cls(arr)

    @classmethod
    def filled(cls, width: int, height: int, color: RGB | tuple[int, int, int]) -> RawImageBuffer:
        """Build a uniform image of a single color."""
        rgb = (color.r, color.g, color.b) if isinstance(color, RGB) else color
        arr = np.empty((height, width, cls.channels), dtype=np.uint8)
        arr[:, :] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        return cls(arr)

    @classmethod
    def empty(cls) -> RawImageBuffer:
        return cls(np.zeros((0, 0, cls.channels), dtype=np.uint8))

    @property
    def pixels(self) -> NDArray[np.uint8]:
        """Read-only HxWx3 view of the pixel data."""
        return self._pixels

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.pixel_count == 0

    def __len__(self) -> int:
        return int(self._pixels.size)

    def to_bytes(self) -> bytes:
        return self._pixels.tobytes()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RawImageBuffer):
            return NotImplemented
        return self._pixels.shape == other._pixels.shape and bool(np.array_equal(self._pixels, other._pixels))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"RawImageBuffer(width={self.width}, height={self.height}, channels={self.channels})"


class SkinMask:
    """Per-pixel skin bitmap (0 or 255) parallel to an image."""

    __slots__ = ("_mask", "skin_pixel_count")

    def __init__(self, mask: NDArray[np.uint8]) -> None:
        if mask.ndim != 2:
            raise InvalidImageError(f"Expected an HxW mask, got shape {mask.shape}")
        owned = np.where(mask > 0, np.uint8(255), np.uint8(0)).astype(np.uint8)
        owned.setflags(write=False)
        self._mask = owned
        self.skin_pixel_count = int(np.count_nonzero(owned))

    @property
    def mask(self) -> NDArray[np.uint8]:
        return self._mask

    @property
    def width(self) -> int:
        return int(self._mask.shape[1])

    @property
    def height(self) -> int:
        return int(self._mask.shape[0])

    @property
    def skin_ratio(self) -> float:
        total = self.width * self.height
        return self.skin_pixel_count / total if total else 0.0

    def as_bool(self) -> NDArray[np.bool_]:
        return self._mask > 0

    def matches(self, image: RawImageBuffer) -> bool:
        """Whether the mask is parallel to ``image``."""
        return self.width == image.width and self.height == image.height

    def __repr__(self) -> str:
        return f"SkinMask(width={self.width}, height={self.height}, skin_ratio={self.skin_ratio:.3f})"


def finite_or(value: float, default: float) -> float:
    """Return ``value`` unless it is NaN or infinite."""
    return value if math.isfinite(value) else default
