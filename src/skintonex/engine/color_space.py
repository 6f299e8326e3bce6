"""sRGB / XYZ / CIE Lab conversions and color-difference metrics.

All conversions use the D65 reference white. XYZ values are on the 0-100
scale, RGB on 0-255.
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

import numpy as np

from skintonex.engine.constants import D65_WHITE_POINT, D65_XYZ, SRGB_TO_XYZ_MATRIX, XYZ_TO_SRGB_MATRIX
from skintonex.engine.types import RGB, Chromaticity, LabColor

if TYPE_CHECKING:
    from collections.abc import Iterable

    from numpy.typing import ArrayLike, NDArray

_LAB_EPSILON = 216.0 / 24389.0
_LAB_KAPPA = 24389.0 / 27.0
_HEX_PATTERN = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

# ---------------------------------------------------------------------------
# Companding
# ---------------------------------------------------------------------------


def srgb_to_linear(values: ArrayLike) -> NDArray[np.float64]:
    """Inverse sRGB companding for values on the 0-1 scale."""
    v = np.asarray(values, dtype=np.float64)
    return np.where(v <= 0.04045, v / 12.92, ((v + 0.055) / 1.055) ** 2.4)


def linear_to_srgb(values: ArrayLike) -> NDArray[np.float64]:
    """sRGB companding for linear values on the 0-1 scale."""
    v = np.clip(np.asarray(values, dtype=np.float64), 0.0, None)
    return np.where(v <= 0.0031308, v * 12.92, 1.055 * v ** (1.0 / 2.4) - 0.055)


# ---------------------------------------------------------------------------
# RGB <-> XYZ <-> Lab
# ---------------------------------------------------------------------------


def rgb_to_xyz(r: float, g: float, b: float) -> tuple[float, float, float]:
    """Convert an sRGB triple (0-255) to XYZ (0-100)."""
    rgb = np.clip(np.array([r, g, b], dtype=np.float64), 0.0, 255.0) / 255.0
    xyz = SRGB_TO_XYZ_MATRIX @ srgb_to_linear(rgb) * 100.0
    return float(xyz[0]), float(xyz[1]), float(xyz[2])


def xyz_to_rgb(x: float, y: float, z: float) -> RGB:
    """Convert XYZ (0-100) to sRGB (0-255), clamped but not rounded."""
    linear = XYZ_TO_SRGB_MATRIX @ (np.array([x, y, z], dtype=np.float64) / 100.0)
    rgb = np.clip(linear_to_srgb(linear) * 255.0, 0.0, 255.0)
    return RGB(r=float(rgb[0]), g=float(rgb[1]), b=float(rgb[2]))


def _lab_f(t: float) -> float:
    return t ** (1.0 / 3.0) if t > _LAB_EPSILON else (_LAB_KAPPA * t + 16.0) / 116.0


def _lab_f_inverse(f: float) -> float:
    cubed = f**3
    return cubed if cubed > _LAB_EPSILON else (116.0 * f - 16.0) / _LAB_KAPPA


def xyz_to_lab(x: float, y: float, z: float) -> LabColor:
    fx = _lab_f(x / D65_XYZ[0])
    fy = _lab_f(y / D65_XYZ[1])
    fz = _lab_f(z / D65_XYZ[2])
    return LabColor(L=116.0 * fy - 16.0, a=500.0 * (fx - fy), b=200.0 * (fy - fz))


def lab_to_xyz(lab: LabColor) -> tuple[float, float, float]:
    fy = (lab.L + 16.0) / 116.0
    fx = fy + lab.a / 500.0
    fz = fy - lab.b / 200.0
    yr = fy**3 if lab.L > _LAB_KAPPA * _LAB_EPSILON else lab.L / _LAB_KAPPA
    return _lab_f_inverse(fx) * D65_XYZ[0], yr * D65_XYZ[1], _lab_f_inverse(fz) * D65_XYZ[2]


def rgb_to_lab(r: float, g: float, b: float) -> LabColor:
    """Convert an sRGB triple (0-255) to CIE Lab."""
    return xyz_to_lab(*rgb_to_xyz(r, g, b))


def lab_to_rgb(lab: LabColor) -> RGB:
    """Convert CIE Lab to an integral, clamped sRGB triple."""
    rgb = xyz_to_rgb(*lab_to_xyz(lab))
    return RGB(r=float(round(rgb.r)), g=float(round(rgb.g)), b=float(round(rgb.b)))


# ---------------------------------------------------------------------------
# Hex strings
# ---------------------------------------------------------------------------


def hex_to_rgb(hex_color: str) -> RGB:
    """Parse ``#RRGGBB`` or ``#RGB`` (leading ``#`` optional).

    Raises:
        ValueError: If the string is not a hex color.
    """
    match = _HEX_PATTERN.match(hex_color.strip())
    if match is None:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return RGB(r=float(int(digits[0:2], 16)), g=float(int(digits[2:4], 16)), b=float(int(digits[4:6], 16)))


def rgb_to_hex(rgb: RGB) -> str:
    channels = (int(np.clip(round(c), 0, 255)) for c in (rgb.r, rgb.g, rgb.b))
    return "#" + "".join(f"{c:02X}" for c in channels)


def hex_to_lab(hex_color: str) -> LabColor:
    rgb = hex_to_rgb(hex_color)
    return rgb_to_lab(rgb.r, rgb.g, rgb.b)


def lab_to_hex(lab: LabColor) -> str:
    return rgb_to_hex(lab_to_rgb(lab))


# ---------------------------------------------------------------------------
# Chromaticity
# ---------------------------------------------------------------------------


def xyz_to_chromaticity(x: float, y: float, z: float) -> Chromaticity:
    """xy chromaticity; a black stimulus maps to the D65 white point."""
    total = x + y + z
    if total <= 0.0 or not math.isfinite(total):
        return D65_WHITE_POINT
    return Chromaticity(x=x / total, y=y / total)


def rgb_to_chromaticity(rgb: RGB) -> Chromaticity:
    return xyz_to_chromaticity(*rgb_to_xyz(rgb.r, rgb.g, rgb.b))


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------


def calculate_chroma(lab: LabColor) -> float:
    return math.hypot(lab.a, lab.b)


def calculate_hue(lab: LabColor) -> float:
    """Hue angle in degrees, normalized to [0, 360)."""
    hue = math.degrees(math.atan2(lab.b, lab.a))
    return hue + 360.0 if hue < 0 else hue


def calculate_ita(lab: LabColor) -> float:
    """Individual typology angle in degrees: ``atan((L - 50) / b)``."""
    if lab.b == 0:
        if lab.L > 50:
            return 90.0
        if lab.L < 50:
            return -90.0
        return 0.0
    return math.degrees(math.atan((lab.L - 50.0) / lab.b))


# ---------------------------------------------------------------------------
# Color difference
# ---------------------------------------------------------------------------


def calculate_lab_distance(lab1: LabColor, lab2: LabColor) -> float:
    """CIE76 color difference (Euclidean distance in Lab)."""
    return math.sqrt((lab1.L - lab2.L) ** 2 + (lab1.a - lab2.a) ** 2 + (lab1.b - lab2.b) ** 2)


def calculate_ciede2000(
    lab1: LabColor,
    lab2: LabColor,
    k_l: float = 1.0,
    k_c: float = 1.0,
    k_h: float = 1.0,
) -> float:
    """CIEDE2000 color difference (Sharma, Wu & Dalal, 2005).

    Args:
        lab1: First color.
        lab2: Second color.
        k_l: Lightness parametric weight.
        k_c: Chroma parametric weight.
        k_h: Hue parametric weight.

    Returns:
        The perceptual difference, symmetric in its two color arguments.
    """
    c1 = math.hypot(lab1.a, lab1.b)
    c2 = math.hypot(lab2.a, lab2.b)
    c_bar7 = ((c1 + c2) / 2.0) ** 7
    g = 0.5 * (1.0 - math.sqrt(c_bar7 / (c_bar7 + 25.0**7)))

    a1p = (1.0 + g) * lab1.a
    a2p = (1.0 + g) * lab2.a
    c1p = math.hypot(a1p, lab1.b)
    c2p = math.hypot(a2p, lab2.b)
    h1p = 0.0 if a1p == 0 and lab1.b == 0 else math.degrees(math.atan2(lab1.b, a1p)) % 360.0
    h2p = 0.0 if a2p == 0 and lab2.b == 0 else math.degrees(math.atan2(lab2.b, a2p)) % 360.0

    delta_lp = lab2.L - lab1.L
    delta_cp = c2p - c1p
    chroma_product = c1p * c2p
    if chroma_product == 0:
        delta_hp = 0.0
    elif abs(h2p - h1p) <= 180.0:
        delta_hp = h2p - h1p
    elif h2p - h1p > 180.0:
        delta_hp = h2p - h1p - 360.0
    else:
        delta_hp = h2p - h1p + 360.0
    delta_big_hp = 2.0 * math.sqrt(chroma_product) * math.sin(math.radians(delta_hp / 2.0))

    l_bar_p = (lab1.L + lab2.L) / 2.0
    c_bar_p = (c1p + c2p) / 2.0
    if chroma_product == 0:
        h_bar_p = h1p + h2p
    elif abs(h1p - h2p) <= 180.0:
        h_bar_p = (h1p + h2p) / 2.0
    elif h1p + h2p < 360.0:
        h_bar_p = (h1p + h2p + 360.0) / 2.0
    else:
        h_bar_p = (h1p + h2p - 360.0) / 2.0

    t = (
        1.0
        - 0.17 * math.cos(math.radians(h_bar_p - 30.0))
        + 0.24 * math.cos(math.radians(2.0 * h_bar_p))
        + 0.32 * math.cos(math.radians(3.0 * h_bar_p + 6.0))
        - 0.20 * math.cos(math.radians(4.0 * h_bar_p - 63.0))
    )
    delta_theta = 30.0 * math.exp(-(((h_bar_p - 275.0) / 25.0) ** 2))
    c_bar_p7 = c_bar_p**7
    r_c = 2.0 * math.sqrt(c_bar_p7 / (c_bar_p7 + 25.0**7))
    l_offset = (l_bar_p - 50.0) ** 2
    s_l = 1.0 + 0.015 * l_offset / math.sqrt(20.0 + l_offset)
    s_c = 1.0 + 0.045 * c_bar_p
    s_h = 1.0 + 0.015 * c_bar_p * t
    r_t = -math.sin(math.radians(2.0 * delta_theta)) * r_c

    l_term = delta_lp / (k_l * s_l)
    c_term = delta_cp / (k_c * s_c)
    h_term = delta_big_hp / (k_h * s_h)
    return math.sqrt(max(0.0, l_term**2 + c_term**2 + h_term**2 + r_t * c_term * h_term))


def average_lab(colors: Iterable[LabColor]) -> LabColor:
    """Component-wise mean of Lab colors.

    Raises:
        ValueError: If ``colors`` is empty.
    """
    values = [(c.L, c.a, c.b) for c in colors]
    if not values:
        raise ValueError("Cannot average an empty sequence of Lab colors")
    mean = np.mean(np.array(values, dtype=np.float64), axis=0)
    return LabColor(L=float(mean[0]), a=float(mean[1]), b=float(mean[2]))
