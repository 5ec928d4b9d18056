"""Color profiling, perceptual distance and hex helpers.

All channels are 8-bit sRGB values in [0, 255]; no linearization happens
anywhere in the compiler.

Provides:
    - ColorProfile: luminance, saturation, value, lightness in [0, 1]
    - perceptual_distance: red-mean weighted squared RGB distance
    - hex_to_rgb / rgb_to_hex: ``#rrggbb`` conversion (lowercase)
    - mix_hex / lighten_hex / darken_hex: linear blends between hex colors

The weighted distance is

    (2 + rMean/256)·dR² + 4·dG² + (2 + (255 − rMean)/256)·dB²

with rMean the mean of the two red channels.  It is a cheap approximation
of perceived difference; it is *not* ΔE.

Usage:
    from autodraw.utils import color
    prof = color.compute_color_profile(255, 128, 0)
    d = color.perceptual_distance((10, 10, 10), (20, 10, 10))
"""

import math
import re
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

RGB = Tuple[int, int, int]

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")

# Rec.709 luma coefficients
LUMA_R = 0.2126
LUMA_G = 0.7152
LUMA_B = 0.0722


@dataclass(frozen=True)
class ColorProfile:
    """Derived perceptual attributes of an RGB color (all in [0, 1])."""

    luminance: float
    saturation: float
    value: float
    lightness: float


def compute_color_profile(r: float, g: float, b: float) -> ColorProfile:
    """Compute luminance, HSV saturation/value and HSL lightness.

    Parameters
    ----------
    r, g, b : float
        Channels in [0, 255]

    Returns
    -------
    ColorProfile
        Saturation is 0 for black (max channel 0).
    """
    rn = r / 255.0
    gn = g / 255.0
    bn = b / 255.0
    hi = max(rn, gn, bn)
    lo = min(rn, gn, bn)
    chroma = hi - lo
    saturation = 0.0 if hi == 0 else chroma / hi
    return ColorProfile(
        luminance=LUMA_R * rn + LUMA_G * gn + LUMA_B * bn,
        saturation=saturation,
        value=hi,
        lightness=(hi + lo) / 2.0,
    )


def luminance(r: float, g: float, b: float) -> float:
    """Rec.709 weighted sum on the 0-255 scale (used for palette ordering)."""
    return LUMA_R * r + LUMA_G * g + LUMA_B * b


def perceptual_distance(
    c1: Tuple[float, float, float],
    c2: Tuple[float, float, float],
) -> float:
    """Weighted squared distance between two RGB triples.

    Symmetric and zero for identical colors.
    """
    r1, g1, b1 = c1
    r2, g2, b2 = c2
    r_mean = (r1 + r2) / 2.0
    dr = r1 - r2
    dg = g1 - g2
    db = b1 - b2
    return (
        (2.0 + r_mean / 256.0) * dr * dr
        + 4.0 * dg * dg
        + (2.0 + (255.0 - r_mean) / 256.0) * db * db
    )


def perceptual_distance_np(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Vectorized perceptual_distance over trailing RGB axis.

    Parameters
    ----------
    a, b : np.ndarray
        Broadcastable arrays of shape (..., 3), any numeric dtype

    Returns
    -------
    np.ndarray
        float64 distances with the broadcast shape minus the last axis
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    r_mean = (a[..., 0] + b[..., 0]) / 2.0
    d = a - b
    return (
        (2.0 + r_mean / 256.0) * d[..., 0] ** 2
        + 4.0 * d[..., 1] ** 2
        + (2.0 + (255.0 - r_mean) / 256.0) * d[..., 2] ** 2
    )


def round_half_up(v: float) -> int:
    """Round to nearest integer, halves toward +inf."""
    return int(math.floor(v + 0.5))


def hex_to_rgb(hex_str: str) -> RGB:
    """Parse ``#rrggbb`` (leading ``#`` optional, any case).

    Raises
    ------
    ValueError
        If the string is not six hex digits
    """
    m = _HEX_RE.match(hex_str.strip()) if isinstance(hex_str, str) else None
    if m is None:
        raise ValueError(f"Invalid hex color: {hex_str!r} (expected '#rrggbb')")
    digits = m.group(1)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def rgb_to_hex(r: float, g: float, b: float) -> str:
    """Format channels as lowercase ``#rrggbb`` (rounded, clamped to [0, 255])."""
    chans = [max(0, min(255, round_half_up(c))) for c in (r, g, b)]
    return "#" + "".join(f"{c:02x}" for c in chans)


def mix_hex(base: str, target: str, amount: Union[int, float]) -> str:
    """Blend ``base`` toward ``target`` by ``amount`` (clamped to [0, 1])."""
    br, bg, bb = hex_to_rgb(base)
    tr, tg, tb = hex_to_rgb(target)
    t = max(0.0, min(1.0, float(amount)))
    inv = 1.0 - t
    return rgb_to_hex(br * inv + tr * t, bg * inv + tg * t, bb * inv + tb * t)


def lighten_hex(hex_str: str, amount: float) -> str:
    return mix_hex(hex_str, "#ffffff", amount)


def darken_hex(hex_str: str, amount: float) -> str:
    return mix_hex(hex_str, "#000000", amount)
