"""Palette usage statistics for reports and CLI summaries."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from autodraw.pipeline.buffer import SKIP
from autodraw.pipeline.palette import Palette
from autodraw.utils.color import darken_hex, lighten_hex

TOP_COLORS = 4


@dataclass(frozen=True)
class DominantColor:
    index: int
    hex: str
    percent: float


@dataclass(frozen=True)
class AccentShades:
    """Dominant color plus a darker and a softer variant."""

    accent: str
    dark: str
    soft: str
    ambient: str


def palette_usage(assignment: np.ndarray, palette_size: int) -> np.ndarray:
    """Pixel count per palette index (SKIP pixels ignored)."""
    flat = assignment.reshape(-1)
    assigned = flat[flat != SKIP].astype(np.int64)
    assigned = assigned[assigned < palette_size]
    return np.bincount(assigned, minlength=palette_size)[:palette_size]


def dominant_index(usage: np.ndarray) -> int:
    """Index of the most used color; first one wins ties, 0 when empty."""
    if usage.size == 0:
        return 0
    return int(np.argmax(usage))


def dominant_colors(
    palette: Palette,
    usage: np.ndarray,
    top: int = TOP_COLORS,
) -> list[DominantColor]:
    """The ``top`` most used colors with their share of assigned pixels (%)."""
    total = float(usage.sum()) or 1.0
    ranked = [
        DominantColor(index=i, hex=c.hex, percent=float(usage[i]) / total * 100.0 if i < usage.size else 0.0)
        for i, c in enumerate(palette)
    ]
    ranked.sort(key=lambda d: -d.percent)
    return ranked[:top]


def accent_shades(palette: Palette, usage: np.ndarray) -> AccentShades:
    """Derive display shades from the dominant palette color."""
    accent = palette[dominant_index(usage)].hex if len(palette) else "#000000"
    return AccentShades(
        accent=accent,
        dark=darken_hex(accent, 0.35),
        soft=lighten_hex(accent, 0.75),
        ambient=lighten_hex(accent, 0.9),
    )
