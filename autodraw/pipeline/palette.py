"""Median-cut palette construction.

Reduces the distinct opaque colors of a ``PixelBuffer`` to at most K
representative colors.

Algorithm
---------
1. Start with one box holding every sample.
2. Repeatedly stable-sort the boxes by score (descending) and split the
   first box that holds at least two samples; append its low half, then its
   high half.  Boxes with a single sample stay in the list but are never
   picked again.
3. Stop once there are ``min(K, n_samples)`` boxes or nothing is splittable.
4. Each box becomes the population-weighted mean of its samples.

Box score is ``max(rRange, gRange, bRange, 1) * ln(population + 1)``, so
wide *and* heavily populated boxes split first.  The split is on the
population median along the widest channel (ties prefer green, then blue),
falling back to an index split at ``ceil(n / 2)`` when one side would be
empty.

No opaque samples yields the single-color fallback ``[#000000]``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import cached_property

import numpy as np

from autodraw.pipeline.buffer import ColorSamples, PixelBuffer, collect_samples
from autodraw.utils.color import (
    ColorProfile,
    compute_color_profile,
    luminance,
    rgb_to_hex,
    round_half_up,
)
from autodraw.utils.validators import MAX_COLOR_CAPACITY

logger = logging.getLogger(__name__)

# Channel column order in ColorSamples.rgb
_R, _G, _B = 0, 1, 2


# ---------------------------------------------------------------------------
# Palette value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaletteColor:
    """One palette entry; ``hex`` is lowercase ``#rrggbb``."""

    r: int
    g: int
    b: int
    hex: str

    @classmethod
    def from_rgb(cls, r: int, g: int, b: int) -> PaletteColor:
        return cls(r=int(r), g=int(g), b=int(b), hex=rgb_to_hex(r, g, b))

    @property
    def rgb(self) -> tuple[int, int, int]:
        return self.r, self.g, self.b

    @property
    def profile(self) -> ColorProfile:
        return compute_color_profile(self.r, self.g, self.b)

    @property
    def luminance(self) -> float:
        """Rec.709 luminance on the 0-255 scale."""
        return luminance(self.r, self.g, self.b)


FALLBACK_COLOR = PaletteColor(r=0, g=0, b=0, hex="#000000")


@dataclass(frozen=True)
class Palette:
    """Immutable ordered color list; index i is assignment value i."""

    colors: tuple[PaletteColor, ...]

    def __len__(self) -> int:
        return len(self.colors)

    def __getitem__(self, i: int) -> PaletteColor:
        return self.colors[i]

    def __iter__(self):
        return iter(self.colors)

    @cached_property
    def rgb_array(self) -> np.ndarray:
        """(K, 3) float64 array, read-only."""
        arr = np.array([c.rgb for c in self.colors], dtype=np.float64).reshape(-1, 3)
        arr.flags.writeable = False
        return arr

    @property
    def hexes(self) -> list[str]:
        return [c.hex for c in self.colors]

    @classmethod
    def fallback(cls) -> Palette:
        return cls(colors=(FALLBACK_COLOR,))

    @classmethod
    def from_hex(cls, hexes: list[str]) -> Palette:
        """Build from ``#rrggbb`` strings (mostly for tests and replays)."""
        from autodraw.utils.color import hex_to_rgb

        return cls(colors=tuple(PaletteColor.from_rgb(*hex_to_rgb(h)) for h in hexes))


# ---------------------------------------------------------------------------
# Median cut
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ColorBox:
    """Subset of sample rows plus the stats the splitter needs."""

    indices: np.ndarray
    population: int
    r_range: int
    g_range: int
    b_range: int
    score: float

    @classmethod
    def build(cls, indices: np.ndarray, samples: ColorSamples) -> ColorBox:
        rgb = samples.rgb[indices]
        spans = rgb.max(axis=0) - rgb.min(axis=0)
        population = int(samples.counts[indices].sum())
        max_range = max(int(spans.max()), 1)
        return cls(
            indices=indices,
            population=population,
            r_range=int(spans[_R]),
            g_range=int(spans[_G]),
            b_range=int(spans[_B]),
            score=max_range * math.log(population + 1),
        )

    @property
    def splittable(self) -> bool:
        return self.indices.shape[0] >= 2

    @property
    def split_channel(self) -> int:
        if self.g_range >= self.r_range and self.g_range >= self.b_range:
            return _G
        if self.b_range >= self.r_range and self.b_range >= self.g_range:
            return _B
        return _R


def split_box(box: ColorBox, samples: ColorSamples) -> tuple[ColorBox, ColorBox]:
    """Split a box on the population median of its widest channel.

    Both halves are non-empty for any box with two or more samples.
    """
    channel = box.split_channel
    order = np.argsort(samples.rgb[box.indices, channel], kind="stable")
    ordered = box.indices[order]
    counts = samples.counts[ordered]

    # Population strictly before each sample decides its side
    before = np.concatenate(([0], np.cumsum(counts)[:-1]))
    low_mask = before < counts.sum() / 2.0
    low = ordered[low_mask]
    high = ordered[~low_mask]

    if low.shape[0] == 0 or high.shape[0] == 0:
        half = math.ceil(ordered.shape[0] / 2)
        low, high = ordered[:half], ordered[half:]

    return ColorBox.build(low, samples), ColorBox.build(high, samples)


def _box_color(box: ColorBox, samples: ColorSamples) -> PaletteColor:
    rgb = samples.rgb[box.indices].astype(np.float64)
    weights = samples.counts[box.indices].astype(np.float64)
    total = weights.sum() or 1.0
    mean = (rgb * weights[:, None]).sum(axis=0) / total
    return PaletteColor.from_rgb(*(round_half_up(float(c)) for c in mean))


def build_palette_from_samples(samples: ColorSamples, max_colors: int) -> Palette:
    """Median-cut ``samples`` down to at most ``max_colors`` colors.

    Parameters
    ----------
    samples : ColorSamples
        Distinct opaque colors with counts.
    max_colors : int
        Budget K; clamped to [1, MAX_COLOR_CAPACITY].

    Returns
    -------
    Palette
        ``1 <= len <= min(K, len(samples))``, or the black fallback when
        there are no samples.  Never raises.
    """
    if len(samples) == 0:
        logger.info("No opaque pixels; using fallback palette %s", FALLBACK_COLOR.hex)
        return Palette.fallback()

    budget = max(1, min(int(max_colors), MAX_COLOR_CAPACITY))
    target = min(budget, len(samples))

    boxes = [ColorBox.build(np.arange(len(samples)), samples)]
    while len(boxes) < target:
        # sorted() is stable: equal scores keep insertion order
        boxes = sorted(boxes, key=lambda b: -b.score)
        pick = next((i for i, b in enumerate(boxes) if b.splittable), None)
        if pick is None:
            break
        box = boxes.pop(pick)
        low, high = split_box(box, samples)
        boxes.append(low)
        boxes.append(high)

    palette = Palette(colors=tuple(_box_color(b, samples) for b in boxes))
    logger.debug(
        "Median cut: %d samples -> %d colors (budget %d)", len(samples), len(palette), budget
    )
    return palette


def build_palette(buffer: PixelBuffer, max_colors: int = MAX_COLOR_CAPACITY) -> Palette:
    """Collect samples from ``buffer`` and median-cut them."""
    return build_palette_from_samples(collect_samples(buffer), max_colors)
