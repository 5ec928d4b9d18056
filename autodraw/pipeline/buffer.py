"""Pixel buffer, color samples and drawing regions.

The ``PixelBuffer`` is the single input of the compiler: an (H, W, 4)
uint8 RGBA array, row-major, that no stage ever writes to (the array is
flagged read-only on construction).

Transparency
------------
Pixels with alpha below ``TRANSPARENCY_THRESHOLD`` (16) are treated as
absent everywhere: they contribute no samples, receive the ``SKIP``
assignment, and never produce strokes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

TRANSPARENCY_THRESHOLD = 16
"""Alpha below this value means "not drawn"."""

SKIP = 0xFFFF
"""Assignment sentinel for transparent pixels."""


# ---------------------------------------------------------------------------
# Pixel buffer
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """Read-only RGBA raster.

    Parameters
    ----------
    rgba : np.ndarray
        Shape (H, W, 4), dtype uint8.  Copied and locked on construction.
    """

    rgba: np.ndarray

    def __post_init__(self) -> None:
        arr = np.asarray(self.rgba)
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"PixelBuffer expects shape (H, W, 4), got {arr.shape}")
        if arr.dtype != np.uint8:
            raise ValueError(f"PixelBuffer expects dtype uint8, got {arr.dtype}")
        arr = np.array(arr, dtype=np.uint8, copy=True, order="C")
        arr.flags.writeable = False
        object.__setattr__(self, "rgba", arr)

    @classmethod
    def from_bytes(cls, data: bytes, width: int, height: int) -> PixelBuffer:
        """Build from a flat RGBA byte string of length ``width*height*4``."""
        expected = width * height * 4
        if width < 0 or height < 0 or len(data) != expected:
            raise ValueError(
                f"Expected {expected} bytes for {width}x{height} RGBA, got {len(data)}"
            )
        arr = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)
        return cls(arr)

    @classmethod
    def from_image(cls, img: Image.Image) -> PixelBuffer:
        """Build from any Pillow image (converted to RGBA)."""
        return cls(np.asarray(img.convert("RGBA"), dtype=np.uint8))

    @property
    def width(self) -> int:
        return int(self.rgba.shape[1])

    @property
    def height(self) -> int:
        return int(self.rgba.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        """(width, height) in pixels."""
        return self.width, self.height

    @property
    def rgb(self) -> np.ndarray:
        """Read-only (H, W, 3) view."""
        return self.rgba[..., :3]

    @property
    def alpha(self) -> np.ndarray:
        """Read-only (H, W) view."""
        return self.rgba[..., 3]

    @property
    def opaque_mask(self) -> np.ndarray:
        """True where alpha >= TRANSPARENCY_THRESHOLD."""
        return self.alpha >= TRANSPARENCY_THRESHOLD

    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.rgba.shape == other.rgba.shape and bool(np.array_equal(self.rgba, other.rgba))

    __hash__ = None  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# Color samples
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ColorSamples:
    """Distinct opaque colors with their pixel counts.

    ``rgb`` is (N, 3) int64, ``counts`` is (N,) int64.  Rows are ordered by
    first occurrence in a row-major scan, so construction is deterministic.
    """

    rgb: np.ndarray
    counts: np.ndarray

    def __len__(self) -> int:
        return int(self.counts.shape[0])

    @property
    def total(self) -> int:
        return int(self.counts.sum())


def collect_samples(buffer: PixelBuffer) -> ColorSamples:
    """Count distinct RGB triples over opaque pixels."""
    flat = buffer.rgba.reshape(-1, 4)
    opaque = flat[flat[:, 3] >= TRANSPARENCY_THRESHOLD]
    if opaque.shape[0] == 0:
        return ColorSamples(
            rgb=np.zeros((0, 3), dtype=np.int64),
            counts=np.zeros((0,), dtype=np.int64),
        )

    rgb = opaque[:, :3].astype(np.int64)
    keys = (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]
    uniq, first, counts = np.unique(keys, return_index=True, return_counts=True)
    order = np.argsort(first, kind="stable")
    uniq = uniq[order]
    samples = np.stack([(uniq >> 16) & 0xFF, (uniq >> 8) & 0xFF, uniq & 0xFF], axis=1)
    logger.debug(
        "Collected %d distinct colors from %d opaque pixels", len(uniq), opaque.shape[0]
    )
    return ColorSamples(rgb=samples.astype(np.int64), counts=counts[order].astype(np.int64))


# ---------------------------------------------------------------------------
# Region
# ---------------------------------------------------------------------------


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def _finite_or(v: object, default: float) -> float:
    try:
        f = float(v)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return f if math.isfinite(f) else default


@dataclass(frozen=True)
class Region:
    """Normalized sub-rectangle of the drawing surface.

    Invariant: all fields in [0, 1], ``x + width <= 1``, ``y + height <= 1``.
    Build through ``Region.clamped`` to get that guarantee from any input.
    """

    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0

    def __post_init__(self) -> None:
        for name in ("x", "y", "width", "height"):
            v = getattr(self, name)
            if not 0.0 <= v <= 1.0:
                raise ValueError(f"Region.{name} must be in [0, 1], got {v}")
        if self.x + self.width > 1.0 + 1e-9 or self.y + self.height > 1.0 + 1e-9:
            raise ValueError(f"Region {self} extends past the surface")

    @classmethod
    def clamped(
        cls,
        x: object = 0.0,
        y: object = 0.0,
        width: object = 1.0,
        height: object = 1.0,
    ) -> Region:
        """Coerce arbitrary values into a valid region (never raises).

        Non-finite or non-numeric values take the full-surface default.
        """
        w = _clamp(_finite_or(width, 1.0), 0.0, 1.0)
        h = _clamp(_finite_or(height, 1.0), 0.0, 1.0)
        nx = _clamp(_finite_or(x, 0.0), 0.0, 1.0 - w)
        ny = _clamp(_finite_or(y, 0.0), 0.0, 1.0 - h)
        return cls(x=nx, y=ny, width=w, height=h)

    @property
    def is_full(self) -> bool:
        return self.x == 0.0 and self.y == 0.0 and self.width == 1.0 and self.height == 1.0
