"""Palette assignment: nearest-color and serpentine Floyd–Steinberg.

Both functions map every pixel of a ``PixelBuffer`` to an index into a
frozen ``Palette`` and return a read-only (H, W) uint16 ``AssignmentMap``.
Transparent pixels (alpha < 16) get ``SKIP``.

Error diffusion
---------------
Rows are scanned alternately left→right (even rows) and right→left (odd
rows).  With "forward" meaning the scan direction, the quantization error
of each pixel is spread as

    forward            7/16
    back-diagonal down 3/16
    down               5/16
    forward-diagonal   1/16

each scaled by ``strength / 100``.  Error never flows out of bounds or into
transparent pixels.  Accumulated channels are clamped to [0, 255] before
matching; the error is measured from the clamped value.

Strength <= 0 short-circuits to the vectorized nearest-color path, which
is exactly what the diffusion loop would produce with zero weights.
"""

from __future__ import annotations

import logging
import time

import numpy as np

from autodraw.pipeline.buffer import SKIP, TRANSPARENCY_THRESHOLD, PixelBuffer
from autodraw.pipeline.palette import Palette
from autodraw.utils.color import perceptual_distance_np

logger = logging.getLogger(__name__)

# (dx in scan direction, dy, weight)
_DIFFUSION = (
    (1, 0, 7.0 / 16.0),
    (-1, 1, 3.0 / 16.0),
    (0, 1, 5.0 / 16.0),
    (1, 1, 1.0 / 16.0),
)

# Upper bound on pixels*colors per distance block
_BLOCK_CELLS = 4_000_000


def _empty_assignment(height: int, width: int) -> np.ndarray:
    out = np.full((height, width), SKIP, dtype=np.uint16)
    out.flags.writeable = False
    return out


def nearest_indices(rgb: np.ndarray, palette: Palette) -> np.ndarray:
    """Index of the nearest palette color for each row of an (N, 3) array.

    Ties resolve to the lowest palette index.
    """
    pal = palette.rgb_array
    rgb = np.asarray(rgb, dtype=np.float64).reshape(-1, 3)
    out = np.empty(rgb.shape[0], dtype=np.intp)
    step = max(1, _BLOCK_CELLS // max(1, len(palette)))
    for start in range(0, rgb.shape[0], step):
        block = rgb[start:start + step]
        dist = perceptual_distance_np(block[:, None, :], pal[None, :, :])
        out[start:start + step] = np.argmin(dist, axis=1)
    return out


def nearest_assignment(buffer: PixelBuffer, palette: Palette) -> np.ndarray:
    """Assign each opaque pixel its nearest palette color (no diffusion)."""
    h, w = buffer.height, buffer.width
    if len(palette) == 0 or buffer.is_empty():
        return _empty_assignment(h, w)

    out = np.full((h, w), SKIP, dtype=np.uint16)
    opaque = buffer.opaque_mask
    if opaque.any():
        out[opaque] = nearest_indices(buffer.rgb[opaque], palette).astype(np.uint16)
    out.flags.writeable = False
    return out


def dither_assign(
    buffer: PixelBuffer,
    palette: Palette,
    strength: float = 100.0,
) -> np.ndarray:
    """Serpentine Floyd–Steinberg assignment.

    Parameters
    ----------
    buffer : PixelBuffer
        Source image (never modified).
    palette : Palette
        Frozen palette to match against.
    strength : float
        Diffusion strength percent; 100 is classic Floyd–Steinberg, 0 disables.

    Returns
    -------
    np.ndarray
        Read-only (H, W) uint16 assignment map.  Deterministic for equal inputs.
    """
    h, w = buffer.height, buffer.width
    if len(palette) == 0 or buffer.is_empty():
        return _empty_assignment(h, w)

    scale = float(strength) / 100.0
    if scale <= 0.0:
        return nearest_assignment(buffer, palette)

    t0 = time.perf_counter()
    acc = buffer.rgb.astype(np.float64)  # writable copy
    alpha = np.array(buffer.alpha)
    drawable = alpha >= TRANSPARENCY_THRESHOLD
    pal = palette.rgb_array
    pal_r, pal_g, pal_b = pal[:, 0], pal[:, 1], pal[:, 2]
    out = np.full((h, w), SKIP, dtype=np.uint16)

    weights = [(dx, dy, wgt * scale) for dx, dy, wgt in _DIFFUSION]

    for y in range(h):
        direction = 1 if y % 2 == 0 else -1
        xs = range(w) if direction == 1 else range(w - 1, -1, -1)
        row_drawable = drawable[y]
        for x in xs:
            if not row_drawable[x]:
                continue
            r = min(255.0, max(0.0, acc[y, x, 0]))
            g = min(255.0, max(0.0, acc[y, x, 1]))
            b = min(255.0, max(0.0, acc[y, x, 2]))

            r_mean = (r + pal_r) / 2.0
            dist = (
                (2.0 + r_mean / 256.0) * (r - pal_r) ** 2
                + 4.0 * (g - pal_g) ** 2
                + (2.0 + (255.0 - r_mean) / 256.0) * (b - pal_b) ** 2
            )
            idx = int(np.argmin(dist))
            out[y, x] = idx

            err_r = r - pal_r[idx]
            err_g = g - pal_g[idx]
            err_b = b - pal_b[idx]
            if err_r == 0.0 and err_g == 0.0 and err_b == 0.0:
                continue

            for dx, dy, wgt in weights:
                nx = x + dx * direction
                ny = y + dy
                if nx < 0 or nx >= w or ny >= h or not drawable[ny, nx]:
                    continue
                acc[ny, nx, 0] += err_r * wgt
                acc[ny, nx, 1] += err_g * wgt
                acc[ny, nx, 2] += err_b * wgt

    out.flags.writeable = False
    logger.debug(
        "Dithered %dx%d against %d colors (strength %.0f%%) in %.2fs",
        w, h, len(palette), strength, time.perf_counter() - t0,
    )
    return out
