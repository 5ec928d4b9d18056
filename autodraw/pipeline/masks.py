"""Detail and edge masks over an assignment map.

Detail
    A pixel is *detail* when it is assigned and the weighted RGB distance
    from its **original** color to any in-bounds 4-neighbor's original
    color exceeds ``DETAIL_THRESHOLD``.

Edge
    A pixel is *edge* when it is assigned and some in-bounds 4-neighbor is
    assigned to a different palette index.  The canvas border is never an
    edge by itself: out-of-bounds has no neighbor to differ from.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from autodraw.pipeline.buffer import SKIP, PixelBuffer
from autodraw.utils.color import perceptual_distance_np

DETAIL_THRESHOLD = 4200.0


@dataclass(frozen=True, eq=False)
class MaskSet:
    """Read-only (H, W) boolean masks derived from one assignment map."""

    detail: np.ndarray
    edge: np.ndarray


def _lock(a: np.ndarray) -> np.ndarray:
    a.flags.writeable = False
    return a


def detail_mask(buffer: PixelBuffer, assignment: np.ndarray) -> np.ndarray:
    """Mark assigned pixels with a strong local color gradient."""
    h, w = assignment.shape
    rgb = buffer.rgb.astype(np.float64)
    max_diff = np.zeros((h, w), dtype=np.float64)

    if w > 1:
        horiz = perceptual_distance_np(rgb[:, 1:], rgb[:, :-1])
        np.maximum(max_diff[:, 1:], horiz, out=max_diff[:, 1:])
        np.maximum(max_diff[:, :-1], horiz, out=max_diff[:, :-1])
    if h > 1:
        vert = perceptual_distance_np(rgb[1:, :], rgb[:-1, :])
        np.maximum(max_diff[1:, :], vert, out=max_diff[1:, :])
        np.maximum(max_diff[:-1, :], vert, out=max_diff[:-1, :])

    return _lock((assignment != SKIP) & (max_diff > DETAIL_THRESHOLD))


def edge_mask(assignment: np.ndarray) -> np.ndarray:
    """Mark assigned pixels bordering a differently-assigned pixel."""
    h, w = assignment.shape
    assigned = assignment != SKIP
    edge = np.zeros((h, w), dtype=bool)

    if w > 1:
        differs = (
            assigned[:, 1:] & assigned[:, :-1] & (assignment[:, 1:] != assignment[:, :-1])
        )
        edge[:, 1:] |= differs
        edge[:, :-1] |= differs
    if h > 1:
        differs = (
            assigned[1:, :] & assigned[:-1, :] & (assignment[1:, :] != assignment[:-1, :])
        )
        edge[1:, :] |= differs
        edge[:-1, :] |= differs

    return _lock(edge)


def build_masks(buffer: PixelBuffer, assignment: np.ndarray) -> MaskSet:
    if assignment.shape != (buffer.height, buffer.width):
        raise ValueError(
            f"Assignment shape {assignment.shape} does not match buffer "
            f"{buffer.height}x{buffer.width}"
        )
    return MaskSet(detail=detail_mask(buffer, assignment), edge=edge_mask(assignment))
