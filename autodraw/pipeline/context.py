"""Per-image pipeline context and command cache.

A ``PipelineContext`` owns everything derived from one ``PixelBuffer``:

    PixelBuffer ──► Palette ──► AssignmentMap ──► MaskSet
                     (frozen)    (per dither strength)

and compiles stroke commands on demand for a (style, surface, region)
combination.  Compilation is serialized by a lock, so concurrent callers on
the same context wait rather than race; artifacts are never mutated, only
replaced.

The last compiled command list is cached under a ``CacheKey``: a frozen
dataclass of typed fields (sizes, the full ``StyleConfig``, the region),
compared field by field.

Usage::

    ctx = PipelineContext(PixelBuffer.from_image(img), max_colors=64)
    result = ctx.compile(StyleConfig(), surface_size=(800, 600))
    for cmd in result.commands:
        surface.draw_segment(cmd)
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

import numpy as np

from autodraw.commands.operations import StrokeCommand
from autodraw.pipeline.buffer import PixelBuffer, Region
from autodraw.pipeline.dither import dither_assign
from autodraw.pipeline.insights import palette_usage
from autodraw.pipeline.masks import MaskSet, build_masks
from autodraw.pipeline.orderer import order_commands
from autodraw.pipeline.palette import Palette, build_palette
from autodraw.pipeline.planner import STROKE_DELAY_S, PlanMetrics, PlanResult, plan_strokes
from autodraw.utils.validators import MAX_COLOR_CAPACITY, StyleConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results and cache
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompileResult:
    """Ordered commands plus the plan they came from."""

    commands: tuple[StrokeCommand, ...]
    plan: PlanResult
    palette: Palette

    @property
    def metrics(self) -> PlanMetrics:
        return self.plan.metrics

    def __len__(self) -> int:
        return len(self.commands)


@dataclass(frozen=True)
class CacheKey:
    source_size: tuple[int, int]
    surface_size: tuple[float, float]
    style: StyleConfig
    region: Region | None


class CommandCache:
    """Single-slot cache of the most recent compile."""

    def __init__(self) -> None:
        self._key: CacheKey | None = None
        self._value: CompileResult | None = None
        self.hits = 0
        self.misses = 0

    def get(self, key: CacheKey) -> CompileResult | None:
        if self._key is not None and self._key == key:
            self.hits += 1
            return self._value
        self.misses += 1
        return None

    def put(self, key: CacheKey, value: CompileResult) -> None:
        self._key = key
        self._value = value

    def clear(self) -> None:
        self._key = None
        self._value = None


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class PipelineContext:
    """Owns one image's palette, assignment map and masks.

    Parameters
    ----------
    buffer : PixelBuffer
        Source image (read-only).
    max_colors : int
        Palette budget, clamped to [1, 1300].
    """

    def __init__(self, buffer: PixelBuffer, max_colors: int = MAX_COLOR_CAPACITY) -> None:
        self._buffer = buffer
        self._max_colors = max(1, min(int(max_colors), MAX_COLOR_CAPACITY))
        self._lock = threading.Lock()
        self._palette: Palette | None = None
        self._assignment: np.ndarray | None = None
        self._masks: MaskSet | None = None
        self._dither_strength: float | None = None
        self._cache = CommandCache()

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    @property
    def buffer(self) -> PixelBuffer:
        return self._buffer

    @property
    def max_colors(self) -> int:
        return self._max_colors

    @property
    def cache(self) -> CommandCache:
        return self._cache

    @property
    def palette(self) -> Palette:
        with self._lock:
            return self._ensure_palette()

    def assignment(self, dither_strength: float = 100.0) -> np.ndarray:
        """Assignment map for ``dither_strength`` (rebuilt when it changes)."""
        with self._lock:
            return self._ensure_assignment(dither_strength)[1]

    def masks(self, dither_strength: float = 100.0) -> MaskSet:
        with self._lock:
            return self._ensure_assignment(dither_strength)[2]

    def usage(self, dither_strength: float = 100.0) -> np.ndarray:
        """Pixel count per palette color for the current assignment."""
        with self._lock:
            palette, assignment, _ = self._ensure_assignment(dither_strength)
            return palette_usage(assignment, len(palette))

    def _ensure_palette(self) -> Palette:
        if self._palette is None:
            t0 = time.perf_counter()
            self._palette = build_palette(self._buffer, self._max_colors)
            logger.info(
                "Palette built: %d colors (max %d) in %.2fs",
                len(self._palette), self._max_colors, time.perf_counter() - t0,
            )
        return self._palette

    def _ensure_assignment(self, dither_strength: float) -> tuple[Palette, np.ndarray, MaskSet]:
        palette = self._ensure_palette()
        if (
            self._assignment is None
            or self._masks is None
            or self._dither_strength != dither_strength
        ):
            if self._assignment is not None:
                logger.info(
                    "Dither strength changed %s -> %s; rebuilding assignment",
                    self._dither_strength, dither_strength,
                )
            self._assignment = dither_assign(self._buffer, palette, dither_strength)
            self._masks = build_masks(self._buffer, self._assignment)
            self._dither_strength = dither_strength
            self._cache.clear()
        return palette, self._assignment, self._masks

    # ------------------------------------------------------------------
    # Compile
    # ------------------------------------------------------------------

    def compile(
        self,
        style: StyleConfig | None = None,
        surface_size: tuple[float, float] = (500.0, 500.0),
        region: Region | None = None,
    ) -> CompileResult:
        """Plan and order stroke commands for one surface/style/region.

        Returns the cached result when nothing relevant changed.  A region
        covering the whole surface is the same request as no region.
        """
        style = style or StyleConfig()
        if region is not None and region.is_full:
            region = None
        key = CacheKey(
            source_size=self._buffer.size,
            surface_size=(float(surface_size[0]), float(surface_size[1])),
            style=style,
            region=region,
        )

        with self._lock:
            palette, assignment, masks = self._ensure_assignment(style.dither_strength)
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Command cache hit (%d commands)", len(cached))
                return cached

            plan = plan_strokes(assignment, masks, palette, style, key.surface_size, region)
            commands = order_commands(plan.strokes, palette, plan.coverage, style.palette_order)
            result = CompileResult(commands=tuple(commands), plan=plan, palette=palette)
            self._cache.put(key, result)

        logger.info(
            "Compiled %d commands (~%.1fs at %.0fms/stroke)",
            len(result), result.metrics.estimated_duration_s, STROKE_DELAY_S * 1000,
        )
        return result

    def invalidate(self) -> None:
        """Drop the cached command list (artifacts are kept)."""
        with self._lock:
            self._cache.clear()


def compile_image(
    buffer: PixelBuffer,
    style: StyleConfig | None = None,
    surface_size: tuple[float, float] = (500.0, 500.0),
    region: Region | None = None,
    max_colors: int = MAX_COLOR_CAPACITY,
) -> CompileResult:
    """One-shot compile without keeping a context around."""
    return PipelineContext(buffer, max_colors=max_colors).compile(style, surface_size, region)
