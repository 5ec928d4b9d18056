"""Stroke planning: assignment runs → normalized stroke geometries.

Every row of the assignment map is split into maximal runs of one palette
index.  Each run becomes a fan of horizontal *lane* strokes plus optional
accent layers, all computed in surface pixels and then normalized.

Layers per run (in emission order)
----------------------------------
1. Lanes: ``laneCount`` parallel strokes spanning the padded run.
2. Micro accent (short runs) **or** detail offset stroke, never both.
3. Edge center stroke when the run touches a color boundary.
4. Glaze pair above/below bright runs (value > 0.62).
5. Echo pair around detail or edge runs.
6. Diagonal weave on saturated runs (opt-in).

Surface mapping
---------------
The source is scaled uniformly to fit the target rectangle (the whole
surface, or a clamped ``Region``) and centered in it; ``scale`` is surface
pixels per source pixel.  Lane spacing, padding and accent offsets are all
derived from ``scale`` and the ``StyleConfig`` (see ``LaneModel``).

Coverage
--------
Each palette index accumulates ``run length × lane count`` plus per-layer
extras; the orderer uses it to rank palette groups.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from autodraw.commands.operations import COORD_DECIMALS, PlannedStroke, StrokePhase
from autodraw.pipeline.buffer import SKIP, Region
from autodraw.pipeline.masks import MaskSet
from autodraw.pipeline.palette import Palette
from autodraw.utils.color import round_half_up
from autodraw.utils.validators import DetailMode, StyleConfig

logger = logging.getLogger(__name__)

STROKE_DELAY_S = 0.008
"""Nominal per-stroke cadence used for duration estimates."""

GLAZE_VALUE_THRESHOLD = 0.62
WEAVE_SATURATION_THRESHOLD = 0.4
DEGENERATE_EPS = 1e-5
NUDGE_PX = 0.75


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


# ---------------------------------------------------------------------------
# Surface layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SurfaceLayout:
    """Placement of the scaled source on the drawing surface (pixels)."""

    board_width: float
    board_height: float
    target_x: float
    target_y: float
    target_width: float
    target_height: float
    scale: float
    offset_x: float
    offset_y: float
    selection_active: bool

    @classmethod
    def compute(
        cls,
        source_size: tuple[int, int],
        surface_size: tuple[float, float],
        region: Region | None = None,
    ) -> SurfaceLayout:
        """Fit ``source_size`` into ``region`` of a ``surface_size`` board.

        Both sizes are (width, height) and must be positive.
        """
        src_w, src_h = source_size
        board_w, board_h = float(surface_size[0]), float(surface_size[1])

        if region is not None:
            norm_w = _clamp(region.width, 1.0 / max(1.0, board_w), 1.0)
            norm_h = _clamp(region.height, 1.0 / max(1.0, board_h), 1.0)
            norm_x = _clamp(region.x, 0.0, 1.0 - norm_w)
            norm_y = _clamp(region.y, 0.0, 1.0 - norm_h)
            target_w = max(1.0, norm_w * board_w)
            target_h = max(1.0, norm_h * board_h)
            target_x = _clamp(norm_x * board_w, 0.0, max(0.0, board_w - target_w))
            target_y = _clamp(norm_y * board_h, 0.0, max(0.0, board_h - target_h))
        else:
            target_x = target_y = 0.0
            target_w, target_h = board_w, board_h

        scale = min(target_w / src_w, target_h / src_h)
        draw_w = src_w * scale
        draw_h = src_h * scale
        offset_x = _clamp(target_x + (target_w - draw_w) / 2.0, 0.0, max(0.0, board_w - draw_w))
        offset_y = _clamp(target_y + (target_h - draw_h) / 2.0, 0.0, max(0.0, board_h - draw_h))

        return cls(
            board_width=board_w,
            board_height=board_h,
            target_x=target_x,
            target_y=target_y,
            target_width=target_w,
            target_height=target_h,
            scale=scale,
            offset_x=offset_x,
            offset_y=offset_y,
            selection_active=region is not None,
        )


# ---------------------------------------------------------------------------
# Lane model
# ---------------------------------------------------------------------------


def base_lane_spacing(scale: float) -> float:
    if scale >= 24:
        return 0.95
    if scale >= 12:
        return 0.88
    if scale >= 6:
        return 0.78
    return 0.64


_DETAIL_MULTIPLIER = {DetailMode.MAX: 1.35, DetailMode.MINIMAL: 0.75, DetailMode.BALANCED: 1.0}
_MICRO_THRESHOLD = {DetailMode.MAX: 4, DetailMode.MINIMAL: 1, DetailMode.BALANCED: 2}


@dataclass(frozen=True)
class LaneModel:
    """Per-plan geometry constants derived from scale and style."""

    base_spacing: float
    lane_spacing: float
    coverage_pad: float
    detail_lane_offset: float
    micro_threshold: int
    lane_offsets: tuple[float, ...]
    spectral: float

    @property
    def lane_count(self) -> int:
        return len(self.lane_offsets)

    @classmethod
    def from_style(cls, scale: float, style: StyleConfig) -> LaneModel:
        base = base_lane_spacing(scale)
        smoothing_factor = 1.0 + style.smoothness / 100.0
        lane_density_factor = max(10.0, style.lane_density) / 100.0
        lane_spacing = base / smoothing_factor / lane_density_factor

        cov = style.coverage_pad / 100.0
        coverage_pad = min(scale * 0.45 * cov, max(0.9, base * 1.5 * cov))

        dm = _DETAIL_MULTIPLIER[style.detail_mode]
        detail_lane_offset = min(scale * 0.28 * dm, max(0.45, base * 1.4 * dm))

        lane_count = max(1, math.ceil((scale + lane_spacing * 0.5) / lane_spacing))
        if style.low_res_enhancer:
            if scale < 1.5:
                lane_count = max(lane_count, 5)
            elif scale < 2.5:
                lane_count = max(lane_count, 4)
            elif scale < 4:
                lane_count = max(lane_count, 3)

        if lane_count == 1:
            offsets: tuple[float, ...] = (0.0,)
        else:
            start = -(lane_count - 1) * lane_spacing / 2.0
            offsets = tuple(start + i * lane_spacing for i in range(lane_count))

        return cls(
            base_spacing=base,
            lane_spacing=lane_spacing,
            coverage_pad=coverage_pad,
            detail_lane_offset=detail_lane_offset,
            micro_threshold=_MICRO_THRESHOLD[style.detail_mode],
            lane_offsets=offsets,
            spectral=max(10.0, style.spectral_accent) / 100.0,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanMetrics:
    scale: float = 0.0
    lane_count: int = 0
    target_width: float = 0.0
    target_height: float = 0.0
    selection_active: bool = False
    estimated_strokes: int = 0

    @property
    def estimated_duration_s(self) -> float:
        return self.estimated_strokes * STROKE_DELAY_S


@dataclass(frozen=True)
class PlanResult:
    """Planner output: unordered strokes plus per-palette coverage."""

    strokes: tuple[PlannedStroke, ...] = ()
    coverage: tuple[float, ...] = ()
    layout: SurfaceLayout | None = None
    lanes: LaneModel | None = None
    metrics: PlanMetrics = field(default_factory=PlanMetrics)

    @classmethod
    def empty(cls, palette_size: int = 0) -> PlanResult:
        return cls(coverage=(0.0,) * palette_size)


# ---------------------------------------------------------------------------
# Stroke normalization
# ---------------------------------------------------------------------------


def normalize_segment(
    x1: float, y1: float, x2: float, y2: float,
    board_width: float, board_height: float,
) -> tuple[float, float, float, float] | None:
    """Map a pixel-space segment onto [0, 1]², or None if fully off-surface.

    Degenerate axes (|Δ| < 1e-5 after clamping) are widened by 0.75 px in
    the segment's own direction so every command has a drawable extent.
    """
    min_x, max_x = min(x1, x2), max(x1, x2)
    min_y, max_y = min(y1, y2), max(y1, y2)
    if max_x <= 0 or max_y <= 0 or min_x >= board_width or min_y >= board_height:
        return None

    nx1 = _clamp(x1 / board_width, 0.0, 1.0)
    ny1 = _clamp(y1 / board_height, 0.0, 1.0)
    nx2 = _clamp(x2 / board_width, 0.0, 1.0)
    ny2 = _clamp(y2 / board_height, 0.0, 1.0)

    eps_x = NUDGE_PX / board_width
    eps_y = NUDGE_PX / board_height
    if abs(nx1 - nx2) < DEGENERATE_EPS:
        nx2 = _clamp(nx2 + (eps_x if nx2 >= nx1 else -eps_x), 0.0, 1.0)
    if abs(ny1 - ny2) < DEGENERATE_EPS:
        ny2 = _clamp(ny2 + (eps_y if ny2 >= ny1 else -eps_y), 0.0, 1.0)

    return (
        round(nx1, COORD_DECIMALS),
        round(ny1, COORD_DECIMALS),
        round(nx2, COORD_DECIMALS),
        round(ny2, COORD_DECIMALS),
    )


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Run:
    """Maximal horizontal span ``[start, end)`` of one palette index."""

    y: int
    start: int
    end: int
    palette_index: int
    detail: bool
    edge: bool

    @property
    def length(self) -> int:
        return self.end - self.start


def iter_runs(assignment: np.ndarray, masks: MaskSet):
    """Yield every non-SKIP run, row by row, left to right."""
    h, w = assignment.shape
    if w == 0:
        return
    for y in range(h):
        row = assignment[y]
        cuts = np.flatnonzero(row[1:] != row[:-1]) + 1
        starts = np.concatenate(([0], cuts))
        ends = np.concatenate((cuts, [w]))
        detail_hits = np.logical_or.reduceat(masks.detail[y], starts)
        edge_hits = np.logical_or.reduceat(masks.edge[y], starts)
        for i in range(starts.shape[0]):
            idx = int(row[starts[i]])
            if idx == SKIP:
                continue
            yield Run(
                y=y,
                start=int(starts[i]),
                end=int(ends[i]),
                palette_index=idx,
                detail=bool(detail_hits[i]),
                edge=bool(edge_hits[i]),
            )


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


def plan_strokes(
    assignment: np.ndarray,
    masks: MaskSet,
    palette: Palette,
    style: StyleConfig,
    surface_size: tuple[float, float],
    region: Region | None = None,
) -> PlanResult:
    """Turn an assignment map into stroke geometries and coverage.

    Parameters
    ----------
    assignment : np.ndarray
        (H, W) uint16 map from the ditherer.
    masks : MaskSet
        Detail/edge masks for ``assignment``.
    palette : Palette
        Palette the assignment indexes into.
    style : StyleConfig
        Immutable planning knobs.
    surface_size : tuple[float, float]
        Drawing surface (width, height) in pixels.
    region : Region, optional
        Sub-rectangle to confine the drawing to; None for the full surface.

    Returns
    -------
    PlanResult
        Empty (no strokes) for empty palettes, zero-size images or a
        zero-size surface.
    """
    h, w = assignment.shape
    board_w, board_h = surface_size
    if len(palette) == 0 or w == 0 or h == 0 or board_w <= 0 or board_h <= 0:
        logger.info("Nothing to plan (image %dx%d, surface %sx%s)", w, h, board_w, board_h)
        return PlanResult.empty(len(palette))

    layout = SurfaceLayout.compute((w, h), (board_w, board_h), region)
    lanes = LaneModel.from_style(layout.scale, style)
    scale = layout.scale
    pad = lanes.coverage_pad
    dlo = lanes.detail_lane_offset
    spectral = lanes.spectral

    profiles = [c.profile for c in palette]
    coverage = [0.0] * len(palette)
    strokes: list[PlannedStroke] = []

    def push(idx: int, x1: float, y1: float, x2: float, y2: float,
             orientation: str, phase: StrokePhase) -> None:
        seg = normalize_segment(x1, y1, x2, y2, layout.board_width, layout.board_height)
        if seg is not None:
            strokes.append(PlannedStroke(idx, *seg, orientation=orientation, phase=phase))

    micro_half = max(scale * 0.55, 0.85)
    edge_half = max(scale * 0.6, 0.9)
    glaze_offset = max(scale * 0.35, dlo * 0.45)
    echo_offset = max(scale * 0.42, dlo * 0.6)
    weave_step = max(1, round_half_up(4 / max(0.5, spectral)))
    weave_span = max(scale * 0.6, 0.9)
    weave_tail = max(scale * 0.3, 0.5)

    for run in iter_runs(assignment, masks):
        idx = run.palette_index
        profile = profiles[idx]
        start_x = layout.offset_x + run.start * scale - pad
        end_x = layout.offset_x + run.end * scale + pad
        center_y = layout.offset_y + (run.y + 0.5) * scale
        center_x = layout.offset_x + (run.start + run.length / 2.0) * scale

        coverage[idx] += run.length * lanes.lane_count

        for lane_index, lane_offset in enumerate(lanes.lane_offsets):
            ly = center_y + lane_offset
            if lane_index == 0:
                push(idx, start_x, ly, end_x, ly, "run-primary", StrokePhase.FILL)
            else:
                push(idx, start_x, ly, end_x, ly, "run-lane", StrokePhase.FILL_SECONDARY)

        edge_hit = run.edge and style.edge_emphasis
        if style.micro_detail and run.length <= lanes.micro_threshold:
            push(idx, center_x - micro_half, center_y, center_x + micro_half, center_y,
                 "micro-detail", StrokePhase.DETAIL)
        elif (run.detail and style.detail_mode is not DetailMode.MINIMAL) or edge_hit:
            oy = center_y + dlo
            push(idx, start_x, oy, end_x, oy, "detail-offset", StrokePhase.DETAIL)

        if edge_hit:
            push(idx, center_x - edge_half, center_y, center_x + edge_half, center_y,
                 "edge-center", StrokePhase.DETAIL_EDGE)

        extra = 0.0
        if style.highlight_glaze and profile.value > GLAZE_VALUE_THRESHOLD:
            push(idx, start_x, center_y - glaze_offset, end_x, center_y - glaze_offset,
                 "glaze-upper", StrokePhase.GLAZE)
            push(idx, start_x, center_y + glaze_offset, end_x, center_y + glaze_offset,
                 "glaze-lower", StrokePhase.GLAZE)
            extra += run.length * spectral * 0.65

        if style.gradient_echo and (run.detail or run.edge):
            push(idx, start_x, center_y - echo_offset, end_x, center_y - echo_offset,
                 "echo-upper", StrokePhase.ECHO)
            push(idx, start_x, center_y + echo_offset, end_x, center_y + echo_offset,
                 "echo-lower", StrokePhase.ECHO)
            extra += run.length * 0.55

        if style.texture_weave and profile.saturation > WEAVE_SATURATION_THRESHOLD:
            count = 0
            for alt, px in enumerate(range(run.start, run.end, weave_step)):
                cx = layout.offset_x + (px + 0.5) * scale
                d = 1 if alt % 2 == 0 else -1
                push(idx, cx - weave_span, center_y - weave_tail * d,
                     cx + weave_span, center_y + weave_tail * d,
                     "texture-weave", StrokePhase.TEXTURE)
                count += 1
            if count:
                extra += run.length * 0.25 * spectral + count * 0.6

        if extra > 0:
            coverage[idx] += extra

    metrics = PlanMetrics(
        scale=scale,
        lane_count=lanes.lane_count,
        target_width=layout.target_width,
        target_height=layout.target_height,
        selection_active=layout.selection_active,
        estimated_strokes=len(strokes),
    )
    logger.info(
        "Planned %d strokes (scale ×%.2f, %d lanes, %s)",
        len(strokes), scale, lanes.lane_count, style.summary_label(),
    )
    return PlanResult(
        strokes=tuple(strokes),
        coverage=tuple(coverage),
        layout=layout,
        lanes=lanes,
        metrics=metrics,
    )


