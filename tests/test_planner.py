"""Test stroke planning: layout, lanes, runs, accents and normalization.

Tests for autodraw.pipeline.planner:
    - SurfaceLayout fit/centering with and without a region
    - LaneModel spacing, lane count, low-res enhancer, symmetric offsets
    - normalize_segment: off-surface drop, clamping, degenerate nudge
    - iter_runs covers every assigned pixel exactly once
    - Uniform image emits only fill lanes, one per lane per row
    - Region confinement of every endpoint
    - Micro accent and detail offset are mutually exclusive
    - Glaze/echo/weave gating and coverage accounting
    - Exact per-layer coverage bonuses and accent offsets on a small plan

Run:
    pytest tests/test_planner.py -v
"""

from __future__ import annotations

from collections import Counter

import numpy as np
import pytest

from autodraw.commands.operations import StrokePhase
from autodraw.pipeline.buffer import SKIP, PixelBuffer, Region
from autodraw.pipeline.dither import dither_assign
from autodraw.pipeline.masks import MaskSet, build_masks
from autodraw.pipeline.palette import Palette, build_palette
from autodraw.pipeline.planner import (
    LaneModel,
    SurfaceLayout,
    base_lane_spacing,
    iter_runs,
    normalize_segment,
    plan_strokes,
)
from autodraw.utils.validators import DetailMode, StyleConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uniform(w: int, h: int, rgb: tuple[int, int, int]) -> PixelBuffer:
    rgba = np.zeros((h, w, 4), dtype=np.uint8)
    rgba[..., :3] = rgb
    rgba[..., 3] = 255
    return PixelBuffer(rgba)


def _plan(buffer: PixelBuffer, style: StyleConfig, surface, region=None, k: int = 16):
    palette = build_palette(buffer, k)
    assignment = dither_assign(buffer, palette, style.dither_strength)
    masks = build_masks(buffer, assignment)
    return palette, assignment, masks, plan_strokes(
        assignment, masks, palette, style, surface, region
    )


def _full_masks(shape: tuple[int, int], value: bool) -> MaskSet:
    return MaskSet(detail=np.full(shape, value), edge=np.full(shape, value))


# ---------------------------------------------------------------------------
# Layout and lanes
# ---------------------------------------------------------------------------


class TestSurfaceLayout:
    def test_square_fit(self) -> None:
        layout = SurfaceLayout.compute((10, 10), (100, 100))
        assert layout.scale == pytest.approx(10.0)
        assert (layout.offset_x, layout.offset_y) == (0.0, 0.0)
        assert not layout.selection_active

    def test_letterbox_centers(self) -> None:
        layout = SurfaceLayout.compute((20, 10), (100, 100))
        assert layout.scale == pytest.approx(5.0)
        assert layout.offset_x == pytest.approx(0.0)
        assert layout.offset_y == pytest.approx(25.0)

    def test_region(self) -> None:
        layout = SurfaceLayout.compute((10, 10), (100, 100), Region(0.25, 0.25, 0.5, 0.5))
        assert layout.scale == pytest.approx(5.0)
        assert (layout.target_x, layout.target_y) == (25.0, 25.0)
        assert (layout.offset_x, layout.offset_y) == (25.0, 25.0)
        assert layout.selection_active

    def test_zero_width_region_gets_one_pixel(self) -> None:
        layout = SurfaceLayout.compute((10, 10), (100, 100), Region(0.5, 0.0, 0.0, 1.0))
        assert layout.target_width == pytest.approx(1.0)


class TestLaneModel:
    def test_base_spacing_steps(self) -> None:
        assert base_lane_spacing(30) == 0.95
        assert base_lane_spacing(24) == 0.95
        assert base_lane_spacing(12) == 0.88
        assert base_lane_spacing(6) == 0.78
        assert base_lane_spacing(5.9) == 0.64

    def test_default_style_at_scale_25(self) -> None:
        lanes = LaneModel.from_style(25, StyleConfig())
        assert lanes.lane_spacing == pytest.approx(0.95 / 1.4)
        assert lanes.lane_count == 38
        assert lanes.coverage_pad == pytest.approx(1.425)
        assert lanes.detail_lane_offset == pytest.approx(1.33)
        assert lanes.micro_threshold == 2
        assert lanes.spectral == pytest.approx(1.2)

    def test_offsets_symmetric_and_evenly_spaced(self) -> None:
        lanes = LaneModel.from_style(25, StyleConfig())
        offsets = np.array(lanes.lane_offsets)
        assert offsets.sum() == pytest.approx(0.0, abs=1e-9)
        np.testing.assert_allclose(np.diff(offsets), lanes.lane_spacing)

    def test_low_res_enhancer(self) -> None:
        sparse = StyleConfig(lane_density=10)
        assert LaneModel.from_style(1.0, sparse).lane_count == 5
        assert LaneModel.from_style(2.0, sparse).lane_count == 4
        assert LaneModel.from_style(3.0, sparse).lane_count == 3
        assert LaneModel.from_style(5.0, sparse).lane_count == 2
        off = sparse.with_changes(low_res_enhancer=False)
        assert LaneModel.from_style(1.0, off).lane_count == 1

    def test_enhancer_never_reduces_lanes(self) -> None:
        assert LaneModel.from_style(2.0, StyleConfig()).lane_count == 5

    def test_single_lane_is_centered(self) -> None:
        style = StyleConfig(smoothness=0, lane_density=10, low_res_enhancer=False)
        lanes = LaneModel.from_style(0.1, style)
        assert lanes.lane_offsets == (0.0,)

    def test_detail_mode_constants(self) -> None:
        lanes_max = LaneModel.from_style(25, StyleConfig(detail_mode="max"))
        lanes_min = LaneModel.from_style(25, StyleConfig(detail_mode="minimal"))
        assert lanes_max.micro_threshold == 4
        assert lanes_min.micro_threshold == 1
        assert lanes_max.detail_lane_offset > lanes_min.detail_lane_offset


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalizeSegment:
    def test_fully_outside_dropped(self) -> None:
        assert normalize_segment(-10, 5, -1, 5, 100, 100) is None
        assert normalize_segment(10, 100, 20, 120, 100, 100) is None

    def test_clamped_into_unit_square(self) -> None:
        seg = normalize_segment(-20, 10, 150, 30, 100, 100)
        assert seg == (0.0, 0.1, 1.0, 0.3)

    def test_horizontal_is_nudged(self) -> None:
        seg = normalize_segment(10, 50, 90, 50, 100, 100)
        assert seg == (0.1, 0.5, 0.9, 0.5075)

    def test_vertical_is_nudged(self) -> None:
        seg = normalize_segment(50, 10, 50, 90, 200, 100)
        assert seg == (0.25, 0.1, 0.25375, 0.9)

    def test_nudge_stays_inside(self) -> None:
        seg = normalize_segment(10, 99.9, 90, 99.9, 100, 100)
        assert seg == (0.1, 0.999, 0.9, 1.0)

    def test_six_decimals(self) -> None:
        seg = normalize_segment(1, 1, 2, 3, 3, 7)
        assert seg == (round(1 / 3, 6), round(1 / 7, 6), round(2 / 3, 6), round(3 / 7, 6))


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


class TestRuns:
    def test_runs_cover_assigned_pixels_once(self) -> None:
        rng = np.random.default_rng(3)
        assignment = rng.integers(0, 3, size=(6, 9)).astype(np.uint16)
        assignment[2, 3:6] = SKIP
        masks = _full_masks(assignment.shape, False)

        hits = np.zeros(assignment.shape, dtype=int)
        for run in iter_runs(assignment, masks):
            assert run.length > 0
            assert (assignment[run.y, run.start:run.end] == run.palette_index).all()
            hits[run.y, run.start:run.end] += 1

        np.testing.assert_array_equal(hits, (assignment != SKIP).astype(int))

    def test_runs_are_maximal(self) -> None:
        assignment = np.array([[0, 0, 1, 1, 1, 0]], dtype=np.uint16)
        runs = list(iter_runs(assignment, _full_masks(assignment.shape, False)))
        assert [(r.start, r.end, r.palette_index) for r in runs] == [(0, 2, 0), (2, 5, 1), (5, 6, 0)]

    def test_run_flags_from_masks(self) -> None:
        assignment = np.array([[0, 0, 1]], dtype=np.uint16)
        masks = MaskSet(
            detail=np.array([[False, True, False]]),
            edge=np.array([[False, False, False]]),
        )
        runs = list(iter_runs(assignment, masks))
        assert [r.detail for r in runs] == [True, False]


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class TestPlanStrokes:
    def test_uniform_image_only_fills(self) -> None:
        buf = _uniform(4, 4, (40, 60, 90))
        palette, _, _, plan = _plan(buf, StyleConfig(), (100, 200))
        assert len(palette) == 1
        assert plan.metrics.scale == pytest.approx(25.0)
        assert plan.metrics.lane_count == 38
        assert len(plan.strokes) == 4 * plan.metrics.lane_count
        phases = Counter(s.phase for s in plan.strokes)
        assert set(phases) == {StrokePhase.FILL, StrokePhase.FILL_SECONDARY}
        assert phases[StrokePhase.FILL] == 4

    def test_uniform_coverage_is_lanes_times_pixels(self) -> None:
        buf = _uniform(4, 4, (40, 60, 90))
        _, _, _, plan = _plan(buf, StyleConfig(), (100, 200))
        assert plan.coverage == pytest.approx((16 * 38,))

    def test_region_confines_endpoints(self) -> None:
        rgba = np.zeros((10, 10, 4), dtype=np.uint8)
        rgba[..., 3] = 255
        rgba[:, :5, :3] = 255
        rgba[:, 5:, 0] = 255
        style = StyleConfig(texture_weave=True)
        region = Region.clamped(0.25, 0.25, 0.5, 0.5)
        _, _, _, plan = _plan(PixelBuffer(rgba), style, (100, 100), region)

        assert plan.strokes
        assert plan.metrics.selection_active
        tol = 0.02
        for s in plan.strokes:
            for v in (s.x1, s.y1, s.x2, s.y2):
                assert 0.25 - tol <= v <= 0.75 + tol

    def test_micro_and_detail_offset_exclusive(self) -> None:
        assignment = np.array([[0, 1, 0, 0, 0]], dtype=np.uint16)
        masks = _full_masks(assignment.shape, True)
        palette = Palette.from_hex(["#000000", "#ffffff"])
        plan = plan_strokes(assignment, masks, palette, StyleConfig(), (500, 100))

        tags = Counter(s.orientation for s in plan.strokes)
        assert tags["micro-detail"] == 2
        assert tags["detail-offset"] == 1
        assert tags["edge-center"] == 3

    def test_micro_detail_disabled(self) -> None:
        assignment = np.array([[0, 1, 0, 0, 0]], dtype=np.uint16)
        masks = _full_masks(assignment.shape, True)
        palette = Palette.from_hex(["#000000", "#ffffff"])
        plan = plan_strokes(
            assignment, masks, palette, StyleConfig(micro_detail=False), (500, 100)
        )
        tags = Counter(s.orientation for s in plan.strokes)
        assert tags["micro-detail"] == 0
        assert tags["detail-offset"] == 3

    def test_minimal_mode_without_edges(self) -> None:
        assignment = np.array([[0, 1, 0, 0, 0]], dtype=np.uint16)
        masks = _full_masks(assignment.shape, True)
        palette = Palette.from_hex(["#000000", "#ffffff"])
        style = StyleConfig(detail_mode=DetailMode.MINIMAL, edge_emphasis=False)
        plan = plan_strokes(assignment, masks, palette, style, (500, 100))
        tags = Counter(s.orientation for s in plan.strokes)
        assert tags["micro-detail"] == 2
        assert tags["detail-offset"] == 0
        assert tags["edge-center"] == 0

    def test_glaze_only_on_bright_colors(self) -> None:
        assignment = np.array([[0, 0, 1, 1]], dtype=np.uint16)
        palette = Palette.from_hex(["#101010", "#f0f0f0"])
        plan = plan_strokes(
            assignment, _full_masks(assignment.shape, False), palette, StyleConfig(), (400, 100)
        )
        glazed = {s.palette_index for s in plan.strokes if s.phase is StrokePhase.GLAZE}
        assert glazed == {1}

    def test_echo_follows_detail_and_edges(self) -> None:
        assignment = np.array([[0, 0, 0]], dtype=np.uint16)
        palette = Palette.from_hex(["#101010"])
        quiet = plan_strokes(
            assignment, _full_masks((1, 3), False), palette, StyleConfig(), (300, 100)
        )
        busy = plan_strokes(
            assignment, _full_masks((1, 3), True), palette, StyleConfig(), (300, 100)
        )
        assert not any(s.phase is StrokePhase.ECHO for s in quiet.strokes)
        assert sum(s.phase is StrokePhase.ECHO for s in busy.strokes) == 2
        assert busy.coverage[0] == pytest.approx(quiet.coverage[0] + 3 * 0.55)

    def test_weave_needs_saturation_and_opt_in(self) -> None:
        assignment = np.array([[0, 0, 0, 0, 1, 1, 1, 1]], dtype=np.uint16)
        palette = Palette.from_hex(["#ff0000", "#808080"])
        masks = _full_masks(assignment.shape, False)

        off = plan_strokes(assignment, masks, palette, StyleConfig(), (800, 100))
        assert not any(s.phase is StrokePhase.TEXTURE for s in off.strokes)

        on = plan_strokes(assignment, masks, palette, StyleConfig(texture_weave=True), (800, 100))
        woven = [s for s in on.strokes if s.phase is StrokePhase.TEXTURE]
        assert woven
        assert {s.palette_index for s in woven} == {0}
        # Alternating diagonals
        assert woven[0].y2 > woven[0].y1
        assert woven[1].y2 < woven[1].y1

    def test_accent_layers_golden(self) -> None:
        # Scale 10: 19 lanes, spectral 1.2, glaze offset 3.5, echo offset 4.2,
        # weave step 3 (two diagonals over a 4 px run)
        assignment = np.array([[0, 0, 0, 0, 1, 1, 1, 1]], dtype=np.uint16)
        palette = Palette.from_hex(["#ff0000", "#202020"])
        masks = MaskSet(detail=np.zeros((1, 8), dtype=bool), edge=np.ones((1, 8), dtype=bool))
        plan = plan_strokes(
            assignment, masks, palette, StyleConfig(texture_weave=True), (80, 10)
        )

        assert plan.metrics.scale == pytest.approx(10.0)
        assert plan.metrics.lane_count == 19
        # red: 4*19 + glaze 4*1.2*0.65 + echo 4*0.55 + weave (4*0.25*1.2 + 2*0.6)
        # gray: 4*19 + echo 4*0.55
        assert plan.coverage == pytest.approx((83.72, 78.2))

        by_tag = {}
        for s in plan.strokes:
            if s.palette_index == 0:
                by_tag.setdefault(s.orientation, []).append(s)
        assert by_tag["glaze-upper"][0].y1 == pytest.approx(0.15)
        assert by_tag["glaze-lower"][0].y1 == pytest.approx(0.85)
        assert by_tag["echo-upper"][0].y1 == pytest.approx(0.08)
        assert by_tag["echo-lower"][0].y1 == pytest.approx(0.92)
        assert len(by_tag["texture-weave"]) == 2

    def test_micro_half_length(self) -> None:
        assignment = np.array([[0, 1, 0]], dtype=np.uint16)
        palette = Palette.from_hex(["#000000", "#ffffff"])
        plan = plan_strokes(
            assignment, _full_masks((1, 3), False), palette, StyleConfig(), (30, 10)
        )
        micro = [
            s for s in plan.strokes
            if s.orientation == "micro-detail" and s.palette_index == 1
        ]
        assert len(micro) == 1
        # center 15 px, half-length 0.55 * 10
        assert micro[0].x1 == pytest.approx(9.5 / 30, abs=1e-6)
        assert micro[0].x2 == pytest.approx(20.5 / 30, abs=1e-6)

    def test_transparent_image_plans_nothing(self) -> None:
        buf = PixelBuffer(np.zeros((2, 2, 4), dtype=np.uint8))
        palette, _, _, plan = _plan(buf, StyleConfig(), (100, 100))
        assert len(palette) == 1
        assert plan.strokes == ()
        assert plan.coverage == (0.0,)

    def test_zero_surface_plans_nothing(self) -> None:
        buf = _uniform(2, 2, (1, 2, 3))
        _, _, _, plan = _plan(buf, StyleConfig(), (0, 100))
        assert plan.strokes == ()
        assert plan.metrics.estimated_strokes == 0

    def test_metrics(self) -> None:
        buf = _uniform(4, 4, (40, 60, 90))
        _, _, _, plan = _plan(buf, StyleConfig(), (100, 200))
        assert plan.metrics.estimated_strokes == len(plan.strokes)
        assert plan.metrics.estimated_duration_s == pytest.approx(len(plan.strokes) * 0.008)

    def test_deterministic(self) -> None:
        rng = np.random.default_rng(9)
        rgba = rng.integers(0, 256, size=(8, 8, 4), dtype=np.uint8)
        rgba[..., 3] = 255
        buf = PixelBuffer(rgba)
        _, _, _, a = _plan(buf, StyleConfig(texture_weave=True), (640, 480))
        _, _, _, b = _plan(buf, StyleConfig(texture_weave=True), (640, 480))
        assert a.strokes == b.strokes
        assert a.coverage == b.coverage
