"""Test palette-group and phase ordering of stroke commands.

Tests for autodraw.pipeline.orderer:
    - dark-first / light-first / coverage rankings and their tie-breaks
    - Phase order inside a group, stable within a phase
    - Commands carry the group's hex color and no phase
    - Palette slots with no strokes are skipped

Run:
    pytest tests/test_orderer.py -v
"""

from __future__ import annotations

from autodraw.commands.operations import PlannedStroke, StrokeCommand, StrokePhase
from autodraw.pipeline.orderer import order_commands, palette_order
from autodraw.pipeline.palette import Palette
from autodraw.utils.validators import PaletteOrder

_ORIENTATION = {
    StrokePhase.FILL: "run-primary",
    StrokePhase.FILL_SECONDARY: "run-lane",
    StrokePhase.DETAIL: "detail-offset",
    StrokePhase.DETAIL_EDGE: "edge-center",
    StrokePhase.GLAZE: "glaze-upper",
    StrokePhase.TEXTURE: "texture-weave",
    StrokePhase.ECHO: "echo-lower",
}


def _stroke(idx: int, phase: StrokePhase, x: float = 0.5) -> PlannedStroke:
    return PlannedStroke(idx, x, 0.1, x, 0.2, orientation=_ORIENTATION[phase], phase=phase)


class TestPaletteOrder:
    palette = Palette.from_hex(["#ffffff", "#000000", "#808080"])

    def test_dark_first(self) -> None:
        assert palette_order(self.palette, [1, 1, 1], PaletteOrder.DARK_FIRST) == [1, 2, 0]

    def test_light_first(self) -> None:
        assert palette_order(self.palette, [1, 1, 1], PaletteOrder.LIGHT_FIRST) == [0, 2, 1]

    def test_coverage(self) -> None:
        assert palette_order(self.palette, [5, 1, 9], PaletteOrder.COVERAGE) == [2, 0, 1]

    def test_coverage_tie_breaks_on_luminance(self) -> None:
        assert palette_order(self.palette, [3, 3, 3], PaletteOrder.COVERAGE) == [1, 2, 0]

    def test_luminance_tie_breaks_on_coverage(self) -> None:
        twins = Palette.from_hex(["#808080", "#808080"])
        assert palette_order(twins, [1, 3], PaletteOrder.DARK_FIRST) == [1, 0]
        assert palette_order(twins, [1, 3], PaletteOrder.LIGHT_FIRST) == [1, 0]

    def test_full_tie_keeps_index_order(self) -> None:
        twins = Palette.from_hex(["#808080", "#808080", "#808080"])
        assert palette_order(twins, [2, 2, 2]) == [0, 1, 2]


class TestOrderCommands:
    def test_groups_then_phases(self) -> None:
        palette = Palette.from_hex(["#ffffff", "#000000"])
        strokes = [
            _stroke(0, StrokePhase.ECHO),
            _stroke(1, StrokePhase.GLAZE),
            _stroke(0, StrokePhase.FILL),
            _stroke(1, StrokePhase.FILL_SECONDARY),
            _stroke(1, StrokePhase.FILL),
            _stroke(0, StrokePhase.DETAIL),
        ]
        commands = order_commands(strokes, palette, [1.0, 1.0], PaletteOrder.DARK_FIRST)

        assert [c.color for c in commands] == ["#000000"] * 3 + ["#ffffff"] * 3
        assert [c.orientation for c in commands] == [
            "run-primary", "run-lane", "glaze-upper",
            "run-primary", "detail-offset", "echo-lower",
        ]

    def test_stable_within_phase(self) -> None:
        palette = Palette.from_hex(["#123456"])
        strokes = [
            _stroke(0, StrokePhase.FILL_SECONDARY, x=0.3),
            _stroke(0, StrokePhase.FILL, x=0.9),
            _stroke(0, StrokePhase.FILL_SECONDARY, x=0.1),
            _stroke(0, StrokePhase.FILL_SECONDARY, x=0.2),
        ]
        commands = order_commands(strokes, palette, [1.0])
        assert [c.x1 for c in commands] == [0.9, 0.3, 0.1, 0.2]

    def test_phase_not_exposed(self) -> None:
        palette = Palette.from_hex(["#123456"])
        (cmd,) = order_commands([_stroke(0, StrokePhase.GLAZE)], palette, [1.0])
        assert isinstance(cmd, StrokeCommand)
        assert not hasattr(cmd, "phase")
        assert cmd.color == "#123456"

    def test_empty_groups_skipped(self) -> None:
        palette = Palette.from_hex(["#000000", "#ffffff", "#808080"])
        commands = order_commands([_stroke(2, StrokePhase.FILL)], palette, [0, 0, 1])
        assert [c.color for c in commands] == ["#808080"]

    def test_no_strokes(self) -> None:
        assert order_commands([], Palette.from_hex(["#000000"]), [0.0]) == []
