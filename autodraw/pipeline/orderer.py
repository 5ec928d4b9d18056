"""Command ordering: palette groups, then phases.

Strokes are grouped by palette index.  Groups are ranked by the style's
``palette_order``:

    dark-first   luminance ascending, coverage descending
    light-first  luminance descending, coverage descending
    coverage     coverage descending, luminance ascending

Full ties keep palette index order.  Inside a group strokes are stably
sorted by phase (fill → fill-secondary → detail → detail-edge → glaze →
texture → echo), then bound to the group's hex color.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Sequence

from autodraw.commands.operations import PlannedStroke, StrokeCommand, to_command
from autodraw.pipeline.palette import Palette
from autodraw.utils.validators import PaletteOrder

logger = logging.getLogger(__name__)


def palette_order(
    palette: Palette,
    coverage: Sequence[float],
    mode: PaletteOrder = PaletteOrder.DARK_FIRST,
) -> list[int]:
    """Rank palette indices for emission."""
    def key(i: int) -> tuple[float, float, int]:
        lum = palette[i].luminance
        cov = coverage[i] if i < len(coverage) else 0.0
        if mode is PaletteOrder.LIGHT_FIRST:
            return (-lum, -cov, i)
        if mode is PaletteOrder.COVERAGE:
            return (-cov, lum, i)
        return (lum, -cov, i)

    return sorted(range(len(palette)), key=key)


def order_commands(
    strokes: Sequence[PlannedStroke],
    palette: Palette,
    coverage: Sequence[float],
    mode: PaletteOrder = PaletteOrder.DARK_FIRST,
) -> list[StrokeCommand]:
    """Flatten planned strokes into the final emission sequence."""
    groups: dict[int, list[PlannedStroke]] = defaultdict(list)
    for stroke in strokes:
        groups[stroke.palette_index].append(stroke)

    commands: list[StrokeCommand] = []
    for idx in palette_order(palette, coverage, mode):
        group = groups.get(idx)
        if not group:
            continue
        color = palette[idx].hex
        for stroke in sorted(group, key=lambda s: s.phase.value):
            commands.append(to_command(stroke, color))

    logger.debug("Ordered %d commands across %d colors (%s)", len(commands), len(groups), mode.value)
    return commands
