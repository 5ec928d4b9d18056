"""Stroke commands -- the vocabulary between the planner and a drawing surface.

Every emitted command is an immutable, slotted dataclass.  Coordinates are
**normalized** surface fractions in [0, 1] (origin top-left, +Y down),
rounded to six decimals so the output is stable across platforms.

Phases
------
The planner tags each geometry with a ``StrokePhase`` that decides its
draw order inside a palette group (fills first, echoes last).  The phase
is stripped when a ``PlannedStroke`` becomes a ``StrokeCommand``; drawing
surfaces never see it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Phases and orientation tags
# ---------------------------------------------------------------------------


class StrokePhase(Enum):
    """Draw phase; ``value`` is the precedence inside a palette group."""

    FILL = 0
    FILL_SECONDARY = 1
    DETAIL = 2
    DETAIL_EDGE = 3
    GLAZE = 4
    TEXTURE = 5
    ECHO = 6

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")


ORIENTATIONS = frozenset({
    "run-primary",
    "run-lane",
    "micro-detail",
    "detail-offset",
    "edge-center",
    "glaze-upper",
    "glaze-lower",
    "echo-upper",
    "echo-lower",
    "texture-weave",
})
"""Orientation tags the planner emits; informational for surfaces."""

_HEX_RE = re.compile(r"^#[0-9a-f]{6}$")

COORD_DECIMALS = 6


def _check_unit(name: str, v: float) -> None:
    if not 0.0 <= v <= 1.0:
        raise ValueError(f"{name} must be in [0, 1], got {v}")


# ---------------------------------------------------------------------------
# Planner output (internal)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PlannedStroke:
    """A normalized stroke geometry still attached to its palette slot.

    Parameters
    ----------
    palette_index : int
        Index into the palette the plan was built from.
    x1, y1, x2, y2 : float
        Normalized endpoints.
    orientation : str
        One of ``ORIENTATIONS``.
    phase : StrokePhase
        Draw phase within the palette group.
    """

    palette_index: int
    x1: float
    y1: float
    x2: float
    y2: float
    orientation: str
    phase: StrokePhase

    def __post_init__(self) -> None:
        if self.palette_index < 0:
            raise ValueError(f"palette_index must be >= 0, got {self.palette_index}")
        for name in ("x1", "y1", "x2", "y2"):
            _check_unit(name, getattr(self, name))
        if self.orientation not in ORIENTATIONS:
            raise ValueError(f"Unknown orientation tag {self.orientation!r}")


# ---------------------------------------------------------------------------
# Emitted command
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StrokeCommand:
    """One straight segment to draw in a single color.

    Parameters
    ----------
    color : str
        Lowercase ``#rrggbb``.
    x1, y1, x2, y2 : float
        Normalized endpoints in [0, 1].
    orientation : str
        Informational tag (``run-primary``, ``glaze-upper``, ...).
    """

    color: str
    x1: float
    y1: float
    x2: float
    y2: float
    orientation: str

    def __post_init__(self) -> None:
        if not isinstance(self.color, str) or not _HEX_RE.match(self.color):
            raise ValueError(f"color must be lowercase '#rrggbb', got {self.color!r}")
        for name in ("x1", "y1", "x2", "y2"):
            _check_unit(name, getattr(self, name))

    @property
    def length(self) -> float:
        """Segment length in normalized units."""
        return ((self.x2 - self.x1) ** 2 + (self.y2 - self.y1) ** 2) ** 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "color": self.color,
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "orientation": self.orientation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StrokeCommand:
        """Rebuild a command from its serialized mapping.

        Raises
        ------
        ValueError
            If a key is missing or a value is out of range.
        """
        try:
            return cls(
                color=str(data["color"]).lower(),
                x1=float(data["x1"]),
                y1=float(data["y1"]),
                x2=float(data["x2"]),
                y2=float(data["y2"]),
                orientation=str(data.get("orientation", "")),
            )
        except KeyError as exc:
            raise ValueError(f"Stroke command missing key {exc}") from exc


def to_command(stroke: PlannedStroke, color: str) -> StrokeCommand:
    """Drop the phase/palette slot and bind the stroke to its hex color."""
    return StrokeCommand(
        color=color,
        x1=stroke.x1,
        y1=stroke.y1,
        x2=stroke.x2,
        y2=stroke.y2,
        orientation=stroke.orientation,
    )
