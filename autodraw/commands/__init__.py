"""Stroke command vocabulary shared by the planner, orderer and emitter."""

from .operations import (
    ORIENTATIONS,
    PlannedStroke,
    StrokeCommand,
    StrokePhase,
    to_command,
)

__all__ = [
    "ORIENTATIONS",
    "PlannedStroke",
    "StrokeCommand",
    "StrokePhase",
    "to_command",
]
