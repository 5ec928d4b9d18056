"""Replay of compiled stroke commands onto a drawing surface."""

from .emitter import (
    CancellationToken,
    DrawingSurface,
    EmissionProgress,
    EmissionResult,
    EmissionState,
    EmitterBusyError,
    RecordingSurface,
    StrokeEmitter,
    SurfaceError,
)

__all__ = [
    "CancellationToken",
    "DrawingSurface",
    "EmissionProgress",
    "EmissionResult",
    "EmissionState",
    "EmitterBusyError",
    "RecordingSurface",
    "StrokeEmitter",
    "SurfaceError",
]
