"""Image-to-strokes compilation pipeline.

Stages (each independently usable and testable):
    buffer:   PixelBuffer, ColorSamples, Region
    palette:  median-cut palette construction
    dither:   nearest / serpentine Floyd–Steinberg assignment
    masks:    detail and edge masks
    planner:  runs → normalized stroke geometries + coverage
    orderer:  palette-group and phase ordering
    context:  per-image artifact ownership and command cache
    insights: palette usage statistics
"""

from .buffer import SKIP, TRANSPARENCY_THRESHOLD, PixelBuffer, Region, collect_samples
from .context import CacheKey, CompileResult, PipelineContext, compile_image
from .dither import dither_assign, nearest_assignment
from .masks import MaskSet, build_masks
from .orderer import order_commands
from .palette import Palette, PaletteColor, build_palette
from .planner import LaneModel, PlanResult, SurfaceLayout, plan_strokes

__all__ = [
    "SKIP",
    "TRANSPARENCY_THRESHOLD",
    "CacheKey",
    "CompileResult",
    "LaneModel",
    "MaskSet",
    "Palette",
    "PaletteColor",
    "PipelineContext",
    "PixelBuffer",
    "PlanResult",
    "Region",
    "SurfaceLayout",
    "build_masks",
    "build_palette",
    "collect_samples",
    "compile_image",
    "dither_assign",
    "nearest_assignment",
    "order_commands",
    "plan_strokes",
]
