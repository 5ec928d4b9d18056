"""AutoDraw: raster image to ordered stroke-command compiler.

Turns a decoded RGBA image into a sequence of straight-line stroke
commands that a drawing surface can replay with a bounded palette.

Architecture layers (strict one-way dependency):
    autodraw/scripts/ → autodraw/{emission,pipeline}/ → autodraw/commands/ → autodraw/utils/

Key invariants:
    - Pixels with alpha < 16 are never quantized, assigned, or drawn
    - The palette is frozen before dithering starts
    - Command endpoints are normalized to [0, 1] surface coordinates
    - No module-level mutable state; style travels as an immutable value
"""

__version__ = "1.0.0"

__all__ = ["commands", "emission", "pipeline", "utils"]
