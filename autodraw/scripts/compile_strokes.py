#!/usr/bin/env python3
"""Compile an image into an ordered stroke-command file.

Pipeline:
    1. Load the image (Pillow) and downscale so the longest side fits
       ``--max-dimension``
    2. Median-cut palette, dithered assignment, detail/edge masks
    3. Plan and order strokes for the surface/region/style
    4. Write ``stroke_commands.v1`` YAML atomically
    5. Optionally replay the commands into an in-memory surface
       (``--dry-run-emit``); Ctrl+C cancels the replay cleanly

Callable API:
    compile_main(image_path, output_path, ...) → dict
        Returns {commands_path, command_count, palette_size, metrics, emission}

CLI:
    python -m autodraw.scripts.compile_strokes cat.png -o out/cat_commands.yaml
    python -m autodraw.scripts.compile_strokes cat.png -o out.yaml \\
        --surface 1200 800 --region 0.1 0.1 0.5 0.5 --style configs/style.v1.yaml
    python -m autodraw.scripts.compile_strokes --job configs/job.yaml

Output structure (YAML):
    schema: stroke_commands.v1
    source: {path, width, height}
    surface: {width, height}
    region: {x, y, width, height} | null
    style: {...}
    palette: ["#1a2b3c", ...]
    dominant_colors: [{index, hex, percent}, ...]
    accent_shades: {accent, dark, soft, ambient}
    metrics: {scale, lane_count, estimated_strokes, estimated_duration_s, ...}
    commands: [{color, x1, y1, x2, y2, orientation}, ...]
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from autodraw import __version__
from autodraw.emission.emitter import CancellationToken, RecordingSurface, StrokeEmitter
from autodraw.pipeline.buffer import PixelBuffer, Region
from autodraw.pipeline.context import CompileResult, PipelineContext
from autodraw.pipeline.insights import accent_shades, dominant_colors
from autodraw.utils import fs, validators
from autodraw.utils.logging_config import push_context, setup_logging
from autodraw.utils.validators import MAX_COLOR_CAPACITY, StyleConfig

logger = logging.getLogger(__name__)

COMMANDS_SCHEMA = "stroke_commands.v1"


def build_document(
    result: CompileResult,
    ctx: PipelineContext,
    source_path: str,
    surface_size: tuple[float, float],
    region: Region | None,
    style: StyleConfig,
) -> dict[str, Any]:
    """Serializable summary of one compile run."""
    usage = ctx.usage(style.dither_strength)
    m = result.metrics
    return {
        "schema": COMMANDS_SCHEMA,
        "generator": f"autodraw {__version__}",
        "source": {
            "path": str(source_path),
            "width": ctx.buffer.width,
            "height": ctx.buffer.height,
        },
        "surface": {"width": float(surface_size[0]), "height": float(surface_size[1])},
        "region": None if region is None else {
            "x": region.x, "y": region.y, "width": region.width, "height": region.height,
        },
        "style": style.model_dump(mode="json"),
        "style_label": style.summary_label(),
        "palette": result.palette.hexes,
        "dominant_colors": [
            {"index": d.index, "hex": d.hex, "percent": round(d.percent, 2)}
            for d in dominant_colors(result.palette, usage)
        ],
        "accent_shades": asdict(accent_shades(result.palette, usage)),
        "metrics": {
            "scale": round(m.scale, 4),
            "lane_count": m.lane_count,
            "target_width": round(m.target_width, 3),
            "target_height": round(m.target_height, 3),
            "selection_active": m.selection_active,
            "estimated_strokes": m.estimated_strokes,
            "estimated_duration_s": round(m.estimated_duration_s, 3),
        },
        "commands": [c.to_dict() for c in result.commands],
    }


def _replay(result: CompileResult, delay_s: float) -> dict[str, Any]:
    """Emit into a RecordingSurface; SIGINT cancels instead of aborting."""
    token = CancellationToken()
    emitter = StrokeEmitter(RecordingSurface(), delay_s=delay_s)
    emitter.set_progress_callback(
        lambda p: logger.info("Replay %d/%d (%.0f%%)", p.sent, p.total, p.fraction * 100)
    )

    previous = signal.getsignal(signal.SIGINT)
    try:
        signal.signal(signal.SIGINT, lambda *_: token.cancel())
    except ValueError:
        # Not on the main thread; replay runs without Ctrl+C support
        previous = None
    try:
        outcome = emitter.run(result.commands, token)
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    return {
        "state": outcome.state.name.lower(),
        "sent": outcome.sent,
        "failed": outcome.failed,
        "elapsed_s": round(outcome.elapsed_s, 3),
    }


def compile_main(
    image_path: str,
    output_path: str,
    style: StyleConfig | None = None,
    surface_size: tuple[float, float] = (500.0, 500.0),
    region: Region | None = None,
    max_colors: int = MAX_COLOR_CAPACITY,
    max_dimension: int = fs.DEFAULT_MAX_DIMENSION,
    emit: bool = False,
    delay_s: float = 0.0,
) -> dict[str, Any]:
    """Compile ``image_path`` and write the command document to ``output_path``.

    Parameters
    ----------
    image_path : str
        Input image (any Pillow format)
    output_path : str
        Destination YAML path (parent dirs created)
    style : StyleConfig, optional
        Planning style; defaults to ``StyleConfig()``
    surface_size : tuple[float, float]
        Drawing surface (width, height) in pixels
    region : Region, optional
        Normalized sub-rectangle; None for the full surface
    max_colors : int
        Palette budget (1..1300)
    max_dimension : int
        Longest image side after downscaling
    emit : bool
        Replay into an in-memory surface after writing
    delay_s : float
        Per-command delay during replay

    Returns
    -------
    dict
        {commands_path, command_count, palette_size, metrics, emission}
    """
    style = style or StyleConfig()
    if region is not None and region.is_full:
        region = None
    push_context(image=Path(image_path).name)

    rgba = fs.load_rgba_image(image_path, max_dimension=max_dimension)
    buffer = PixelBuffer(rgba)
    logger.info("Loaded %s (%dx%d)", image_path, buffer.width, buffer.height)

    ctx = PipelineContext(buffer, max_colors=max_colors)
    result = ctx.compile(style, surface_size, region)

    doc = build_document(result, ctx, image_path, surface_size, region, style)
    fs.atomic_yaml_dump(doc, output_path)
    logger.info("Wrote %d commands to %s", len(result), output_path)

    emission = _replay(result, delay_s) if emit else None

    return {
        "commands_path": str(output_path),
        "command_count": len(result),
        "palette_size": len(result.palette),
        "metrics": doc["metrics"],
        "emission": emission,
    }


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compile an image into ordered stroke commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("image", nargs="?", help="Input image path")
    parser.add_argument("--job", "-j", type=str, help="Job file (autodraw_job.v1 YAML)")

    parser.add_argument("--output", "-o", type=str, help="Output YAML path")
    parser.add_argument("--style", "-s", type=str, help="Style file (style.v1 YAML)")
    parser.add_argument(
        "--surface", type=float, nargs=2, metavar=("W", "H"), default=(500.0, 500.0),
        help="Drawing surface size in pixels",
    )
    parser.add_argument(
        "--region", type=float, nargs=4, metavar=("X", "Y", "W", "H"),
        help="Normalized sub-rectangle of the surface",
    )
    parser.add_argument("--max-colors", type=int, default=MAX_COLOR_CAPACITY, help="Palette budget")
    parser.add_argument(
        "--max-dimension", type=int, default=fs.DEFAULT_MAX_DIMENSION,
        help="Longest image side after downscaling",
    )
    parser.add_argument("--dry-run-emit", action="store_true", help="Replay into an in-memory surface")
    parser.add_argument("--delay-ms", type=float, default=0.0, help="Per-command replay delay")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING, ...")
    parser.add_argument("--log-file", type=str, help="Optional log file")
    parser.add_argument("--json-logs", action="store_true", help="JSON lines in the log file")
    args = parser.parse_args(argv)
    if bool(args.image) == bool(args.job):
        parser.error("give exactly one of IMAGE or --job")
    return args


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = _parse_args(argv)
    setup_logging(
        log_level=args.log_level,
        log_file=args.log_file,
        json=args.json_logs,
        context={"app": "compile"},
    )

    try:
        if args.job:
            job = validators.load_job_config(args.job)
            image_path = job.source_image
            output_path = args.output or job.output
            style = job.style
            surface = (job.surface.width, job.surface.height)
            region = None if job.region is None else Region.clamped(
                job.region.x, job.region.y, job.region.width, job.region.height
            )
            max_colors = job.max_colors
            max_dimension = job.max_dimension
        else:
            image_path = args.image
            output_path = args.output or str(Path(image_path).with_suffix("")) + "_commands.yaml"
            style = validators.load_style_config(args.style) if args.style else StyleConfig()
            surface = tuple(args.surface)
            region = Region.clamped(*args.region) if args.region else None
            max_colors = args.max_colors
            max_dimension = args.max_dimension
    except (FileNotFoundError, validators.ConfigError) as e:
        logger.error("Config error: %s", e)
        return 2

    try:
        summary = compile_main(
            image_path=image_path,
            output_path=output_path,
            style=style,
            surface_size=surface,
            region=region,
            max_colors=max_colors,
            max_dimension=max_dimension,
            emit=args.dry_run_emit,
            delay_s=args.delay_ms / 1000.0,
        )
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 2

    print("\n=== Compile Complete ===")
    print(f"Style:    {style.summary_label()}")
    print(f"Palette:  {summary['palette_size']} colors")
    print(f"Commands: {summary['command_count']} -> {summary['commands_path']}")
    print(f"Estimate: {summary['metrics']['estimated_duration_s']:.1f}s at 8ms/stroke")
    if summary["emission"]:
        em = summary["emission"]
        print(f"Replay:   {em['state']} ({em['sent']} sent, {em['failed']} failed)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
