"""Atomic filesystem operations, YAML handling and image loading.

Provides:
    - Atomic writes: tmp file → fsync → rename (prevents partial reads)
    - YAML load/save (PyYAML safe_load / safe_dump)
    - Directory creation with exist_ok semantics
    - RGBA image decoding with resize-to-fit (Pillow)

Command exports are written atomically so a host watching the output
directory never replays a half-written job.

All paths use pathlib.Path for cross-platform compatibility.

Usage:
    from autodraw.utils import fs
    rgba = fs.load_rgba_image("cat.png", max_dimension=500)
    fs.atomic_yaml_dump({"commands": [...]}, out_dir / "commands.yaml")
"""

import os
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import numpy as np
import yaml
from PIL import Image

DEFAULT_MAX_DIMENSION = 500
MIN_MAX_DIMENSION = 64


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create directory if it doesn't exist, return Path object.

    Creates parent directories as needed.
    """
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(
    path: Union[str, Path],
    data: bytes,
    tmp_suffix: str = ".tmp"
) -> None:
    """Write bytes to file atomically (tmp → fsync → rename).

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    data : bytes
        Data to write
    tmp_suffix : str
        Temporary file suffix, default ".tmp"

    Raises
    ------
    RuntimeError
        If the write or rename fails (tmp file is removed)
    """
    path = Path(path)
    ensure_dir(path.parent)

    # Same directory so the rename stays on one filesystem
    tmp_path = path.with_suffix(path.suffix + tmp_suffix)

    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_write_text(path: Union[str, Path], text: str, encoding: str = "utf-8") -> None:
    atomic_write_bytes(path, text.encode(encoding))


def atomic_yaml_dump(obj: Any, path: Union[str, Path]) -> None:
    """Save object as YAML atomically.

    Uses PyYAML safe_dump; key order is preserved (sort_keys=False).
    """
    yaml_str = yaml.safe_dump(
        obj,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True
    )
    atomic_write_bytes(Path(path), yaml_str.encode('utf-8'))


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load YAML file safely.

    Parameters
    ----------
    path : Union[str, Path]
        YAML file path

    Returns
    -------
    Dict[str, Any]
        Parsed YAML content (empty dict for an empty document)

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If YAML parsing fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
    return {} if data is None else data


def fit_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """Size that fits inside ``max_dimension`` on the longest side.

    Never upscales; each side is at least 1 px.
    """
    scale = min(1.0, max_dimension / max(width, height, 1))
    return max(1, int(round(width * scale))), max(1, int(round(height * scale)))


def load_rgba_image(
    path: Union[str, Path],
    max_dimension: int = DEFAULT_MAX_DIMENSION,
) -> np.ndarray:
    """Decode an image file to an (H, W, 4) uint8 RGBA array.

    Parameters
    ----------
    path : Union[str, Path]
        Any format Pillow can open
    max_dimension : int
        Longest side after downscaling; clamped to at least 64

    Returns
    -------
    np.ndarray
        Contiguous RGBA array, shape (H, W, 4), dtype uint8

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")

    max_dimension = max(MIN_MAX_DIMENSION, int(max_dimension))
    with Image.open(path) as img:
        rgba = img.convert("RGBA")
    target = fit_size(rgba.width, rgba.height, max_dimension)
    if target != rgba.size:
        rgba = rgba.resize(target, Image.Resampling.LANCZOS)
    return np.ascontiguousarray(np.asarray(rgba, dtype=np.uint8))
