"""Style/job schema validation and config loading.

Provides centralized validation for configuration using pydantic:
    - Style schema (style.v1.yaml): stroke-planning knobs (StyleConfig)
    - Job schema (autodraw_job.v1.yaml): source image, surface, region, style

StyleConfig is *forgiving*: it never rejects a value.  Out-of-range numbers
are clamped, unparseable entries fall back to the field default, unknown
keys are dropped; every correction is logged at WARNING.  The job schema is
strict (fail-fast with the offending path) since it names files and sizes.

Accepted key spellings include the legacy camelCase vocabulary
(``laneFanMultiplier``, ``coverageBoost``, ``spectralBoost``, ...).

Units:
    - Percentages: plain numbers, 100 == neutral
    - Region: normalized [0, 1] surface fractions
    - Surface: pixels

Usage:
    from autodraw.utils import validators

    style = validators.load_style_config("configs/style.v1.yaml")
    job = validators.load_job_config("job.yaml")
"""

import logging
import math
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)

MAX_COLOR_CAPACITY = 1300

STYLE_SCHEMA = "style.v1"
JOB_SCHEMA = "autodraw_job.v1"


class ConfigError(ValueError):
    """Raised when a config file cannot be parsed or validated."""

    pass


# ============================================================================
# STYLE SCHEMA V1
# ============================================================================

class DetailMode(str, Enum):
    BALANCED = "balanced"
    MAX = "max"
    MINIMAL = "minimal"


class PaletteOrder(str, Enum):
    DARK_FIRST = "dark-first"
    LIGHT_FIRST = "light-first"
    COVERAGE = "coverage"


_NUMERIC_BOUNDS: Dict[str, Tuple[float, float]] = {
    "smoothness": (0.0, 400.0),
    "lane_density": (10.0, 400.0),
    "coverage_pad": (10.0, 400.0),
    "dither_strength": (0.0, 400.0),
    "spectral_accent": (10.0, 400.0),
}

_KEY_ALIASES: Dict[str, str] = {
    "smoothnessPercent": "smoothness",
    "laneFanMultiplier": "lane_density",
    "laneDensity": "lane_density",
    "coverageBoost": "coverage_pad",
    "coveragePad": "coverage_pad",
    "ditherStrength": "dither_strength",
    "detailMode": "detail_mode",
    "lowResEnhancer": "low_res_enhancer",
    "edgeDetail": "edge_emphasis",
    "edgeEmphasis": "edge_emphasis",
    "microDetail": "micro_detail",
    "spectralBoost": "spectral_accent",
    "spectralAccent": "spectral_accent",
    "highlightGlaze": "highlight_glaze",
    "textureWeave": "texture_weave",
    "gradientEcho": "gradient_echo",
    "paletteSortMode": "palette_order",
    "paletteOrder": "palette_order",
}

_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}

_DETAIL_LABELS = {
    DetailMode.BALANCED: "Balanced detail",
    DetailMode.MAX: "Maximum detail",
    DetailMode.MINIMAL: "Minimal detail",
}


class StyleConfig(BaseModel):
    """Immutable stroke-planning style (style.v1 schema).

    Hashable, so it can participate directly in cache keys.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    smoothness: float = Field(40.0, description="Lane tightening percent (0 = loosest)")
    lane_density: float = Field(100.0, description="Lane fan multiplier percent")
    coverage_pad: float = Field(100.0, description="Run end-extension percent")
    dither_strength: float = Field(100.0, description="Error-diffusion strength percent (0 = off)")
    detail_mode: DetailMode = Field(DetailMode.BALANCED, description="Detail accent aggressiveness")
    low_res_enhancer: bool = Field(True, description="Force extra lanes at small scales")
    edge_emphasis: bool = Field(True, description="Emit edge accents on color boundaries")
    micro_detail: bool = Field(True, description="Emit accents on very short runs")
    spectral_accent: float = Field(120.0, description="Glaze/weave intensity percent")
    highlight_glaze: bool = Field(True, description="Double strokes on bright colors")
    texture_weave: bool = Field(False, description="Diagonal weave on saturated colors")
    gradient_echo: bool = Field(True, description="Echo strokes around detail/edge runs")
    palette_order: PaletteOrder = Field(PaletteOrder.DARK_FIRST, description="Palette group ordering")

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out: Dict[str, Any] = {}
        for key, value in data.items():
            name = _KEY_ALIASES.get(key, key)
            if name not in cls.model_fields:
                logger.warning("Ignoring unknown style key %r", key)
                continue
            out[name] = value
        return out

    @field_validator(*_NUMERIC_BOUNDS.keys(), mode="before")
    @classmethod
    def clamp_numeric(cls, v: Any, info: ValidationInfo) -> float:
        name = info.field_name
        default = cls.model_fields[name].default
        lo, hi = _NUMERIC_BOUNDS[name]
        if isinstance(v, bool):
            num = None
        else:
            try:
                num = float(v)
            except (TypeError, ValueError):
                num = None
        if num is None or not math.isfinite(num):
            logger.warning("Style %s=%r is not a finite number; using default %s", name, v, default)
            return default
        if num < lo or num > hi:
            clamped = min(hi, max(lo, num))
            logger.warning("Style %s=%s outside [%s, %s]; clamped to %s", name, num, lo, hi, clamped)
            return clamped
        return num

    @field_validator(
        "low_res_enhancer", "edge_emphasis", "micro_detail",
        "highlight_glaze", "texture_weave", "gradient_echo",
        mode="before",
    )
    @classmethod
    def coerce_bool(cls, v: Any, info: ValidationInfo) -> bool:
        if isinstance(v, bool):
            return v
        if isinstance(v, int) and v in (0, 1):
            return bool(v)
        if isinstance(v, str):
            word = v.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
        default = cls.model_fields[info.field_name].default
        logger.warning("Style %s=%r is not a boolean; using default %s", info.field_name, v, default)
        return default

    @field_validator("detail_mode", "palette_order", mode="before")
    @classmethod
    def coerce_choice(cls, v: Any, info: ValidationInfo) -> Enum:
        enum_type = DetailMode if info.field_name == "detail_mode" else PaletteOrder
        if isinstance(v, enum_type):
            return v
        if isinstance(v, str):
            try:
                return enum_type(v.strip().lower())
            except ValueError:
                pass
        default = cls.model_fields[info.field_name].default
        logger.warning(
            "Style %s=%r not one of %s; using default %r",
            info.field_name, v, [m.value for m in enum_type], default.value,
        )
        return default

    def with_changes(self, **changes: Any) -> "StyleConfig":
        """Return a new validated style with ``changes`` applied."""
        return StyleConfig.model_validate({**self.model_dump(), **changes})

    def summary_label(self) -> str:
        """Human-readable one-liner, e.g. ``Balanced detail • 40% smooth • glow glaze``."""
        extras = []
        if self.highlight_glaze:
            extras.append("glow glaze")
        if self.texture_weave:
            extras.append("texture weave")
        if self.gradient_echo:
            extras.append("edge echo")
        label = f"{_DETAIL_LABELS[self.detail_mode]} • {self.smoothness:g}% smooth"
        if extras:
            label += " • " + " + ".join(extras)
        return label


# ============================================================================
# JOB SCHEMA
# ============================================================================

class SurfaceSpec(BaseModel):
    """Target drawing surface size in pixels."""
    width: float = Field(..., gt=0, le=100_000, description="Surface width (px)")
    height: float = Field(..., gt=0, le=100_000, description="Surface height (px)")


class RegionSpec(BaseModel):
    """Sub-rectangle of the surface in normalized [0, 1] coordinates.

    Values are taken as-is here; the planner clamps them.
    """
    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0


class CompileJob(BaseModel):
    """Job schema (autodraw_job.v1): everything one compile run needs."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field(JOB_SCHEMA, alias="schema", description="Schema version")
    source_image: str = Field(..., description="Input image path")
    max_dimension: int = Field(500, ge=64, le=4096, description="Longest side after resize (px)")
    max_colors: int = Field(MAX_COLOR_CAPACITY, ge=1, le=MAX_COLOR_CAPACITY, description="Palette budget")
    surface: SurfaceSpec
    region: Optional[RegionSpec] = None
    style: StyleConfig = Field(default_factory=StyleConfig)
    output: str = Field("outputs/commands.yaml", description="Commands YAML output path")

    @field_validator("schema_version")
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != JOB_SCHEMA:
            raise ValueError(f"Expected schema '{JOB_SCHEMA}', got '{v}'")
        return v

    @field_validator("source_image")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source_image must be a non-empty path")
        return v


# ============================================================================
# PUBLIC API
# ============================================================================

def _load_mapping(path: Path, what: str) -> Dict[str, Any]:
    import yaml

    from . import fs

    if not path.exists():
        raise FileNotFoundError(f"{what} not found: {path}")
    try:
        data = fs.load_yaml(path)
    except yaml.YAMLError as e:
        raise ConfigError(f"{what} is not valid YAML at {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{what} at {path} must be a mapping, got {type(data).__name__}")
    return data


def load_style_config(path: Union[str, Path]) -> StyleConfig:
    """Load a style config from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to a style.v1.yaml file; the optional ``schema`` key must be
        ``style.v1``, every other key is a style field.

    Returns
    -------
    StyleConfig
        Validated (clamped) style

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ConfigError
        If the document is not YAML, not a mapping, or has a wrong schema
    """
    path = Path(path)
    data = dict(_load_mapping(path, "Style config"))
    schema = data.pop("schema", STYLE_SCHEMA)
    if schema != STYLE_SCHEMA:
        raise ConfigError(f"Expected schema '{STYLE_SCHEMA}' in {path}, got '{schema}'")
    style = StyleConfig.model_validate(data)
    logger.debug("Loaded style from %s: %s", path, style.summary_label())
    return style


def load_job_config(path: Union[str, Path]) -> CompileJob:
    """Load and validate a compile job from YAML.

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ConfigError
        If parsing or validation fails (with actionable error message)
    """
    path = Path(path)
    data = _load_mapping(path, "Job config")
    try:
        return CompileJob.model_validate(data)
    except ValueError as e:
        raise ConfigError(f"Job config validation failed at {path}: {e}") from e
