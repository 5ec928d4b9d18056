"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Color profiling, perceptual distance and hex helpers (color)
    - Atomic I/O and image loading (fs)
    - Style/job config validation (validators)
    - Unified logging (logging_config)

No module in utils/ may import from upper layers (pipeline, emission, commands).

Convenience imports:
    from autodraw.utils import color, fs, validators
    from autodraw.utils.logging_config import setup_logging, get_logger
"""

from . import color
from . import fs
from . import logging_config
from . import validators

from .logging_config import get_logger, push_context, setup_logging

__all__ = [
    # Modules
    "color",
    "fs",
    "logging_config",
    "validators",
    # Functions
    "get_logger",
    "push_context",
    "setup_logging",
]
