"""Test the pixel buffer, sample collection and region clamping.

Tests for autodraw.pipeline.buffer:
    - PixelBuffer shape/dtype validation, copying and read-only lock
    - Construction from bytes and Pillow images
    - collect_samples: transparency threshold, counts, first-occurrence order
    - Region: strict constructor vs forgiving Region.clamped

Run:
    pytest tests/test_buffer.py -v
"""

from __future__ import annotations

import math

import numpy as np
import pytest
from PIL import Image

from autodraw.pipeline.buffer import (
    TRANSPARENCY_THRESHOLD,
    PixelBuffer,
    Region,
    collect_samples,
)


def _buffer(pixels: list[list[tuple[int, int, int, int]]]) -> PixelBuffer:
    return PixelBuffer(np.array(pixels, dtype=np.uint8))


# ---------------------------------------------------------------------------
# PixelBuffer
# ---------------------------------------------------------------------------


class TestPixelBuffer:
    def test_rejects_wrong_shape(self) -> None:
        with pytest.raises(ValueError, match="shape"):
            PixelBuffer(np.zeros((4, 4, 3), dtype=np.uint8))

    def test_rejects_wrong_dtype(self) -> None:
        with pytest.raises(ValueError, match="dtype"):
            PixelBuffer(np.zeros((4, 4, 4), dtype=np.float32))

    def test_is_read_only(self) -> None:
        buf = PixelBuffer(np.zeros((2, 2, 4), dtype=np.uint8))
        with pytest.raises(ValueError):
            buf.rgba[0, 0, 0] = 7

    def test_does_not_alias_input(self) -> None:
        src = np.zeros((2, 2, 4), dtype=np.uint8)
        buf = PixelBuffer(src)
        src[0, 0, 0] = 99
        assert buf.rgba[0, 0, 0] == 0

    def test_dimensions(self) -> None:
        buf = PixelBuffer(np.zeros((3, 5, 4), dtype=np.uint8))
        assert buf.width == 5
        assert buf.height == 3
        assert buf.size == (5, 3)
        assert not buf.is_empty()

    def test_empty(self) -> None:
        assert PixelBuffer(np.zeros((0, 0, 4), dtype=np.uint8)).is_empty()

    def test_from_bytes(self) -> None:
        data = bytes([255, 0, 0, 255, 0, 255, 0, 255])
        buf = PixelBuffer.from_bytes(data, width=2, height=1)
        assert tuple(buf.rgba[0, 1]) == (0, 255, 0, 255)

    def test_from_bytes_length_mismatch(self) -> None:
        with pytest.raises(ValueError, match="Expected 8 bytes"):
            PixelBuffer.from_bytes(b"\x00" * 7, width=2, height=1)

    def test_from_image(self) -> None:
        buf = PixelBuffer.from_image(Image.new("RGB", (3, 2), (10, 20, 30)))
        assert buf.size == (3, 2)
        assert (buf.alpha == 255).all()
        assert tuple(buf.rgb[1, 2]) == (10, 20, 30)

    def test_equality_by_content(self) -> None:
        a = PixelBuffer(np.full((2, 2, 4), 5, dtype=np.uint8))
        b = PixelBuffer(np.full((2, 2, 4), 5, dtype=np.uint8))
        assert a == b
        assert a != PixelBuffer(np.full((2, 2, 4), 6, dtype=np.uint8))


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------


class TestCollectSamples:
    def test_counts_in_first_occurrence_order(self) -> None:
        red, green, clear = (255, 0, 0, 255), (0, 255, 0, 255), (0, 0, 255, 0)
        samples = collect_samples(_buffer([[green, red], [red, clear]]))
        assert samples.rgb.tolist() == [[0, 255, 0], [255, 0, 0]]
        assert samples.counts.tolist() == [1, 2]
        assert samples.total == 3

    def test_transparency_threshold(self) -> None:
        below = (10, 10, 10, TRANSPARENCY_THRESHOLD - 1)
        at = (20, 20, 20, TRANSPARENCY_THRESHOLD)
        samples = collect_samples(_buffer([[below, at]]))
        assert samples.rgb.tolist() == [[20, 20, 20]]

    def test_all_transparent(self) -> None:
        samples = collect_samples(_buffer([[(1, 2, 3, 0)]]))
        assert len(samples) == 0
        assert samples.rgb.shape == (0, 3)


# ---------------------------------------------------------------------------
# Region
# ---------------------------------------------------------------------------


class TestRegion:
    def test_default_is_full(self) -> None:
        assert Region().is_full

    def test_strict_constructor(self) -> None:
        with pytest.raises(ValueError):
            Region(x=0.8, width=0.5)
        with pytest.raises(ValueError):
            Region(width=1.5)

    def test_clamped_shifts_origin(self) -> None:
        r = Region.clamped(0.9, 0.0, 0.5, 1.0)
        assert r.x == pytest.approx(0.5)
        assert r.width == pytest.approx(0.5)

    def test_clamped_limits_size(self) -> None:
        r = Region.clamped(0.3, -1.0, 2.0, -0.5)
        assert (r.x, r.y, r.width, r.height) == (0.0, 0.0, 1.0, 0.0)

    def test_clamped_non_finite_takes_defaults(self) -> None:
        r = Region.clamped(math.nan, "abc", math.inf, None)
        assert r.is_full
