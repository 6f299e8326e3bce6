"""Tests for pixel buffers, masks and value types."""

from __future__ import annotations

import math

import numpy as np
import pytest

from skintonex.engine.types import (
    RGB,
    BoundingBox,
    InvalidImageError,
    RawImageBuffer,
    SkinMask,
    finite_or,
)


class TestRawImageBuffer:
    def test_owns_a_read_only_copy(self) -> None:
        source = np.zeros((2, 3, 3), dtype=np.uint8)
        image = RawImageBuffer(source)
        source[0, 0] = 255
        assert image.pixels[0, 0, 0] == 0
        with pytest.raises(ValueError):
            image.pixels[0, 0, 0] = 1

    def test_dimensions(self) -> None:
        image = RawImageBuffer.filled(4, 2, (1, 2, 3))
        assert (image.width, image.height, image.pixel_count) == (4, 2, 8)
        assert len(image) == 24
        assert tuple(image.pixels[1, 3]) == (1, 2, 3)

    @pytest.mark.parametrize(
        "pixels",
        [np.zeros((2, 2), dtype=np.uint8), np.zeros((2, 2, 4), dtype=np.uint8), np.zeros((2, 2, 3), dtype=np.int16)],
    )
    def test_rejects_wrong_layout(self, pixels: np.ndarray) -> None:
        with pytest.raises(InvalidImageError):
            RawImageBuffer(pixels)

    def test_from_bytes(self) -> None:
        image = RawImageBuffer.from_bytes(bytes(range(12)), width=2, height=2)
        assert tuple(image.pixels[1, 0]) == (6, 7, 8)
        assert image.to_bytes() == bytes(range(12))

    def test_from_bytes_rejects_wrong_length(self) -> None:
        with pytest.raises(InvalidImageError, match="Expected 12 bytes"):
            RawImageBuffer.from_bytes(bytes(11), width=2, height=2)

    def test_from_bytes_rejects_alpha(self) -> None:
        with pytest.raises(InvalidImageError):
            RawImageBuffer.from_bytes(bytes(16), width=2, height=2, channels=4)

    def test_from_float_array(self) -> None:
        image = RawImageBuffer.from_array(np.full((1, 1, 3), 127.6))
        assert image.pixels[0, 0, 0] == 128

    @pytest.mark.parametrize("value", [-1.0, 256.0, math.nan])
    def test_from_array_rejects_out_of_range(self, value: float) -> None:
        with pytest.raises(InvalidImageError):
            RawImageBuffer.from_array(np.full((1, 1, 3), value))

    def test_filled_accepts_rgb(self) -> None:
        assert RawImageBuffer.filled(1, 1, RGB(10.4, 20.6, 300.0)).to_bytes() == bytes([10, 21, 255])

    def test_empty(self) -> None:
        assert RawImageBuffer.empty().is_empty

    def test_equality_compares_pixels(self) -> None:
        assert RawImageBuffer.filled(2, 2, (5, 5, 5)) == RawImageBuffer.filled(2, 2, (5, 5, 5))
        assert RawImageBuffer.filled(2, 2, (5, 5, 5)) != RawImageBuffer.filled(2, 2, (5, 5, 6))
        assert RawImageBuffer.filled(2, 1, (5, 5, 5)) != RawImageBuffer.filled(1, 2, (5, 5, 5))


class TestSkinMask:
    def test_normalizes_to_binary(self) -> None:
        mask = SkinMask(np.array([[0, 1], [7, 255]], dtype=np.uint8))
        assert mask.mask.tolist() == [[0, 255], [255, 255]]
        assert mask.skin_pixel_count == 3
        assert mask.skin_ratio == pytest.approx(0.75)

    def test_empty_mask_has_zero_ratio(self) -> None:
        assert SkinMask(np.zeros((0, 0), dtype=np.uint8)).skin_ratio == 0.0

    def test_rejects_color_array(self) -> None:
        with pytest.raises(InvalidImageError):
            SkinMask(np.zeros((2, 2, 3), dtype=np.uint8))

    def test_matches_image(self) -> None:
        mask = SkinMask(np.zeros((2, 4), dtype=np.uint8))
        assert mask.matches(RawImageBuffer.filled(4, 2, (0, 0, 0)))
        assert not mask.matches(RawImageBuffer.filled(2, 4, (0, 0, 0)))


class TestValueTypes:
    def test_bounding_box_edges(self) -> None:
        box = BoundingBox(10, 20, 30, 40)
        assert (box.right, box.bottom) == (40, 60)
        assert box.center == (25.0, 40.0)

    def test_finite_or(self) -> None:
        assert finite_or(3.0, 0.0) == 3.0
        assert finite_or(math.inf, 0.0) == 0.0
        assert finite_or(math.nan, 1.5) == 1.5
