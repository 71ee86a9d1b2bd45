"""Tests for bounding box geometry and region extraction."""

import numpy as np
import pytest

from detection import (
    BoundingBox,
    center_distance,
    clamp_bbox,
    expand_bbox,
    extract_candidate_region,
    extract_region,
)
from preprocessing import decode_image


class TestExpandBbox:
    def test_grows_symmetrically_inside_image(self):
        box = expand_bbox(BoundingBox(100, 100, 40, 20), 25, 1000, 1000)
        assert box == BoundingBox(95, 97.5, 50, 25)

    def test_overflow_at_origin_moves_to_opposite_side(self):
        box = expand_bbox(BoundingBox(0, 0, 40, 20), 50, 1000, 1000)
        assert box.x == 0
        assert box.y == 0
        assert box.width == 60
        assert box.height == 30

    def test_overflow_at_far_edge_moves_back(self):
        box = expand_bbox(BoundingBox(960, 980, 40, 20), 50, 1000, 1000)
        assert box.x + box.width == 1000
        assert box.y + box.height == 1000
        assert box.width == 60
        assert box.height == 30

    def test_box_larger_than_image_is_cut(self):
        box = expand_bbox(BoundingBox(0, 0, 100, 50), 100, 120, 60)
        assert box == BoundingBox(0, 0, 120, 60)

    def test_always_inside_image(self):
        for x, y in [(-10, -10), (0, 500), (990, 990), (400, 0)]:
            box = expand_bbox(BoundingBox(x, y, 30, 30), 25, 1000, 1000)
            assert box.x >= 0 and box.y >= 0
            assert box.x + box.width <= 1000
            assert box.y + box.height <= 1000


class TestClampBbox:
    def test_negative_origin_clamped(self):
        assert clamp_bbox(BoundingBox(-5, -3, 20, 10), 100, 100) == (0, 0, 15, 7)

    def test_far_edge_clamped(self):
        assert clamp_bbox(BoundingBox(90, 95, 20, 20), 100, 100) == (90, 95, 10, 5)

    def test_rounds_to_integers(self):
        assert clamp_bbox(BoundingBox(10.4, 10.6, 5.2, 5.0), 100, 100) == (10, 11, 6, 5)

    def test_outside_image_is_empty(self):
        _, _, w, h = clamp_bbox(BoundingBox(200, 200, 10, 10), 100, 100)
        assert w == 0 and h == 0


def test_center_distance():
    a = BoundingBox(0, 0, 10, 10)
    b = BoundingBox(30, 40, 10, 10)
    assert center_distance(a, b) == pytest.approx(50.0)


class TestExtractRegion:
    def test_crop_matches_slice(self):
        img = np.arange(100 * 100, dtype=np.uint32).reshape(100, 100).astype(np.uint8)
        region = extract_region(img, 10, 20, 30, 15)
        assert region.shape == (15, 30)
        assert np.array_equal(region, img[20:35, 10:40])

    def test_partially_outside_is_clamped(self):
        img = np.zeros((50, 80, 3), dtype=np.uint8)
        region = extract_region(img, -10, 40, 30, 30)
        assert region.shape == (10, 20, 3)

    def test_fully_outside_raises(self):
        img = np.zeros((50, 80), dtype=np.uint8)
        with pytest.raises(ValueError, match="outside"):
            extract_region(img, 100, 100, 10, 10)

    def test_returns_copy(self):
        img = np.zeros((20, 20), dtype=np.uint8)
        region = extract_region(img, 0, 0, 5, 5)
        region[:] = 255
        assert img.max() == 0


def test_extract_candidate_region_encodes_expanded_crop():
    img = np.zeros((200, 300, 3), dtype=np.uint8)
    data, expanded = extract_candidate_region(img, BoundingBox(100, 80, 40, 40), 25)
    region, fmt = decode_image(data)
    assert fmt == "PNG"
    assert expanded == BoundingBox(95, 75, 50, 50)
    assert region.shape == (50, 50, 3)


def test_extract_candidate_region_rejects_box_outside_image():
    img = np.zeros((100, 100), dtype=np.uint8)
    with pytest.raises(ValueError, match="outside"):
        extract_candidate_region(img, BoundingBox(500, 500, 20, 20), 25)
