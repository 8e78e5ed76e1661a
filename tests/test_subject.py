"""
Tests for subject extraction and geometry.
"""

import numpy as np
import pytest

from resale_studio.quality.subject import extract_subject, measure_subject, subject_mask
from resale_studio.utils import BoundingBox, MalformedInputError

from conftest import HEIGHT, WIDTH, SUBJECT_BOX, make_mask


def gray(value, shape=(HEIGHT, WIDTH)):
    return np.full(shape, value, dtype=np.uint8)


class TestSubjectMask:

    def test_threshold_is_strict(self):
        mask = np.array([[0, 127, 128, 255]], dtype=np.uint8)
        assert subject_mask(mask).tolist() == [[True, True, False, False]]

    def test_rejects_color_mask(self):
        with pytest.raises(MalformedInputError):
            subject_mask(np.zeros((4, 4, 3), dtype=np.uint8))


class TestExtractSubject:

    def test_counts_subject_pixels(self):
        sample = extract_subject(gray(10), gray(20), make_mask())
        _, _, w, h = SUBJECT_BOX
        assert sample.subject_pixels == w * h
        assert sample.total_pixels == WIDTH * HEIGHT
        assert len(sample.original) == len(sample.edited) == w * h
        assert sample.subject_ratio == pytest.approx(w * h / (WIDTH * HEIGHT))

    def test_row_major_correspondence(self):
        original = np.arange(16, dtype=np.uint8).reshape(4, 4)
        edited = original + 100
        mask = np.full((4, 4), 255, dtype=np.uint8)
        mask[1, 2] = 0
        mask[2, 0] = 0
        sample = extract_subject(original, edited, mask)
        assert sample.original.tolist() == [6, 8]
        assert sample.edited.tolist() == [106, 108]

    def test_only_masked_pixels_are_sampled(self):
        original = gray(50)
        edited = gray(50)
        edited[0, 0] = 200  # background change
        sample = extract_subject(original, edited, make_mask())
        assert np.array_equal(sample.original, sample.edited)

    def test_empty_mask_yields_empty_sample(self):
        sample = extract_subject(gray(10), gray(10), make_mask(box=None))
        assert sample.subject_pixels == 0
        assert sample.original.size == 0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(MalformedInputError):
            extract_subject(gray(10), gray(10, (HEIGHT, WIDTH + 1)), make_mask())


class TestMeasureSubject:

    def test_bounding_box(self):
        geometry = measure_subject(make_mask())
        assert geometry.has_subject
        assert geometry.bbox.to_xywh() == SUBJECT_BOX
        assert geometry.frame_width == WIDTH
        assert geometry.frame_height == HEIGHT

    def test_ratios(self):
        geometry = measure_subject(make_mask())
        x, y, w, h = SUBJECT_BOX
        assert geometry.area_ratio == pytest.approx(w * h / (WIDTH * HEIGHT))
        assert geometry.fill_ratio == pytest.approx(max(w / WIDTH, h / HEIGHT))

    def test_empty_mask_falls_back_to_full_frame(self):
        geometry = measure_subject(make_mask(box=None))
        assert not geometry.has_subject
        assert geometry.bbox == BoundingBox(0, 0, WIDTH, HEIGHT)
        assert geometry.subject_pixels == 0


class TestBoundingBox:

    def test_properties(self):
        bbox = BoundingBox(10, 20, 30, 40)
        assert bbox.x2 == 40
        assert bbox.y2 == 60
        assert bbox.center == (25.0, 40.0)
        assert bbox.area == 1200
        assert bbox.to_dict() == {"x": 10, "y": 20, "width": 30, "height": 40}
