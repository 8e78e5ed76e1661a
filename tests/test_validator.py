"""
Tests for the subject-integrity validator.

Tests cover:
- Pass / fail verdicts and the inclusive threshold
- Forensic log contents (hashes, timings, audit trail)
- Error handling (empty subject, undecodable input, size mismatch)
- Idempotence
"""

import hashlib

import cv2
import numpy as np
import pytest

from resale_studio.config import QAConfig
from resale_studio.quality import validator as validator_module
from resale_studio.quality.validator import QAValidator, UpstreamTimings, pixel_delta_percent
from resale_studio.quality.ssim import compute_ssim
from resale_studio.quality.subject import extract_subject
from resale_studio.utils import decode_image, encode_image

from conftest import SUBJECT_BOX, make_photo, png

IMAGE_ID = "3f2c9a1e-0000-4000-8000-000000000001"


@pytest.fixture
def validator():
    return QAValidator(QAConfig())


class TestVerdict:

    def test_background_only_change_passes(self, validator, original_png, edited_png, mask_png):
        outcome = validator.validate(original_png, edited_png, mask_png, IMAGE_ID)

        assert outcome.success
        assert outcome.passed
        assert outcome.qa_status == "pass"
        assert outcome.ssim_score == 1.0
        assert outcome.pixel_delta_percent == 0.0

        log = outcome.forensic_log
        assert log.vinted_safe is True
        assert log.qa_output.subject_integrity == "preserved"
        assert log.qa_output.recommendation == "Ready for Vinted"
        assert log.agents_executed == ("mask", "inpaint", "qa")

    def test_subject_change_fails(self, validator, original_png, tampered_png, mask_png):
        outcome = validator.validate(original_png, tampered_png, mask_png, IMAGE_ID)

        assert outcome.success
        assert outcome.qa_status == "fail"
        assert outcome.ssim_score < 0.92
        assert outcome.pixel_delta_percent > 20.0

        log = outcome.forensic_log
        assert log.vinted_safe is False
        assert log.qa_output.subject_integrity == "modified"
        assert log.qa_output.recommendation == "Manual review required"
        assert log.audit_trail[-1].startswith("QA FAIL")

    def test_threshold_is_inclusive(self, validator, original_png, edited_png, mask_png, monkeypatch):
        monkeypatch.setattr(validator_module, "compute_ssim", lambda x, y: 0.92)
        outcome = validator.validate(original_png, edited_png, mask_png, IMAGE_ID)
        assert outcome.qa_status == "pass"
        assert outcome.forensic_log.vinted_safe

    def test_just_below_threshold_fails(self, validator, original_png, edited_png, mask_png, monkeypatch):
        monkeypatch.setattr(validator_module, "compute_ssim", lambda x, y: 0.9199)
        outcome = validator.validate(original_png, edited_png, mask_png, IMAGE_ID)
        assert outcome.qa_status == "fail"
        assert not outcome.forensic_log.vinted_safe

    def test_pair_scoring_exactly_at_threshold_passes(self, original_png, mask_png):
        photo = make_photo(background=(90, 60, 40))
        x, y, w, h = SUBJECT_BOX
        photo[y:y + h, x:x + w] = np.clip(photo[y:y + h, x:x + w].astype(np.int16) + 8, 0, 255)
        shifted_png = png(photo)

        sample = extract_subject(
            decode_image(original_png, grayscale=True),
            decode_image(shifted_png, grayscale=True),
            decode_image(mask_png, grayscale=True),
        )
        exact = compute_ssim(sample.original, sample.edited)
        assert exact < 1.0

        at_threshold = QAValidator(QAConfig(ssim_threshold=exact)).validate(
            original_png, shifted_png, mask_png, IMAGE_ID
        )
        above_score = QAValidator(QAConfig(ssim_threshold=float(np.nextafter(exact, 2.0)))).validate(
            original_png, shifted_png, mask_png, IMAGE_ID
        )
        assert at_threshold.qa_status == "pass"
        assert above_score.qa_status == "fail"

    def test_custom_threshold(self, original_png, tampered_png, mask_png):
        outcome = QAValidator(QAConfig(ssim_threshold=-1.0)).validate(
            original_png, tampered_png, mask_png, IMAGE_ID
        )
        assert outcome.qa_status == "pass"


class TestForensicLog:

    def test_hashes_cover_raw_inputs(self, validator, original_png, edited_png, mask_png):
        log = validator.validate(original_png, edited_png, mask_png, IMAGE_ID).forensic_log

        assert log.original_hash == "sha256:" + hashlib.sha256(original_png).hexdigest()
        assert log.edited_hash == "sha256:" + hashlib.sha256(edited_png).hexdigest()
        assert log.mask_hash == "sha256:" + hashlib.sha256(mask_png).hexdigest()

    def test_upstream_timings_are_recorded(self, validator, original_png, edited_png, mask_png):
        upstream = UpstreamTimings(mask_time_ms=100, inpaint_time_ms=200, smart_prompt="loft", model="imagen")
        log = validator.validate(original_png, edited_png, mask_png, IMAGE_ID, upstream).forensic_log

        assert log.image_id == IMAGE_ID
        assert log.processing_time_ms >= 300
        assert log.agent1_output.mask_generation_time_ms == 100
        assert log.agent2_output.inpaint_time_ms == 200
        assert log.agent2_output.smart_prompt == "loft"
        assert log.agent2_output.model == "imagen"
        assert log.timestamp_start.endswith("Z")
        assert log.timestamp_start <= log.timestamp_end

    def test_audit_trail_order(self, validator, original_png, edited_png, mask_png):
        trail = validator.validate(original_png, edited_png, mask_png, IMAGE_ID).forensic_log.audit_trail

        assert len(trail) == 6
        assert trail[0] == "Hashes generated for all images"
        assert trail[1].startswith("Pixel data extracted")
        assert trail[2] == "Subject area: 768 pixels extracted"
        assert trail[3].startswith("SSIM (subject area):")
        assert trail[4].startswith("Pixel delta (reference):")
        assert trail[5].startswith("QA PASS")

    def test_scores_are_rounded(self, validator, original_png, edited_png, mask_png, monkeypatch):
        monkeypatch.setattr(validator_module, "compute_ssim", lambda x, y: 0.987654)
        outcome = validator.validate(original_png, edited_png, mask_png, IMAGE_ID)
        assert outcome.forensic_log.qa_output.ssim_score == 0.988
        assert outcome.ssim_score == 0.987654


class TestErrors:

    def test_empty_subject_is_a_failed_validation(self, validator, original_png, edited_png, empty_mask_png):
        outcome = validator.validate(original_png, edited_png, empty_mask_png, IMAGE_ID)

        assert outcome.success is False
        assert outcome.qa_status == "fail"
        assert outcome.ssim_score == -1.0
        assert outcome.pixel_delta_percent == -1.0
        assert outcome.error

        log = outcome.forensic_log
        assert log.vinted_safe is False
        assert log.qa_output.recommendation == "QA process failed - manual review required"
        assert log.audit_trail[-1].startswith("ERROR:")
        assert log.original_hash == log.edited_hash == log.mask_hash == ""

    def test_undecodable_edit_never_raises(self, validator, original_png, mask_png):
        outcome = validator.validate(original_png, b"not an image", mask_png, IMAGE_ID)
        assert outcome.success is False
        assert outcome.qa_status == "fail"
        assert "decode" in outcome.error

    def test_edited_size_is_conformed(self, validator, original_png, edited_png, mask_png):
        edited = decode_image(edited_png)
        larger = cv2.resize(edited, (edited.shape[1] * 2, edited.shape[0] * 2), interpolation=cv2.INTER_NEAREST)
        outcome = validator.validate(original_png, encode_image(larger), mask_png, IMAGE_ID)

        assert outcome.success
        assert outcome.ssim_score > 0.9

    def test_mask_size_is_conformed(self, validator, original_png, edited_png):
        mask = np.full((96, 128), 255, dtype=np.uint8)
        mask[24:72, 32:96] = 0
        outcome = validator.validate(original_png, edited_png, encode_image(mask), IMAGE_ID)

        assert outcome.success
        assert outcome.qa_status == "pass"

    def test_empty_image_id_is_defaulted(self, validator, original_png, edited_png, mask_png):
        outcome = validator.validate(original_png, edited_png, mask_png, "")
        assert outcome.success
        assert outcome.forensic_log.image_id == "unknown"

    def test_empty_image_id_on_error_path(self, validator, original_png, mask_png):
        outcome = validator.validate(original_png, b"garbage", mask_png, "")
        assert outcome.success is False
        assert outcome.forensic_log.image_id == "unknown"


class TestIdempotence:

    def test_repeat_validation_is_identical(self, validator, original_png, tampered_png, mask_png):
        first = validator.validate(original_png, tampered_png, mask_png, IMAGE_ID)
        second = validator.validate(original_png, tampered_png, mask_png, IMAGE_ID)

        assert first.qa_status == second.qa_status
        assert first.ssim_score == second.ssim_score
        assert first.pixel_delta_percent == second.pixel_delta_percent
        assert first.forensic_log.original_hash == second.forensic_log.original_hash
        assert first.forensic_log.audit_trail == second.forensic_log.audit_trail


class TestPixelDelta:

    def test_noise_threshold_is_exclusive(self):
        original = np.array([100, 100, 100, 100], dtype=np.uint8)
        edited = np.array([110, 111, 90, 100], dtype=np.uint8)
        assert pixel_delta_percent(original, edited, 10) == 25.0

    def test_empty_sample(self):
        empty = np.array([], dtype=np.uint8)
        assert pixel_delta_percent(empty, empty) == 0.0
