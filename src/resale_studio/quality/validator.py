"""
Subject Integrity Validation

Compares an original product photo with its background-replaced counterpart,
restricted to the subject region given by the mask, and renders a pass/fail
verdict with a forensic log.
"""

import time
import numpy as np
from dataclasses import dataclass
from typing import Optional
import logging

from ..config import QAConfig
from ..utils import decode_image, resize_image, sha256_digest, utc_iso_now, elapsed_ms
from .ssim import compute_ssim
from .subject import extract_subject
from .forensics import (
    ForensicLog,
    MaskStageOutput,
    InpaintStageOutput,
    QAStageOutput,
    STAGE_MASK,
    STAGE_INPAINT,
    STAGE_QA,
    RECOMMEND_PASS,
    RECOMMEND_FAIL,
    RECOMMEND_ERROR,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpstreamTimings:
    """What the earlier stages reported, carried into the forensic log."""
    mask_time_ms: int = 0
    inpaint_time_ms: int = 0
    smart_prompt: str = ""
    model: str = ""


@dataclass(frozen=True)
class QAOutcome:
    """Result of one validation call. Always structurally complete."""
    qa_status: str
    ssim_score: float
    pixel_delta_percent: float
    forensic_log: ForensicLog
    success: bool
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.qa_status == "pass"


def pixel_delta_percent(original: np.ndarray, edited: np.ndarray, noise_threshold: int = 10) -> float:
    """Percentage of samples whose absolute intensity change exceeds the noise threshold."""
    if original.size == 0:
        return 0.0
    delta = np.abs(original.astype(np.int16) - edited.astype(np.int16))
    changed = int(np.count_nonzero(delta > noise_threshold))
    return changed / original.size * 100.0


class QAValidator:
    """
    Stateless subject-integrity validator.

    Each validate() call is an independent computation over its three inputs;
    the only side effect is logging.
    """

    def __init__(self, config: Optional[QAConfig] = None):
        self.config = config or QAConfig()

    def validate(
        self,
        original: bytes,
        edited: bytes,
        mask: bytes,
        image_id: str,
        upstream: Optional[UpstreamTimings] = None
    ) -> QAOutcome:
        """
        Validate that the edited image preserved the subject.

        Args:
            original: Encoded original image
            edited: Encoded edited image, same framing as the original
            mask: Encoded binary mask (dark = subject)
            image_id: Identifier for the forensic log
            upstream: Timings and prompt reported by earlier stages

        Returns:
            QAOutcome; never raises
        """
        upstream = upstream or UpstreamTimings()
        # Forensic logs require an identifier
        image_id = image_id or "unknown"
        start = time.perf_counter()
        timestamp_start = utc_iso_now()
        audit_trail = []
        threshold = self.config.ssim_threshold
        tag = image_id[:8]

        logger.info(f"[{tag}] QA: starting validation")
        logger.debug(
            f"[{tag}] QA: original {len(original) / 1024:.1f} KB, "
            f"edited {len(edited) / 1024:.1f} KB, mask {len(mask) / 1024:.1f} KB"
        )

        try:
            # Step 1: hash the untouched inputs
            original_hash = sha256_digest(original)
            edited_hash = sha256_digest(edited)
            mask_hash = sha256_digest(mask)
            audit_trail.append("Hashes generated for all images")

            # Step 2: grayscale, conformed to the original's resolution
            original_gray = decode_image(original, grayscale=True)
            height, width = original_gray.shape
            logger.debug(f"[{tag}] QA: image dimensions {width}x{height}")

            edited_gray = resize_image(decode_image(edited, grayscale=True), (width, height), method='bilinear')
            mask_gray = resize_image(decode_image(mask, grayscale=True), (width, height), method='nearest')
            audit_trail.append(f"Pixel data extracted for SSIM analysis ({width}x{height} grayscale)")

            # Step 3: subject pixels only
            sample = extract_subject(original_gray, edited_gray, mask_gray, self.config.mask_threshold)
            audit_trail.append(f"Subject area: {sample.subject_pixels} pixels extracted")
            logger.info(
                f"[{tag}] QA: subject pixels {sample.subject_pixels:,} "
                f"({sample.subject_ratio * 100:.1f}% of image)"
            )

            # Step 4: SSIM
            ssim = compute_ssim(sample.original, sample.edited)
            ssim_percent = round(ssim * 100, 2)
            audit_trail.append(f"SSIM (subject area): {ssim_percent}%")
            logger.info(f"[{tag}] QA: SSIM {ssim_percent}% (threshold {threshold * 100:g}%)")

            # Step 5: advisory pixel delta
            delta = pixel_delta_percent(sample.original, sample.edited, self.config.pixel_noise_threshold)
            audit_trail.append(f"Pixel delta (reference): {delta:.2f}%")

            # Step 6-7: verdict
            passed = ssim >= threshold
            qa_status = "pass" if passed else "fail"
            if passed:
                audit_trail.append(f"QA PASS: SSIM {ssim_percent}% >= {threshold * 100:g}%")
                logger.info(f"[{tag}] QA PASS: subject integrity preserved")
            else:
                audit_trail.append(f"QA FAIL: SSIM {ssim_percent}% < {threshold * 100:g}%")
                logger.info(f"[{tag}] QA FAIL: subject may have been modified")

            qa_time = elapsed_ms(start)
            total_time = upstream.mask_time_ms + upstream.inpaint_time_ms + qa_time
            logger.info(f"[{tag}] QA time {qa_time}ms, pipeline total {total_time}ms")

            forensic_log = ForensicLog(
                image_id=image_id,
                timestamp_start=timestamp_start,
                timestamp_end=utc_iso_now(),
                processing_time_ms=total_time,
                original_hash=original_hash,
                edited_hash=edited_hash,
                mask_hash=mask_hash,
                agents_executed=(STAGE_MASK, STAGE_INPAINT, STAGE_QA),
                agent1_output=MaskStageOutput(upstream.mask_time_ms, True),
                agent2_output=InpaintStageOutput(upstream.inpaint_time_ms, upstream.model, upstream.smart_prompt, True),
                qa_output=QAStageOutput(
                    pixel_delta_percent=round(delta, 2),
                    ssim_score=round(ssim, 3),
                    qa_status=qa_status,
                    subject_integrity="preserved" if passed else "modified",
                    recommendation=RECOMMEND_PASS if passed else RECOMMEND_FAIL,
                ),
                vinted_safe=passed,
                audit_trail=audit_trail,
            )

            return QAOutcome(
                qa_status=qa_status,
                ssim_score=ssim,
                pixel_delta_percent=round(delta, 2),
                forensic_log=forensic_log,
                success=True,
            )

        except Exception as e:
            qa_time = elapsed_ms(start)
            message = str(e) or e.__class__.__name__
            logger.error(f"[{tag}] QA failed after {qa_time}ms: {message}")
            audit_trail.append(f"ERROR: {message}")

            forensic_log = ForensicLog(
                image_id=image_id,
                timestamp_start=timestamp_start,
                timestamp_end=utc_iso_now(),
                processing_time_ms=qa_time,
                original_hash="",
                edited_hash="",
                mask_hash="",
                agents_executed=(STAGE_MASK, STAGE_INPAINT, STAGE_QA),
                agent1_output=MaskStageOutput(upstream.mask_time_ms, True),
                agent2_output=InpaintStageOutput(upstream.inpaint_time_ms, upstream.model, upstream.smart_prompt, True),
                qa_output=QAStageOutput(
                    pixel_delta_percent=-1.0,
                    ssim_score=-1.0,
                    qa_status="fail",
                    subject_integrity="modified",
                    recommendation=RECOMMEND_ERROR,
                ),
                vinted_safe=False,
                audit_trail=audit_trail,
            )

            return QAOutcome(
                qa_status="fail",
                ssim_score=-1.0,
                pixel_delta_percent=-1.0,
                forensic_log=forensic_log,
                success=False,
                error=message,
            )
