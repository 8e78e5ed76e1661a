"""
Subject Extraction

Partitions aligned grayscale images into subject / background pixels using a
binary mask (dark = subject), and measures the subject's geometry within the
frame for canvas planning.
"""

import numpy as np
from dataclasses import dataclass
from typing import Dict

from ..utils import BoundingBox, MalformedInputError

SUBJECT_THRESHOLD = 128


@dataclass(frozen=True)
class SubjectSample:
    """Corresponding subject-only intensities from two images."""
    original: np.ndarray
    edited: np.ndarray
    subject_pixels: int
    total_pixels: int

    @property
    def subject_ratio(self) -> float:
        if self.total_pixels == 0:
            return 0.0
        return self.subject_pixels / self.total_pixels


@dataclass(frozen=True)
class SubjectGeometry:
    """Subject placement inside a frame."""
    bbox: BoundingBox
    frame_width: int
    frame_height: int
    subject_pixels: int
    has_subject: bool

    @property
    def area_ratio(self) -> float:
        """Bounding-box area relative to the full frame."""
        return self.bbox.area / float(self.frame_width * self.frame_height)

    @property
    def fill_ratio(self) -> float:
        """Largest fraction of either frame dimension spanned by the subject."""
        return max(self.bbox.width / self.frame_width, self.bbox.height / self.frame_height)

    def to_dict(self) -> Dict:
        return {
            "bbox": self.bbox.to_dict(),
            "frame": {"width": self.frame_width, "height": self.frame_height},
            "subject_pixels": self.subject_pixels,
            "area_ratio": self.area_ratio,
            "fill_ratio": self.fill_ratio,
            "has_subject": self.has_subject,
        }


def subject_mask(mask: np.ndarray, threshold: int = SUBJECT_THRESHOLD) -> np.ndarray:
    """Boolean (H, W) array, True where the mask marks the subject."""
    if mask.ndim != 2:
        raise MalformedInputError(f"Mask must be single-channel, got shape {mask.shape}")
    return mask < threshold


def extract_subject(
    original: np.ndarray,
    edited: np.ndarray,
    mask: np.ndarray,
    threshold: int = SUBJECT_THRESHOLD
) -> SubjectSample:
    """
    Extract subject-only intensity sequences from two aligned grayscale images.

    Pixels are visited in row-major order in both images so index i of the
    returned sequences refers to the same pixel position.

    Args:
        original: (H, W) grayscale original
        edited: (H, W) grayscale edited image
        mask: (H, W) grayscale mask
        threshold: Mask values below this are subject

    Returns:
        SubjectSample with equal-length sequences and pixel counts
    """
    if not (original.shape == edited.shape == mask.shape):
        raise MalformedInputError(
            f"Dimension mismatch: original {original.shape}, edited {edited.shape}, mask {mask.shape}"
        )

    selector = subject_mask(mask, threshold)

    # Boolean indexing on C-contiguous arrays is row-major
    return SubjectSample(
        original=original[selector],
        edited=edited[selector],
        subject_pixels=int(selector.sum()),
        total_pixels=int(selector.size),
    )


def measure_subject(mask: np.ndarray, threshold: int = SUBJECT_THRESHOLD) -> SubjectGeometry:
    """
    Compute the subject's bounding box at full resolution.

    An empty mask yields the full frame as bounding box with has_subject False.
    """
    selector = subject_mask(mask, threshold)
    h, w = selector.shape
    count = int(selector.sum())

    return SubjectGeometry(
        bbox=BoundingBox.from_mask(selector),
        frame_width=int(w),
        frame_height=int(h),
        subject_pixels=count,
        has_subject=count > 0,
    )
