"""
Mask Post-processing

Generated masks come back as arbitrary rasters (anti-aliased edges, RGB, a
different size than the input). These helpers conform them to a strict
two-tone mask at the source resolution.
"""

import numpy as np
import cv2
from typing import Tuple

from ..utils import decode_image, encode_image, resize_image


def binarize_mask(mask: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Map values below threshold to 0 (subject) and the rest to 255 (background)."""
    if mask.ndim == 3:
        mask = cv2.cvtColor(mask, cv2.COLOR_RGB2GRAY)
    return np.where(mask < threshold, 0, 255).astype(np.uint8)


def conform_mask(mask_bytes: bytes, size: Tuple[int, int], threshold: int = 128) -> bytes:
    """
    Decode, resize (nearest) and binarize a mask, returning PNG bytes.

    Args:
        mask_bytes: Encoded mask from the generator
        size: Target (width, height), the source image's size
        threshold: Subject / background luminance cut

    Returns:
        Two-tone PNG bytes of exactly ``size``
    """
    mask = decode_image(mask_bytes, grayscale=True)
    mask = resize_image(mask, size, method='nearest')
    return encode_image(binarize_mask(mask, threshold), ext='.png')


def subject_fraction(mask: np.ndarray, threshold: int = 128) -> float:
    """Fraction of mask pixels marked as subject."""
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask < threshold)) / mask.size
