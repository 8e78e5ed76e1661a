"""
Global SSIM

Single-window structural similarity over a whole pixel population. Unlike the
canonical sliding-window SSIM, the entire subject sample is treated as one
window: mean, variance and covariance are computed once over all pixels. This
trades spatial sensitivity for a deterministic score whose meaning the QA
threshold is calibrated against, so it must not be swapped for windowed SSIM.
"""

import numpy as np
from typing import Sequence, Union

from ..utils import MalformedInputError

DYNAMIC_RANGE = 255
K1 = 0.01
K2 = 0.03
C1 = (K1 * DYNAMIC_RANGE) ** 2
C2 = (K2 * DYNAMIC_RANGE) ** 2

PixelSample = Union[np.ndarray, Sequence[float]]


def compute_ssim(x: PixelSample, y: PixelSample) -> float:
    """
    Compute global SSIM between two corresponding grayscale samples.

    Args:
        x: Intensities (0-255) from the first image
        y: Intensities from the second image, same pixel order as x

    Returns:
        Similarity score; 1.0 for identical samples

    Raises:
        MalformedInputError: if the samples are empty or differ in length
    """
    x = np.asarray(x, dtype=np.float64).ravel()
    y = np.asarray(y, dtype=np.float64).ravel()

    if x.size == 0 or y.size == 0:
        raise MalformedInputError("Cannot compute SSIM on an empty pixel sample (no subject pixels in mask)")
    if x.size != y.size:
        raise MalformedInputError(f"Pixel samples differ in length: {x.size} != {y.size}")

    mean_x = x.mean()
    mean_y = y.mean()
    dx = x - mean_x
    dy = y - mean_y

    # Population statistics
    var_x = np.mean(dx * dx)
    var_y = np.mean(dy * dy)
    cov_xy = np.mean(dx * dy)

    numerator = (2 * mean_x * mean_y + C1) * (2 * cov_xy + C2)
    denominator = (mean_x * mean_x + mean_y * mean_y + C1) * (var_x + var_y + C2)

    return float(numerator / denominator)
