"""
Masking Module

Subject mask generation and mask conformance.
"""

from .gemini_mask import GeminiMaskGenerator, MASK_PROMPT
from .postprocess import binarize_mask, conform_mask, subject_fraction

__all__ = [
    'GeminiMaskGenerator',
    'MASK_PROMPT',
    'binarize_mask',
    'conform_mask',
    'subject_fraction'
]
