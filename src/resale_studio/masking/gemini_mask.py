"""
Gemini Mask Generator

Asks a Gemini image model for a black/white silhouette of the product
(black = subject to keep, white = background to replace).
"""

import time
from typing import Any, Dict, Optional
import logging

from google.genai import types

from ..config import GoogleConfig, QAConfig
from ..inpainting.base import MaskResult
from ..utils import RemoteCallError, decode_image, elapsed_ms, image_size, sniff_mime_type
from ..google_client import first_inline_image, response_text
from .postprocess import conform_mask, subject_fraction

logger = logging.getLogger(__name__)


MASK_PROMPT = """Create a black and white binary segmentation mask image.

The mask must show:
- Pure BLACK (#000000) pixels for the clothing/shoes/product (the subject to KEEP)
- Pure WHITE (#FFFFFF) pixels for the background (the area to REPLACE)

Rules:
- Only 2 colors: pure black and pure white
- No gray, no gradients, no anti-aliasing
- Black = subject (clothes, shoes, accessories)
- White = background
- Sharp clean edges between black and white areas

Output: A flat black and white silhouette mask image."""


class GeminiMaskGenerator:
    """
    Mask generation through a Gemini image model.

    Never raises: provider errors, timeouts and empty responses come back as a
    failed MaskResult.
    """

    name = "gemini"

    def __init__(self, client, config: Optional[GoogleConfig] = None, qa_config: Optional[QAConfig] = None):
        """
        Args:
            client: genai.Client (Vertex, location ``global`` for preview models)
            config: Google settings
            qa_config: Provides the binarization threshold
        """
        self.client = client
        self.config = config or GoogleConfig()
        self.threshold = (qa_config or QAConfig()).mask_threshold

    def generate(self, image_bytes: bytes, context: Optional[Dict[str, Any]] = None) -> MaskResult:
        start = time.perf_counter()
        tag = (context or {}).get("image_id", "")[:8]
        logger.info(f"[{tag}] Mask: requesting mask from {self.config.mask_model} ({len(image_bytes) / 1024:.1f} KB)")

        try:
            response = self.client.models.generate_content(
                model=self.config.mask_model,
                contents=[
                    types.Part.from_text(text=MASK_PROMPT),
                    types.Part.from_bytes(data=image_bytes, mime_type=sniff_mime_type(image_bytes)),
                ],
                config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
            )

            raw_mask = first_inline_image(response)
            if not raw_mask:
                texts = response_text(response)
                if texts:
                    logger.error(f"[{tag}] Mask: no image, text response: {' | '.join(texts)}")
                raise RemoteCallError("No mask image in Gemini response")

            mask_bytes = conform_mask(raw_mask, image_size(image_bytes), self.threshold)
            timing = elapsed_ms(start)
            fraction = subject_fraction(decode_image(mask_bytes, grayscale=True), self.threshold)
            if fraction == 0.0:
                logger.warning(f"[{tag}] Mask: no subject pixels marked, QA will fail this image")
            logger.info(
                f"[{tag}] Mask: generated ({len(mask_bytes) / 1024:.1f} KB, {timing}ms, "
                f"subject {fraction * 100:.1f}% of frame)"
            )

            return MaskResult(success=True, mask_bytes=mask_bytes, timing_ms=timing)

        except Exception as e:
            timing = elapsed_ms(start)
            message = str(e) or e.__class__.__name__
            logger.error(f"[{tag}] Mask generation failed after {timing}ms: {message}")
            return MaskResult.failure(message, timing)
