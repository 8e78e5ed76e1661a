"""
Background prompts.

A text model looks at the product photo and writes a short scene description
for the replacement background. Any failure falls back to DEFAULT_PROMPT.
"""

from typing import Optional
import logging

from google.genai import types

from ..config import GoogleConfig
from ..utils import sniff_mime_type
from ..google_client import response_text

logger = logging.getLogger(__name__)


DEFAULT_PROMPT = (
    "Warm honey-toned herringbone parquet floor catching soft afternoon light, "
    "cream plastered walls with subtle texture, cozy lived-in Parisian apartment "
    "atmosphere, gentle natural shadows"
)

SMART_PROMPT_INSTRUCTIONS = """You are a creative director for Vinted resale photos. Generate a UNIQUE cozy home background.

RULES:
- Do NOT describe the current background - create something NEW
- Be CREATIVE and VARIED - never just "oak parquet + white walls"
- AUTHENTIC home feel (real apartment, not photo studio)
- Match the product style/vibe

FLOOR OPTIONS (pick one, be specific):
Herringbone parquet, whitewashed pine planks, polished concrete, hexagonal terracotta tiles, natural sisal rug on wood, soft sheepskin on floor, rumpled linen bedding, woven jute mat, vintage Persian rug corner

LIGHTING OPTIONS (be evocative):
Golden hour streaming through window, soft overcast afternoon, warm morning sunbeams with shadow patterns, diffused north-facing window, cozy evening ambient glow

STYLE MOODS:
- Streetwear/urban -> raw concrete, industrial loft, minimal and edgy
- Luxury/designer -> cream marble, Parisian elegance, refined simplicity
- Vintage/retro -> aged honey oak, warm amber tones, lived-in charm
- Casual/basics -> soft natural textiles, Scandinavian hygge
- Sportswear -> bright airy space, clean energetic minimalism

Output 25-35 words describing the complete scene. Be specific, evocative, unique."""


def imagen_inpaint_prompt(scene: str) -> str:
    """Wrap a scene description so the editor invents rather than copies."""
    return f"Generate a completely NEW background. Do NOT replicate or copy the existing background. Create: {scene}"


class SmartPromptGenerator:
    """Scene description from a Gemini text model."""

    def __init__(self, client, config: Optional[GoogleConfig] = None):
        self.client = client
        self.config = config or GoogleConfig()

    def generate(self, image_bytes: bytes) -> str:
        """
        Describe a new background for the product photo.

        Returns:
            The model's description, or DEFAULT_PROMPT when the call fails or
            returns nothing.
        """
        try:
            response = self.client.models.generate_content(
                model=self.config.prompt_model,
                contents=[
                    types.Part.from_bytes(data=image_bytes, mime_type=sniff_mime_type(image_bytes)),
                    types.Part.from_text(text=SMART_PROMPT_INSTRUCTIONS),
                ],
            )
        except Exception as e:
            logger.warning(f"Smart prompt failed, using default prompt: {e}")
            return DEFAULT_PROMPT

        texts = response_text(response)
        prompt = texts[0].strip() if texts else ""
        if not prompt:
            logger.warning("Smart prompt was empty, using default prompt")
            return DEFAULT_PROMPT

        logger.info(f"Smart prompt: \"{prompt}\"")
        return prompt
