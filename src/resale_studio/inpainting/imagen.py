"""
Imagen Background Replacement

Background replacement strategies built on Imagen's edit endpoint:

- ImagenInpaintReplacer: fill the masked background only
- ImagenOutpaintReplacer: inpaint, then extend the canvas to 2:3 portrait
- ImagenAdaptiveOutpaintReplacer: inpaint, then extend the canvas sized around
  the subject's bounding box
- ImagenStyleReferenceReplacer: inpaint guided by a style reference image

All strategies share the BackgroundReplacer contract: one call, one ReplaceResult,
never an exception.
"""

import time
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from google.genai import types

from ..config import CanvasConfig, GoogleConfig
from ..quality.subject import SUBJECT_THRESHOLD, measure_subject
from ..utils import decode_image, elapsed_ms, image_size, sniff_mime_type
from ..google_client import first_edited_image
from .base import ReplaceResult
from .canvas import CanvasPlan, build_canvas, plan_adaptive_canvas, plan_fixed_canvas
from .prompts import DEFAULT_PROMPT, SmartPromptGenerator, imagen_inpaint_prompt

logger = logging.getLogger(__name__)


INPAINT_BASE_STEPS = 100
INPAINT_MASK_DILATION = 0.0  # keep subject edges untouched
OUTPAINT_BASE_STEPS = 35
OUTPAINT_MASK_DILATION = 0.03


def _image(data: bytes) -> types.Image:
    return types.Image(image_bytes=data, mime_type=sniff_mime_type(data))


class ImagenInpaintReplacer:
    """
    Replace the background by inpainting everything outside the subject.

    The prompt comes from a SmartPromptGenerator when one is supplied,
    otherwise from the fixed default scene.
    """

    name = "inpaint"

    def __init__(
        self,
        client,
        config: Optional[GoogleConfig] = None,
        prompt_generator: Optional[SmartPromptGenerator] = None
    ):
        self.client = client
        self.config = config or GoogleConfig()
        self.prompt_generator = prompt_generator

    @property
    def model_label(self) -> str:
        return self.config.edit_model

    def replace(
        self,
        image_bytes: bytes,
        mask_bytes: bytes,
        context: Optional[Dict[str, Any]] = None
    ) -> ReplaceResult:
        start = time.perf_counter()
        tag = (context or {}).get("image_id", "")[:8]
        logger.info(f"[{tag}] Replace ({self.name}): starting")

        try:
            prompt = self._scene_prompt(image_bytes)
            inpainted = self._inpaint(image_bytes, mask_bytes, prompt)
            logger.info(f"[{tag}] Replace ({self.name}): inpainted ({len(inpainted) / 1024:.1f} KB)")

            edited, metadata = self._finish(inpainted, mask_bytes, prompt, tag)
            timing = elapsed_ms(start)
            logger.info(f"[{tag}] Replace ({self.name}): done in {timing}ms")

            return ReplaceResult(
                success=True,
                edited_bytes=edited,
                inpainted_bytes=inpainted,
                timing_ms=timing,
                prompt_used=prompt,
                model=self.model_label,
                metadata=metadata,
            )

        except Exception as e:
            timing = elapsed_ms(start)
            message = str(e) or e.__class__.__name__
            logger.error(f"[{tag}] Replace ({self.name}) failed after {timing}ms: {message}")
            return ReplaceResult.failure(message, timing, self.model_label)

    def _scene_prompt(self, image_bytes: bytes) -> str:
        if self.prompt_generator is None:
            return DEFAULT_PROMPT
        return self.prompt_generator.generate(image_bytes)

    def _reference_images(self, image_bytes: bytes, mask_bytes: bytes, dilation: float) -> List[Any]:
        return [
            types.RawReferenceImage(reference_id=1, reference_image=_image(image_bytes)),
            types.MaskReferenceImage(
                reference_id=2,
                reference_image=_image(mask_bytes),
                config=types.MaskReferenceConfig(
                    mask_mode="MASK_MODE_USER_PROVIDED",
                    mask_dilation=dilation,
                ),
            ),
        ]

    def _inpaint(self, image_bytes: bytes, mask_bytes: bytes, prompt: str) -> bytes:
        response = self.client.models.edit_image(
            model=self.config.edit_model,
            prompt=imagen_inpaint_prompt(prompt),
            reference_images=self._reference_images(image_bytes, mask_bytes, INPAINT_MASK_DILATION),
            config=types.EditImageConfig(
                edit_mode="EDIT_MODE_INPAINT_INSERTION",
                number_of_images=1,
                base_steps=INPAINT_BASE_STEPS,
            ),
        )
        return first_edited_image(response)

    def _finish(self, inpainted: bytes, mask_bytes: bytes, prompt: str, tag: str):
        """Post-inpaint step; the plain strategy delivers the inpainted image as is."""
        return inpainted, {}


class ImagenOutpaintReplacer(ImagenInpaintReplacer):
    """Inpaint, then extend the canvas minimally to the listing aspect ratio."""

    name = "outpaint"

    def __init__(
        self,
        client,
        config: Optional[GoogleConfig] = None,
        prompt_generator: Optional[SmartPromptGenerator] = None,
        canvas_config: Optional[CanvasConfig] = None
    ):
        super().__init__(client, config, prompt_generator)
        self.canvas_config = canvas_config or CanvasConfig()

    @property
    def model_label(self) -> str:
        return f"{self.config.edit_model} + {self.config.prompt_model} + outpaint"

    def plan_canvas(self, inpainted: bytes, mask_bytes: bytes) -> CanvasPlan:
        width, height = image_size(inpainted)
        return plan_fixed_canvas(width, height, self.canvas_config)

    def _finish(self, inpainted: bytes, mask_bytes: bytes, prompt: str, tag: str):
        plan = self.plan_canvas(inpainted, mask_bytes)
        logger.info(
            f"[{tag}] Outpaint: {plan.source_width}x{plan.source_height} -> "
            f"{plan.canvas_width}x{plan.canvas_height}"
        )
        if not plan.extends:
            return inpainted, {"canvas": plan.to_dict()}

        canvas, outpaint_mask = build_canvas(inpainted, plan, self.canvas_config.fill_color)
        response = self.client.models.edit_image(
            model=self.config.edit_model,
            prompt=prompt,
            reference_images=self._reference_images(canvas, outpaint_mask, OUTPAINT_MASK_DILATION),
            config=types.EditImageConfig(
                edit_mode="EDIT_MODE_OUTPAINT",
                number_of_images=1,
                base_steps=OUTPAINT_BASE_STEPS,
            ),
        )
        outpainted = first_edited_image(response)
        return outpainted, {"canvas": plan.to_dict()}


class ImagenAdaptiveOutpaintReplacer(ImagenOutpaintReplacer):
    """Outpaint with a canvas sized so the subject fills a target share of the frame."""

    name = "adaptive_outpaint"

    @property
    def model_label(self) -> str:
        return f"{self.config.edit_model} + {self.config.prompt_model} + adaptive outpaint"

    def plan_canvas(self, inpainted: bytes, mask_bytes: bytes) -> CanvasPlan:
        width, height = image_size(inpainted)
        mask = decode_image(mask_bytes, grayscale=True)
        # Geometry at full mask resolution; the planner rescales coordinates
        geometry = measure_subject(mask, SUBJECT_THRESHOLD)
        logger.info(
            f"Subject bbox {geometry.bbox.to_xywh()}, area ratio {geometry.area_ratio:.3f}, "
            f"fill ratio {geometry.fill_ratio:.3f}"
        )
        return plan_adaptive_canvas(width, height, geometry, self.canvas_config)


class ImagenStyleReferenceReplacer(ImagenInpaintReplacer):
    """Inpaint guided by a fixed style reference photo."""

    name = "style_reference"

    def __init__(
        self,
        client,
        config: Optional[GoogleConfig] = None,
        prompt_generator: Optional[SmartPromptGenerator] = None,
        style_image: Optional[bytes] = None
    ):
        super().__init__(client, config, prompt_generator)
        if style_image is None:
            if not self.config.style_reference_path:
                raise ValueError("style_reference strategy requires google.style_reference_path")
            style_image = Path(self.config.style_reference_path).read_bytes()
        self.style_image = style_image

    @property
    def model_label(self) -> str:
        return f"{self.config.edit_model} + style reference"

    def _reference_images(self, image_bytes: bytes, mask_bytes: bytes, dilation: float) -> List[Any]:
        references = super()._reference_images(image_bytes, mask_bytes, dilation)
        references.append(
            types.StyleReferenceImage(
                reference_id=3,
                reference_image=_image(self.style_image),
                config=types.StyleReferenceConfig(style_description=self.config.style_description),
            )
        )
        return references
