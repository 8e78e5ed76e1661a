"""
Inpainting Module

Background replacement strategies behind a single BackgroundReplacer contract,
selected by configuration.
"""

from typing import Optional

from ..config import PipelineConfig

from .base import (
    MaskResult,
    ReplaceResult,
    MaskGenerator,
    BackgroundReplacer
)

from .canvas import (
    CanvasPlan,
    plan_fixed_canvas,
    plan_adaptive_canvas,
    subject_scale_factor,
    fit_aspect_ratio,
    extension_mask,
    build_canvas
)

from .prompts import (
    DEFAULT_PROMPT,
    SmartPromptGenerator,
    imagen_inpaint_prompt
)

from .imagen import (
    ImagenInpaintReplacer,
    ImagenOutpaintReplacer,
    ImagenAdaptiveOutpaintReplacer,
    ImagenStyleReferenceReplacer
)

from .comfyui_api import (
    ComfyUIClient,
    ComfyUIInpaintWorkflow,
    ComfyUIReplacer
)


def create_background_replacer(config: PipelineConfig, genai_client=None) -> BackgroundReplacer:
    """
    Build the background replacement strategy named by ``config.replacer``.

    Args:
        config: Pipeline configuration
        genai_client: Shared Gen AI client (required by the Imagen strategies)

    Returns:
        A BackgroundReplacer implementation
    """
    name = config.replacer

    if name == "comfyui":
        return ComfyUIReplacer(ComfyUIClient(config.comfyui))

    if genai_client is None:
        raise ValueError(f"Replacer '{name}' requires a Gen AI client")

    prompts: Optional[SmartPromptGenerator] = SmartPromptGenerator(genai_client, config.google)

    if name == "inpaint":
        return ImagenInpaintReplacer(genai_client, config.google, prompts)
    if name == "outpaint":
        return ImagenOutpaintReplacer(genai_client, config.google, prompts, config.canvas)
    if name == "adaptive_outpaint":
        return ImagenAdaptiveOutpaintReplacer(genai_client, config.google, prompts, config.canvas)
    if name == "style_reference":
        return ImagenStyleReferenceReplacer(genai_client, config.google, prompts)

    raise ValueError(f"Unknown replacer: {name}")


__all__ = [
    # Contracts
    'MaskResult',
    'ReplaceResult',
    'MaskGenerator',
    'BackgroundReplacer',

    # Canvas
    'CanvasPlan',
    'plan_fixed_canvas',
    'plan_adaptive_canvas',
    'subject_scale_factor',
    'fit_aspect_ratio',
    'extension_mask',
    'build_canvas',

    # Prompts
    'DEFAULT_PROMPT',
    'SmartPromptGenerator',
    'imagen_inpaint_prompt',

    # Strategies
    'ImagenInpaintReplacer',
    'ImagenOutpaintReplacer',
    'ImagenAdaptiveOutpaintReplacer',
    'ImagenStyleReferenceReplacer',
    'ComfyUIClient',
    'ComfyUIInpaintWorkflow',
    'ComfyUIReplacer',
    'create_background_replacer'
]
