"""
Outpaint Canvas Planning

Works out how far to extend an edited photo so it reaches the listing aspect
ratio (2:3 portrait), and builds the extended canvas plus the companion mask
(black = keep, white = generate) sent to the outpainting model.

Two planners:
- fixed: extend minimally to the target aspect ratio, image centered
- adaptive: first grow the canvas so the subject fills a target fraction of the
  frame, then extend to the aspect ratio with the subject centered
"""

import io
import numpy as np
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from PIL import Image
import logging

from ..config import CanvasConfig
from ..quality.subject import SubjectGeometry
from ..utils import MalformedInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CanvasPlan:
    """Placement of a (possibly downscaled) source image on a larger canvas."""
    source_width: int
    source_height: int
    canvas_width: int
    canvas_height: int
    offset_x: int
    offset_y: int
    scale: float = 1.0  # canvas growth applied before the aspect-ratio fit
    downscale: float = 1.0  # source size cap factor

    @property
    def aspect_ratio(self) -> float:
        return self.canvas_height / self.canvas_width

    @property
    def extends(self) -> bool:
        return (self.canvas_width, self.canvas_height) != (self.source_width, self.source_height)

    def to_dict(self) -> Dict:
        return {
            "source": [self.source_width, self.source_height],
            "canvas": [self.canvas_width, self.canvas_height],
            "offset": [self.offset_x, self.offset_y],
            "scale": self.scale,
            "downscale": self.downscale,
        }


def cap_dimensions(width: int, height: int, max_dimension: int) -> Tuple[int, int, float]:
    """Proportionally shrink (width, height) so neither side exceeds max_dimension."""
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height, 1.0
    factor = max_dimension / longest
    return max(1, int(round(width * factor))), max(1, int(round(height * factor))), factor


def fit_aspect_ratio(width: int, height: int, target_ratio: float) -> Tuple[int, int]:
    """
    Grow exactly one of width or height so height / width hits target_ratio.

    Never shrinks either side.
    """
    current = height / width
    if current < target_ratio:
        # Too wide: add rows
        return width, max(height, int(round(width * target_ratio)))
    if current > target_ratio:
        # Too tall: add columns
        return max(width, int(round(height / target_ratio))), height
    return width, height


def plan_fixed_canvas(width: int, height: int, config: Optional[CanvasConfig] = None) -> CanvasPlan:
    """Minimal extension to the target aspect ratio, source centered."""
    config = config or CanvasConfig()
    src_w, src_h, downscale = cap_dimensions(width, height, config.max_dimension)
    canvas_w, canvas_h = fit_aspect_ratio(src_w, src_h, config.target_aspect_ratio)

    return CanvasPlan(
        source_width=src_w,
        source_height=src_h,
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        offset_x=int(round((canvas_w - src_w) / 2)),
        offset_y=int(round((canvas_h - src_h) / 2)),
        scale=1.0,
        downscale=downscale,
    )


def subject_scale_factor(geometry: SubjectGeometry, config: Optional[CanvasConfig] = None) -> float:
    """
    Canvas growth factor that leaves the subject spanning target_subject_fill
    of the frame, clamped to [min_scale, max_scale].
    """
    config = config or CanvasConfig()
    if not geometry.has_subject:
        return config.min_scale
    raw = geometry.fill_ratio / config.target_subject_fill
    return float(min(config.max_scale, max(config.min_scale, raw)))


def plan_adaptive_canvas(
    width: int,
    height: int,
    geometry: SubjectGeometry,
    config: Optional[CanvasConfig] = None
) -> CanvasPlan:
    """
    Subject-aware canvas extension.

    Args:
        width, height: Source image size
        geometry: Subject geometry measured on the full-resolution mask
        config: Canvas configuration

    Returns:
        CanvasPlan with the subject centered as far as the source bounds allow
    """
    config = config or CanvasConfig()
    src_w, src_h, downscale = cap_dimensions(width, height, config.max_dimension)

    scale = subject_scale_factor(geometry, config)
    grown_w = int(round(src_w * scale))
    grown_h = int(round(src_h * scale))
    canvas_w, canvas_h = fit_aspect_ratio(grown_w, grown_h, config.target_aspect_ratio)

    # Subject center in source coordinates (after the size cap)
    sx = src_w / geometry.frame_width
    sy = src_h / geometry.frame_height
    cx, cy = geometry.bbox.center
    cx, cy = cx * sx, cy * sy

    offset_x = int(round(canvas_w / 2 - cx))
    offset_y = int(round(canvas_h / 2 - cy))
    offset_x = min(max(offset_x, 0), canvas_w - src_w)
    offset_y = min(max(offset_y, 0), canvas_h - src_h)

    logger.debug(
        f"Adaptive canvas: fill {geometry.fill_ratio:.3f}, scale {scale:.2f}, "
        f"{src_w}x{src_h} -> {canvas_w}x{canvas_h} at ({offset_x}, {offset_y})"
    )

    return CanvasPlan(
        source_width=src_w,
        source_height=src_h,
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        offset_x=offset_x,
        offset_y=offset_y,
        scale=scale,
        downscale=downscale,
    )


def extension_mask(plan: CanvasPlan) -> np.ndarray:
    """(H, W) uint8 mask: 0 over the kept source region, 255 where content is generated."""
    mask = np.full((plan.canvas_height, plan.canvas_width), 255, dtype=np.uint8)
    mask[
        plan.offset_y:plan.offset_y + plan.source_height,
        plan.offset_x:plan.offset_x + plan.source_width
    ] = 0
    return mask


def build_canvas(
    image_bytes: bytes,
    plan: CanvasPlan,
    fill_color: Tuple[int, int, int] = (200, 200, 200),
    quality: int = 90
) -> Tuple[bytes, bytes]:
    """
    Render the extended canvas and its outpaint mask.

    Returns:
        (canvas JPEG bytes, mask PNG bytes)
    """
    try:
        source = Image.open(io.BytesIO(image_bytes))
        source = source.convert('RGB')
    except Exception as e:
        raise MalformedInputError(f"Unable to decode image for outpainting: {e}") from e

    if source.size != (plan.source_width, plan.source_height):
        source = source.resize((plan.source_width, plan.source_height), Image.LANCZOS)

    canvas = Image.new('RGB', (plan.canvas_width, plan.canvas_height), tuple(fill_color))
    canvas.paste(source, (plan.offset_x, plan.offset_y))

    canvas_buffer = io.BytesIO()
    canvas.save(canvas_buffer, format='JPEG', quality=quality)

    mask_image = Image.fromarray(extension_mask(plan))
    mask_buffer = io.BytesIO()
    mask_image.save(mask_buffer, format='PNG')

    return canvas_buffer.getvalue(), mask_buffer.getvalue()
