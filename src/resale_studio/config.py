"""
Pipeline Configuration

Dataclass configuration for the resale photo pipeline. A PipelineConfig is built
once at process start (from defaults, a dict or a YAML file) and handed to the
orchestrator together with the remote collaborators it describes.
"""

from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

from .utils import load_config

logger = logging.getLogger(__name__)


REPLACER_STRATEGIES = ("inpaint", "outpaint", "adaptive_outpaint", "style_reference", "comfyui")


@dataclass
class QAConfig:
    """Thresholds for subject-integrity validation."""
    ssim_threshold: float = 0.92  # pass iff ssim >= threshold
    mask_threshold: int = 128  # mask luminance below this is subject
    pixel_noise_threshold: int = 10  # |delta| above this counts as changed


@dataclass
class CostModel:
    """Static per-call cost estimates (USD)."""
    mask_generation: float = 0.04
    background_replacement: float = 0.08
    qa_validation: float = 0.0


@dataclass
class GoogleConfig:
    """Google Gen AI (Vertex) settings for mask generation and Imagen editing."""
    project: Optional[str] = None
    location: str = "us-central1"
    mask_location: str = "global"  # gemini-3-pro-image-preview is served from global
    mask_model: str = "gemini-3-pro-image-preview"
    prompt_model: str = "gemini-2.0-flash"
    edit_model: str = "imagen-3.0-capability-001"
    timeout_ms: int = 120000
    style_reference_path: Optional[str] = None
    style_description: str = "warm, natural home interior photography"


@dataclass
class ComfyUIConfig:
    """ComfyUI server configuration."""
    host: str = "127.0.0.1"
    port: int = 8188
    use_https: bool = False
    timeout: int = 120  # seconds
    workflow_path: Optional[str] = None

    @property
    def base_url(self) -> str:
        protocol = "https" if self.use_https else "http"
        return f"{protocol}://{self.host}:{self.port}"

    @property
    def ws_url(self) -> str:
        protocol = "wss" if self.use_https else "ws"
        return f"{protocol}://{self.host}:{self.port}/ws"


@dataclass
class CanvasConfig:
    """Outpaint canvas geometry."""
    target_aspect_ratio: float = 1.5  # height / width, 2:3 portrait
    max_dimension: int = 2048
    target_subject_fill: float = 0.85
    min_scale: float = 1.1
    max_scale: float = 2.0
    fill_color: tuple = (200, 200, 200)


_NESTED = {
    "qa": QAConfig,
    "costs": CostModel,
    "google": GoogleConfig,
    "comfyui": ComfyUIConfig,
    "canvas": CanvasConfig,
}


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    output_dir: str = "output"
    concurrency: int = 3
    skip_qa: bool = False
    replacer: str = "outpaint"
    edited_format: str = ".jpg"

    qa: QAConfig = field(default_factory=QAConfig)
    costs: CostModel = field(default_factory=CostModel)
    google: GoogleConfig = field(default_factory=GoogleConfig)
    comfyui: ComfyUIConfig = field(default_factory=ComfyUIConfig)
    canvas: CanvasConfig = field(default_factory=CanvasConfig)

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.replacer not in REPLACER_STRATEGIES:
            raise ValueError(
                f"Unknown replacer '{self.replacer}', expected one of {', '.join(REPLACER_STRATEGIES)}"
            )
        if not 0.0 <= self.qa.ssim_threshold <= 1.0:
            raise ValueError(f"ssim_threshold must be within [0, 1], got {self.qa.ssim_threshold}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        kwargs = {}
        for key, value in data.items():
            if key in _NESTED and isinstance(value, dict):
                nested_cls = _NESTED[key]
                nested_known = {f.name for f in fields(nested_cls)}
                bad = set(value) - nested_known
                if bad:
                    raise ValueError(f"Unknown keys in '{key}': {', '.join(sorted(bad))}")
                if key == "canvas" and "fill_color" in value:
                    value = dict(value, fill_color=tuple(value["fill_color"]))
                kwargs[key] = nested_cls(**value)
            else:
                kwargs[key] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_pipeline_config(
    config: Optional[Union[PipelineConfig, Dict, str, Path]] = None
) -> PipelineConfig:
    """Load and validate configuration."""
    if config is None:
        return PipelineConfig()
    elif isinstance(config, PipelineConfig):
        return config
    elif isinstance(config, dict):
        return PipelineConfig.from_dict(config)
    elif isinstance(config, (str, Path)):
        data = load_config(config)
        logger.info(f"Loaded configuration from {config}")
        return PipelineConfig.from_dict(data.get('pipeline', data))
    else:
        raise ValueError(f"Invalid config type: {type(config)}")
