"""
Base utilities for the resale photo pipeline.
"""

import hashlib
import time
import yaml
import numpy as np
import cv2
from pathlib import Path
from typing import Dict, Tuple, Optional, Union
from dataclasses import dataclass
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base class for pipeline failures."""


class RemoteCallError(PipelineError):
    """A mask generator or background replacer returned no usable result."""


class MalformedInputError(PipelineError):
    """Undecodable image, mismatched dimensions or an empty subject region."""


class ArtifactWriteError(PipelineError):
    """An artifact could not be persisted."""


@dataclass(frozen=True)
class BoundingBox:
    """Bounding box representation."""
    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> int:
        return self.width * self.height

    def to_xywh(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_mask(cls, mask: np.ndarray) -> 'BoundingBox':
        """
        Create bbox from a boolean subject mask.

        Falls back to the full frame when the mask selects nothing.
        """
        h, w = mask.shape[:2]
        rows = np.any(mask, axis=1)
        cols = np.any(mask, axis=0)
        if not rows.any() or not cols.any():
            return cls(0, 0, int(w), int(h))
        y_min, y_max = np.where(rows)[0][[0, -1]]
        x_min, x_max = np.where(cols)[0][[0, -1]]
        return cls(int(x_min), int(y_min), int(x_max - x_min + 1), int(y_max - y_min + 1))


def load_config(config_path: Union[str, Path]) -> Dict:
    """Load a YAML configuration file."""
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    return config or {}


def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure directory exists."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def sha256_digest(data: bytes) -> str:
    """Content digest in the ``sha256:<hex>`` form used by forensic logs."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def utc_iso_now() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def elapsed_ms(start: float) -> int:
    """Milliseconds elapsed since a ``time.perf_counter()`` reading."""
    return max(0, int(round((time.perf_counter() - start) * 1000)))


def decode_image(data: bytes, grayscale: bool = False) -> np.ndarray:
    """
    Decode an encoded raster (PNG, JPEG, WebP...) into a numpy array.

    Args:
        data: Encoded image bytes
        grayscale: Decode straight to a single luminance channel

    Returns:
        (H, W) uint8 array when grayscale, else (H, W, 3) RGB uint8 array

    Raises:
        MalformedInputError: if the bytes cannot be decoded
    """
    if not data:
        raise MalformedInputError("Empty image buffer")

    buffer = np.frombuffer(data, dtype=np.uint8)
    flag = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_COLOR
    image = cv2.imdecode(buffer, flag)

    if image is None:
        raise MalformedInputError(f"Unable to decode image ({len(data)} bytes)")

    if grayscale:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def encode_image(image: np.ndarray, ext: str = ".png", quality: int = 90) -> bytes:
    """Encode an RGB or grayscale array to bytes."""
    if image.ndim == 3:
        image = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)

    params = []
    if ext.lower() in (".jpg", ".jpeg"):
        params = [cv2.IMWRITE_JPEG_QUALITY, quality]

    ok, encoded = cv2.imencode(ext, image, params)
    if not ok:
        raise MalformedInputError(f"Unable to encode image as {ext}")
    return encoded.tobytes()


def image_size(data: bytes) -> Tuple[int, int]:
    """Return (width, height) of encoded image bytes."""
    image = decode_image(data, grayscale=True)
    h, w = image.shape[:2]
    return w, h


def resize_image(img: np.ndarray, size: Tuple[int, int], method: str = 'bilinear') -> np.ndarray:
    """Resize image to (width, height) with the given interpolation method."""
    methods = {
        'nearest': cv2.INTER_NEAREST,
        'bilinear': cv2.INTER_LINEAR,
        'bicubic': cv2.INTER_CUBIC,
        'lanczos': cv2.INTER_LANCZOS4,
        'area': cv2.INTER_AREA
    }

    if (img.shape[1], img.shape[0]) == tuple(size):
        return img.copy()

    interp = methods.get(method, cv2.INTER_LINEAR)
    return cv2.resize(img, size, interpolation=interp)


def sniff_extension(data: bytes, fallback: str = ".jpg") -> str:
    """Guess a file extension from magic bytes."""
    if data.startswith(b"\x89PNG"):
        return ".png"
    if data.startswith(b"\xff\xd8"):
        return ".jpg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ".webp"
    return fallback


def sniff_mime_type(data: bytes) -> str:
    ext = sniff_extension(data)
    return {".png": "image/png", ".webp": "image/webp"}.get(ext, "image/jpeg")


def base_name(filename: Optional[str]) -> str:
    """Input filename without directory or extension."""
    if not filename:
        return "image"
    stem = Path(filename).stem
    return stem or "image"
