"""
Pytest configuration and shared fixtures for the resale photo pipeline tests.

Images are synthesized with numpy and encoded losslessly so subject pixels
survive the encode/decode round trip unchanged. Remote collaborators are
replaced by in-process fakes; no test touches the network.
"""

import threading
import time

import numpy as np
import pytest

from resale_studio.config import PipelineConfig
from resale_studio.inpainting.base import MaskResult, ReplaceResult
from resale_studio.utils import encode_image


WIDTH, HEIGHT = 64, 48
SUBJECT_BOX = (16, 12, 32, 24)  # x, y, w, h


def make_photo(background=(230, 225, 215), noise_seed=None) -> np.ndarray:
    """RGB product photo: textured subject rectangle on a flat background."""
    image = np.empty((HEIGHT, WIDTH, 3), dtype=np.uint8)
    image[:] = background

    if noise_seed is not None:
        rng = np.random.default_rng(noise_seed)
        image = np.clip(image.astype(np.int16) + rng.integers(-40, 40, image.shape), 0, 255).astype(np.uint8)

    x, y, w, h = SUBJECT_BOX
    yy, xx = np.mgrid[0:h, 0:w]
    subject = np.stack([(xx * 7 + yy * 3) % 256, (xx * 2 + yy * 5) % 256, (xx * 4) % 256], axis=-1)
    image[y:y + h, x:x + w] = subject.astype(np.uint8)
    return image


def make_mask(box=SUBJECT_BOX, size=(WIDTH, HEIGHT)) -> np.ndarray:
    """Binary mask, black over the subject box, white elsewhere."""
    width, height = size
    mask = np.full((height, width), 255, dtype=np.uint8)
    if box is not None:
        x, y, w, h = box
        mask[y:y + h, x:x + w] = 0
    return mask


def png(image: np.ndarray) -> bytes:
    return encode_image(image, ext=".png")


@pytest.fixture
def original_png():
    return png(make_photo())


@pytest.fixture
def edited_png():
    """Same subject, new noisy background."""
    return png(make_photo(background=(90, 60, 40), noise_seed=7))


@pytest.fixture
def tampered_png():
    """Background replaced and subject inverted."""
    image = make_photo(background=(90, 60, 40), noise_seed=7)
    x, y, w, h = SUBJECT_BOX
    image[y:y + h, x:x + w] = 255 - image[y:y + h, x:x + w]
    return png(image)


@pytest.fixture
def mask_png():
    return png(make_mask())


@pytest.fixture
def empty_mask_png():
    return png(make_mask(box=None))


class FakeMaskGenerator:
    """Returns a fixed mask, or fails for configured image names."""

    name = "fake-mask"

    def __init__(self, mask_bytes: bytes, fail_for=(), raise_for=(), timing_ms: int = 5):
        self.mask_bytes = mask_bytes
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.timing_ms = timing_ms
        self.calls = []

    def generate(self, image_bytes, context=None):
        context = context or {}
        self.calls.append(context)
        name = context.get("image_name")
        if name in self.raise_for:
            raise RuntimeError("mask backend exploded")
        if name in self.fail_for:
            return MaskResult.failure("provider rejected image", self.timing_ms)
        return MaskResult(success=True, mask_bytes=self.mask_bytes, timing_ms=self.timing_ms)


class FakeBackgroundReplacer:
    """
    Returns a fixed edit. Tracks how many calls overlap so batch tests can
    check the concurrency bound.
    """

    name = "fake-replacer"

    def __init__(
        self,
        edited_bytes: bytes,
        inpainted_bytes: bytes = b"",
        fail_for=(),
        timing_ms: int = 7,
        delay: float = 0.0
    ):
        self.edited_bytes = edited_bytes
        self.inpainted_bytes = inpainted_bytes
        self.fail_for = set(fail_for)
        self.timing_ms = timing_ms
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def replace(self, image_bytes, mask_bytes, context=None):
        context = context or {}
        with self._lock:
            self.calls.append(context)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if context.get("image_name") in self.fail_for:
                return ReplaceResult.failure("quota exceeded", self.timing_ms, "fake-model")
            return ReplaceResult(
                success=True,
                edited_bytes=self.edited_bytes,
                inpainted_bytes=self.inpainted_bytes,
                timing_ms=self.timing_ms,
                prompt_used="sunlit parquet floor",
                model="fake-model",
            )
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def fake_mask_generator(mask_png):
    return FakeMaskGenerator(mask_png)


@pytest.fixture
def fake_replacer(edited_png):
    return FakeBackgroundReplacer(edited_png)


@pytest.fixture
def pipeline_config(tmp_path):
    return PipelineConfig(output_dir=str(tmp_path / "output"))
