"""Remote collaborator interfaces."""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol


@dataclass
class MaskResult:
    """Outcome of mask generation. Failures are values, not exceptions."""
    success: bool
    mask_bytes: bytes = b""
    timing_ms: int = 0
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, timing_ms: int = 0) -> 'MaskResult':
        return cls(success=False, timing_ms=timing_ms, error=error)


@dataclass
class ReplaceResult:
    """
    Outcome of background replacement.

    edited_bytes is the final deliverable (possibly canvas-extended);
    inpainted_bytes is the same edit at the original framing, which is what
    subject validation must compare against.
    """
    success: bool
    edited_bytes: bytes = b""
    inpainted_bytes: bytes = b""
    timing_ms: int = 0
    prompt_used: str = ""
    model: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def comparison_bytes(self) -> bytes:
        return self.inpainted_bytes or self.edited_bytes

    @classmethod
    def failure(cls, error: str, timing_ms: int = 0, model: str = "") -> 'ReplaceResult':
        return cls(success=False, timing_ms=timing_ms, model=model, error=error)


class MaskGenerator(Protocol):
    name: str

    def generate(self, image_bytes: bytes, context: Optional[Dict[str, Any]] = None) -> MaskResult:
        ...


class BackgroundReplacer(Protocol):
    name: str

    def replace(
        self,
        image_bytes: bytes,
        mask_bytes: bytes,
        context: Optional[Dict[str, Any]] = None
    ) -> ReplaceResult:
        ...
