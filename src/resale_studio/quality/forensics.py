"""
Forensic Logs

Immutable, hash-anchored audit records proving which transformations were
applied to a listing photo and whether the subject survived them.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple, Union
import logging

logger = logging.getLogger(__name__)


QA_STATUSES = ("pass", "fail", "skipped")
SUBJECT_INTEGRITY = ("preserved", "modified")

STAGE_MASK = "mask"
STAGE_INPAINT = "inpaint"
STAGE_QA = "qa"

RECOMMEND_PASS = "Ready for Vinted"
RECOMMEND_FAIL = "Manual review required"
RECOMMEND_ERROR = "QA process failed - manual review required"
RECOMMEND_SKIPPED = "QA skipped - manual review recommended"


def _check_hash(name: str, value: str):
    if value and not value.startswith("sha256:"):
        raise ValueError(f"{name} must be empty or 'sha256:<hex>', got {value!r}")


@dataclass(frozen=True)
class MaskStageOutput:
    mask_generation_time_ms: int
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mask_generation_time_ms": self.mask_generation_time_ms,
            "success": self.success,
        }


@dataclass(frozen=True)
class InpaintStageOutput:
    inpaint_time_ms: int
    model: str
    smart_prompt: str
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inpaint_time_ms": self.inpaint_time_ms,
            "model": self.model,
            "smart_prompt": self.smart_prompt,
            "success": self.success,
        }


@dataclass(frozen=True)
class QAStageOutput:
    pixel_delta_percent: float
    ssim_score: float
    qa_status: str
    subject_integrity: str
    recommendation: str

    def __post_init__(self):
        if self.qa_status not in QA_STATUSES:
            raise ValueError(f"qa_status must be one of {QA_STATUSES}, got {self.qa_status!r}")
        if self.subject_integrity not in SUBJECT_INTEGRITY:
            raise ValueError(
                f"subject_integrity must be one of {SUBJECT_INTEGRITY}, got {self.subject_integrity!r}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pixel_delta_percent": self.pixel_delta_percent,
            "ssim_score": self.ssim_score,
            "qa_status": self.qa_status,
            "subject_integrity": self.subject_integrity,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class ForensicLog:
    """One audit record per processed image. Never mutated after creation."""
    image_id: str
    timestamp_start: str
    timestamp_end: str
    processing_time_ms: int
    original_hash: str
    edited_hash: str
    mask_hash: str
    agents_executed: Tuple[str, ...]
    agent1_output: MaskStageOutput
    agent2_output: InpaintStageOutput
    qa_output: QAStageOutput
    vinted_safe: bool
    audit_trail: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.image_id:
            raise ValueError("image_id is required")
        if self.processing_time_ms < 0:
            raise ValueError(f"processing_time_ms must be >= 0, got {self.processing_time_ms}")
        for name in ("original_hash", "edited_hash", "mask_hash"):
            _check_hash(name, getattr(self, name))
        # Accept lists from callers, store tuples
        object.__setattr__(self, "agents_executed", tuple(self.agents_executed))
        object.__setattr__(self, "audit_trail", tuple(self.audit_trail))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_id": self.image_id,
            "timestamp_start": self.timestamp_start,
            "timestamp_end": self.timestamp_end,
            "processing_time_ms": self.processing_time_ms,
            "original_hash": self.original_hash,
            "edited_hash": self.edited_hash,
            "mask_hash": self.mask_hash,
            "agents_executed": list(self.agents_executed),
            "agent1_output": self.agent1_output.to_dict(),
            "agent2_output": self.agent2_output.to_dict(),
            "qa_output": self.qa_output.to_dict(),
            "vinted_safe": self.vinted_safe,
            "audit_trail": list(self.audit_trail),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ForensicLog':
        try:
            return cls(
                image_id=data["image_id"],
                timestamp_start=data["timestamp_start"],
                timestamp_end=data["timestamp_end"],
                processing_time_ms=int(data["processing_time_ms"]),
                original_hash=data["original_hash"],
                edited_hash=data["edited_hash"],
                mask_hash=data["mask_hash"],
                agents_executed=tuple(data["agents_executed"]),
                agent1_output=MaskStageOutput(**data["agent1_output"]),
                agent2_output=InpaintStageOutput(**data["agent2_output"]),
                qa_output=QAStageOutput(**data["qa_output"]),
                vinted_safe=bool(data["vinted_safe"]),
                audit_trail=tuple(data["audit_trail"]),
            )
        except KeyError as e:
            raise ValueError(f"Forensic log is missing field {e}") from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def from_json(cls, text: str) -> 'ForensicLog':
        return cls.from_dict(json.loads(text))


def skipped_forensic_log(
    image_id: str,
    timestamp_start: str,
    timestamp_end: str,
    mask_time_ms: int,
    inpaint_time_ms: int,
    model: str,
    smart_prompt: str,
) -> ForensicLog:
    """Placeholder log for runs where QA was deliberately bypassed."""
    return ForensicLog(
        image_id=image_id,
        timestamp_start=timestamp_start,
        timestamp_end=timestamp_end,
        processing_time_ms=mask_time_ms + inpaint_time_ms,
        original_hash="",
        edited_hash="",
        mask_hash="",
        agents_executed=(STAGE_MASK, STAGE_INPAINT),
        agent1_output=MaskStageOutput(mask_generation_time_ms=mask_time_ms, success=True),
        agent2_output=InpaintStageOutput(
            inpaint_time_ms=inpaint_time_ms,
            model=model,
            smart_prompt=smart_prompt,
            success=True,
        ),
        qa_output=QAStageOutput(
            pixel_delta_percent=0.0,
            ssim_score=1.0,
            qa_status="skipped",
            subject_integrity="preserved",
            recommendation=RECOMMEND_SKIPPED,
        ),
        vinted_safe=True,
        audit_trail=(
            "Mask generated",
            "Background replaced",
            "QA validation skipped on request - no subject comparison performed",
        ),
    )


def read_forensic_log(path: Union[str, Path]) -> ForensicLog:
    """Load a persisted forensic log."""
    with open(path, "r", encoding="utf-8") as f:
        return ForensicLog.from_json(f.read())
