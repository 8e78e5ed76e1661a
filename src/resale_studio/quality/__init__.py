"""
Quality Assurance Module

Verifies that background replacement left the photographed subject intact and
records the verdict in a forensic log.
"""

from .ssim import compute_ssim

from .subject import (
    SubjectSample,
    SubjectGeometry,
    extract_subject,
    measure_subject,
    subject_mask
)

from .forensics import (
    ForensicLog,
    MaskStageOutput,
    InpaintStageOutput,
    QAStageOutput,
    skipped_forensic_log,
    read_forensic_log
)

from .validator import (
    QAValidator,
    QAOutcome,
    UpstreamTimings,
    pixel_delta_percent
)

__all__ = [
    # Similarity
    'compute_ssim',

    # Subject extraction
    'SubjectSample',
    'SubjectGeometry',
    'extract_subject',
    'measure_subject',
    'subject_mask',

    # Forensics
    'ForensicLog',
    'MaskStageOutput',
    'InpaintStageOutput',
    'QAStageOutput',
    'skipped_forensic_log',
    'read_forensic_log',

    # Validation
    'QAValidator',
    'QAOutcome',
    'UpstreamTimings',
    'pixel_delta_percent'
]
