"""
Resale Studio

Background replacement for resale product photos with subject-integrity QA
and forensic logging.
"""

__version__ = "0.3.0"

from .config import PipelineConfig, load_pipeline_config
from .utils import PipelineError, RemoteCallError, MalformedInputError, ArtifactWriteError

__all__ = [
    'PipelineConfig',
    'load_pipeline_config',
    'PipelineError',
    'RemoteCallError',
    'MalformedInputError',
    'ArtifactWriteError'
]
