# trimmer/__init__.py
# Streaming silence trimmer: buffer-by-buffer gap detection with faded edges.

from trimmer.buffer import SampleBuffer
from trimmer.profiles import TrimProfile, profile_for, PROFILES
from trimmer.pipeline import (
    PipelineConfig,
    PipelineSession,
    PipelineState,
    TrimPipeline,
    process_buffer,
)

__all__ = [
    "SampleBuffer",
    "TrimProfile",
    "profile_for",
    "PROFILES",
    "PipelineConfig",
    "PipelineSession",
    "PipelineState",
    "TrimPipeline",
    "process_buffer",
]
