"""Core data models for zkgate."""

from zkgate.models.commitment import (
    InferenceRecord,
    ModelCommitment,
    ModelRecord,
    ModelView,
)
from zkgate.models.invocation import Invocation, PipelineState

__all__ = [
    "InferenceRecord",
    "ModelCommitment",
    "ModelRecord",
    "ModelView",
    "Invocation",
    "PipelineState",
]
