"""Ordered pre/post checks with atomic rollback."""

from zkgate.pipeline.builder import build_bindings, build_pipeline
from zkgate.pipeline.journal import EffectJournal
from zkgate.pipeline.layer import Layer, LayerBinding
from zkgate.pipeline.pipeline import LayerPipeline
from zkgate.pipeline.state_machine import InvocationStateMachine

__all__ = [
    "build_bindings",
    "build_pipeline",
    "EffectJournal",
    "Layer",
    "LayerBinding",
    "LayerPipeline",
    "InvocationStateMachine",
]
