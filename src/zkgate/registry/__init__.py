"""Model commitments keyed by id, owned by a principal."""

from zkgate.registry.model_registry import ModelRegistry

__all__ = ["ModelRegistry"]
