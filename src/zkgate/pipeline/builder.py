"""Build pipelines from declarative layer specs.

A spec is a list of mappings, applied in list order:

    [
        {"layer": "allowlist", "config": {"allowed": ["alice", "bob"]}},
        {"layer": "rate_limit", "name": "per-caller",
         "config": {"max_calls": 10, "window_seconds": 60}},
    ]

"layer" selects a factory, "name" optionally overrides the layer name and
"config" is passed to the layer on every check.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Sequence

from zkgate.persistence.event_log import EventLog
from zkgate.pipeline.layer import Layer, LayerBinding
from zkgate.pipeline.layers import (
    CallerAllowlistLayer,
    DeadlineLayer,
    RateLimitLayer,
    ValueCapLayer,
)
from zkgate.pipeline.pipeline import LayerPipeline

LayerFactory = Callable[[Optional[str]], Layer]

LAYER_FACTORIES: dict[str, LayerFactory] = {
    "allowlist": lambda name: CallerAllowlistLayer(name or "allowlist"),
    "deadline": lambda name: DeadlineLayer(name or "deadline"),
    "rate_limit": lambda name: RateLimitLayer(name or "rate_limit"),
    "value_cap": lambda name: ValueCapLayer(name or "value_cap"),
}


def build_bindings(
    specs: Sequence[Mapping[str, Any]],
    factories: Optional[Mapping[str, LayerFactory]] = None,
) -> list[LayerBinding]:
    """Instantiate layers for each spec, preserving order.

    Raises:
        ValueError: Unknown layer kind or a spec without "layer".
    """
    table = dict(LAYER_FACTORIES)
    if factories:
        table.update(factories)

    bindings: list[LayerBinding] = []
    for position, spec in enumerate(specs):
        kind = spec.get("layer")
        if not kind:
            raise ValueError(f"Layer spec #{position} has no 'layer' key")
        factory = table.get(kind)
        if factory is None:
            raise ValueError(
                f"Unknown layer kind {kind!r}. Known: {', '.join(sorted(table))}"
            )
        layer = factory(spec.get("name"))
        bindings.append(LayerBinding(layer, dict(spec.get("config", {}))))
    return bindings


def build_pipeline(
    signature: str,
    specs: Sequence[Mapping[str, Any]],
    event_log: Optional[EventLog] = None,
    factories: Optional[Mapping[str, LayerFactory]] = None,
) -> LayerPipeline:
    """Build a pipeline for an operation signature from layer specs."""
    return LayerPipeline.for_operation(
        signature, build_bindings(specs, factories), event_log,
    )
