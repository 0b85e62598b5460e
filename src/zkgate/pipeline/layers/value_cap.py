"""Rejects invocations carrying more than max_value."""

from __future__ import annotations

from typing import Any, Mapping

from zkgate.errors import LayerRejection
from zkgate.pipeline.layer import Layer


class ValueCapLayer(Layer):
    def __init__(self, name: str | None = "value_cap") -> None:
        super().__init__(name)

    def pre_check(
        self,
        config: Mapping[str, Any],
        selector: bytes,
        caller: str,
        value: int,
        data: Mapping[str, Any],
    ) -> None:
        max_value = int(config["max_value"])
        if value < 0:
            raise LayerRejection(self.name, "value cannot be negative")
        if value > max_value:
            raise LayerRejection(
                self.name, f"value {value} exceeds cap {max_value}",
            )
