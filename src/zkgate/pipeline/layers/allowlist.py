"""Caller allowlist layer.

Config:
    allowed: callers permitted to invoke the operation.
"""

from __future__ import annotations

from typing import Any, Mapping

from zkgate.errors import LayerRejection
from zkgate.pipeline.layer import Layer


class CallerAllowlistLayer(Layer):
    def __init__(self, name: str | None = "allowlist") -> None:
        super().__init__(name)

    def pre_check(
        self,
        config: Mapping[str, Any],
        selector: bytes,
        caller: str,
        value: int,
        data: Mapping[str, Any],
    ) -> None:
        if caller not in set(config.get("allowed", ())):
            raise LayerRejection(self.name, f"caller {caller} is not allowed")
