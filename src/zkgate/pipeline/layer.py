"""Layer contract for the pipeline.

A layer is an independently configured guard with a pre-check and a
post-check over a described invocation. Layers are peers composed by an
ordered list of bindings; they do not inherit from, or own, the protected
operation. A layer signals rejection by raising (normally LayerRejection).

Carry-forward data is passed explicitly: whatever a layer's pre_check
returns is handed back to that same layer's post_check (and to on_abort),
so a layer never needs shared mutable state to connect its two checks.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Mapping

from zkgate.models.invocation import Invocation


class Layer(abc.ABC):
    """Base class for pipeline layers."""

    def __init__(self, name: str | None = None) -> None:
        self.name = name or type(self).__name__

    @abc.abstractmethod
    def pre_check(
        self,
        config: Mapping[str, Any],
        selector: bytes,
        caller: str,
        value: int,
        data: Mapping[str, Any],
    ) -> Any:
        """Run before the operation. Return carry data for post_check."""

    def post_check(
        self,
        config: Mapping[str, Any],
        selector: bytes,
        caller: str,
        value: int,
        data: Mapping[str, Any],
        carry: Any,
    ) -> None:
        """Run after the operation succeeded."""

    def on_abort(
        self,
        config: Mapping[str, Any],
        invocation: Invocation,
        carry: Any,
    ) -> None:
        """Release anything pre_check reserved, when the invocation aborts.

        Called only for layers whose pre_check succeeded, in reverse order.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


@dataclass(frozen=True)
class LayerBinding:
    """A layer attached to an operation together with its configuration."""
    layer: Layer
    config: Mapping[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.layer.name
