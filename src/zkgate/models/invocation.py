"""Invocation descriptor handed to every pipeline layer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping


class PipelineState(str, enum.Enum):
    """Lifecycle of one protected invocation."""
    IDLE = "idle"
    PRE_CHECKING = "pre_checking"
    EXECUTING = "executing"
    POST_CHECKING = "post_checking"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass
class Invocation:
    """One call of a protected operation as seen by the pipeline.

    selector, caller, value and data are fixed for the lifetime of the
    invocation. state and history are advanced only by the pipeline.
    """
    invocation_id: str
    selector: bytes
    caller: str
    value: int
    data: Mapping[str, Any]
    state: PipelineState = PipelineState.IDLE
    history: list[PipelineState] = field(default_factory=list)
    aborted_by: str | None = None
