"""Deadline layer — timeouts expressed as pipeline checks.

There is no cancellation primitive: an invocation always runs to
completion or aborts as a whole. A timeout is therefore a check that
compares the clock against state carried by the invocation.

Config:
    max_duration_seconds: optional upper bound on the operation's run
        time, measured from pre_check to post_check.

Invocation data:
    deadline: optional absolute wall-clock time (seconds since the epoch)
        after which the invocation is refused.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping

from zkgate.errors import LayerRejection
from zkgate.pipeline.layer import Layer


class DeadlineLayer(Layer):
    def __init__(
        self,
        name: str | None = "deadline",
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name)
        self._clock = clock

    def pre_check(
        self,
        config: Mapping[str, Any],
        selector: bytes,
        caller: str,
        value: int,
        data: Mapping[str, Any],
    ) -> float:
        now = self._clock()
        deadline = data.get("deadline")
        if deadline is not None and now > float(deadline):
            raise LayerRejection(self.name, f"deadline {deadline} has passed")
        return now

    def post_check(
        self,
        config: Mapping[str, Any],
        selector: bytes,
        caller: str,
        value: int,
        data: Mapping[str, Any],
        carry: float,
    ) -> None:
        limit = config.get("max_duration_seconds")
        if limit is None:
            return
        elapsed = self._clock() - carry
        if elapsed > float(limit):
            raise LayerRejection(
                self.name, f"operation took {elapsed:.3f}s, limit is {float(limit):g}s",
            )
