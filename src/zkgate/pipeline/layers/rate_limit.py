"""Rate-limit layer — at most N invocations per fixed time window.

Config:
    max_calls: invocations allowed per window (required).
    window_seconds: window length in seconds (default 60).
    scope: "caller" (one counter per caller, the default) or "global".

The counter read-modify-write is a critical section: two concurrent
invocations can never both see the last free slot. A slot is reserved in
pre_check and handed back by on_abort if the invocation later aborts, so
only committed invocations consume the limit.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping, Optional

from zkgate.errors import LayerRejection
from zkgate.models.invocation import Invocation
from zkgate.pipeline.layer import Layer

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60.0


class RateLimitLayer(Layer):
    """Fixed-window rate limiter.

    Windows that have ended are dropped on the next pre_check, so memory
    grows with the callers active in the current window only.
    """

    def __init__(
        self,
        name: str | None = "rate_limit",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(name)
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (window index, calls reserved in that window, window end)
        self._windows: dict[str, tuple[int, int, float]] = {}

    def pre_check(
        self,
        config: Mapping[str, Any],
        selector: bytes,
        caller: str,
        value: int,
        data: Mapping[str, Any],
    ) -> tuple[str, int]:
        max_calls = int(config["max_calls"])
        now = self._clock()
        seconds = _window_seconds(config)
        window = int(now // seconds)
        key = _key(config, caller)

        with self._lock:
            self._prune(now)
            current, count, _ = self._windows.get(key, (window, 0, 0.0))
            if current != window:
                count = 0
            if count >= max_calls:
                logger.warning("Rate limit hit for %s (%d/%d)", key, count, max_calls)
                raise LayerRejection(
                    self.name,
                    f"rate limit exceeded: {max_calls} calls per {seconds:g}s",
                )
            self._windows[key] = (window, count + 1, (window + 1) * seconds)
        return key, window

    def on_abort(
        self,
        config: Mapping[str, Any],
        invocation: Invocation,
        carry: Optional[tuple[str, int]],
    ) -> None:
        if carry is None:
            return
        key, window = carry
        with self._lock:
            entry = self._windows.get(key)
            if entry is None:
                return
            current, count, ends = entry
            if current == window and count > 0:
                self._windows[key] = (window, count - 1, ends)

    def used(self, config: Mapping[str, Any], caller: str) -> int:
        """Calls consumed in the current window for a caller."""
        window = _window_index(self._clock(), config)
        with self._lock:
            current, count, _ = self._windows.get(_key(config, caller), (window, 0, 0.0))
        return count if current == window else 0

    @property
    def tracked_keys(self) -> int:
        """Number of callers (or the global scope) holding a window."""
        with self._lock:
            return len(self._windows)

    def _prune(self, now: float) -> None:
        # Caller holds self._lock.
        stale = [key for key, (_, _, ends) in self._windows.items() if ends <= now]
        for key in stale:
            del self._windows[key]


def _window_seconds(config: Mapping[str, Any]) -> float:
    seconds = float(config.get("window_seconds", DEFAULT_WINDOW_SECONDS))
    if seconds <= 0:
        raise ValueError("window_seconds must be positive")
    return seconds


def _window_index(now: float, config: Mapping[str, Any]) -> int:
    return int(now // _window_seconds(config))


def _key(config: Mapping[str, Any], caller: str) -> str:
    scope = config.get("scope", "caller")
    if scope == "global":
        return "*"
    if scope != "caller":
        raise ValueError(f"Unknown rate limit scope: {scope}")
    return caller
