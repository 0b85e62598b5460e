"""Stock layers."""

from zkgate.pipeline.layers.allowlist import CallerAllowlistLayer
from zkgate.pipeline.layers.deadline import DeadlineLayer
from zkgate.pipeline.layers.rate_limit import RateLimitLayer
from zkgate.pipeline.layers.value_cap import ValueCapLayer

__all__ = [
    "CallerAllowlistLayer",
    "DeadlineLayer",
    "RateLimitLayer",
    "ValueCapLayer",
]
