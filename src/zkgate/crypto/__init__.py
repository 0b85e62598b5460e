"""Canonical identifiers and domain-separated digests."""

from zkgate.crypto.digests import (
    inference_id,
    input_commitment,
    operation_selector,
    proof_system_id,
)

__all__ = [
    "inference_id",
    "input_commitment",
    "operation_selector",
    "proof_system_id",
]
