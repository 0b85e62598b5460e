"""Proof verification: dispatch table, verifier and inference receipts."""

from zkgate.verification.digest_backend import DigestProofBackend
from zkgate.verification.dispatch import ProofBackend, ProofSystemDispatchTable
from zkgate.verification.inference_store import InferenceRecordStore
from zkgate.verification.verifier import InferenceVerifier

__all__ = [
    "DigestProofBackend",
    "ProofBackend",
    "ProofSystemDispatchTable",
    "InferenceRecordStore",
    "InferenceVerifier",
]
