"""Stand-in proof system for tests and the CLI.

This is not zero-knowledge and proves nothing about the computation. It
binds the statement (vk_hash, input_commitment, output) with three
chained digests so the verifier's dispatch, failure taxonomy and replay
handling can be exercised end to end:

    proof = H(tag, vk) || H(tag, vk, input) || H(tag, vk, input, output)

Each segment is checked in order, so a strict backend can say which
binding failed: the verifying key (ModelMismatch), the input commitment
(InputCommitmentMismatch) or the output (OutputMismatch). A non-strict
backend reports every failure coarsely by returning False.
"""

from __future__ import annotations

import hmac

from zkgate.crypto.digests import DIGEST_SIZE, digest
from zkgate.errors import (
    InputCommitmentMismatch,
    ModelMismatch,
    OutputMismatch,
)
from zkgate.verification.dispatch import ProofBackend

DOMAIN_DIGEST_PROOF = b"zkgate/digest-proof/v1\x00"
PROOF_SIZE = 3 * DIGEST_SIZE


def _segment(*parts: bytes) -> bytes:
    body = b"".join(len(p).to_bytes(8, "big") + p for p in parts)
    return digest(DOMAIN_DIGEST_PROOF + body)


class DigestProofBackend(ProofBackend):
    """Chained-digest backend.

    Args:
        strict: Raise the specific mismatch error instead of returning
            False when a binding does not hold.
    """

    def __init__(self, strict: bool = True) -> None:
        self._strict = strict

    @staticmethod
    def prove(vk_hash: bytes, input_commitment: bytes, output: bytes) -> bytes:
        """Produce the proof this backend accepts for a statement."""
        return b"".join([
            _segment(vk_hash),
            _segment(vk_hash, input_commitment),
            _segment(vk_hash, input_commitment, output),
        ])

    def verify(
        self,
        vk_hash: bytes,
        input_commitment: bytes,
        output: bytes,
        proof: bytes,
    ) -> bool:
        if len(proof) != PROOF_SIZE:
            return False

        checks = (
            (proof[:DIGEST_SIZE], _segment(vk_hash), ModelMismatch,
             "proof was produced for a different verifying key"),
            (proof[DIGEST_SIZE:2 * DIGEST_SIZE],
             _segment(vk_hash, input_commitment), InputCommitmentMismatch,
             "proof does not bind the input commitment"),
            (proof[2 * DIGEST_SIZE:],
             _segment(vk_hash, input_commitment, output), OutputMismatch,
             "proof does not bind the output"),
        )
        for actual, expected, error, detail in checks:
            if not hmac.compare_digest(actual, expected):
                if self._strict:
                    raise error(detail=detail)
                return False
        return True
