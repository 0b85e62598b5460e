"""Canonical identifiers and domain-separated digests.

Every identifier that selects behaviour is a fixed-width value derived by
a documented canonicalisation followed by a SHA-256 hash. Independent
implementations reproduce these byte-for-byte:

    proof_system_id(name)  = sha256(DOMAIN_PROOF_SYSTEM || name)[:4]
    operation_selector(s)  = sha256(DOMAIN_SELECTOR || s)[:4]
    input_commitment(...)  = sha256(DOMAIN_INPUT_COMMITMENT || fields...)
    inference_id(...)      = sha256(DOMAIN_INFERENCE || fields...)

Variable-length fields are length-prefixed (8-byte big-endian) so that
two different field tuples can never serialise to the same preimage.
"""

from __future__ import annotations

import hashlib
import re
import secrets
from typing import Iterable, Optional, Union

DIGEST_SIZE = 32
PROOF_SYSTEM_ID_SIZE = 4
SELECTOR_SIZE = 4
NONCE_SIZE = 32

DOMAIN_PROOF_SYSTEM = b"zkgate/proof-system/v1\x00"
DOMAIN_SELECTOR = b"zkgate/selector/v1\x00"
DOMAIN_INPUT_COMMITMENT = b"zkgate/input-commitment/v1\x00"
DOMAIN_INFERENCE = b"zkgate/inference/v1\x00"

_CANONICAL_NAME = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
_SEPARATORS = re.compile(r"[\s_]+")

BytesLike = Union[bytes, bytearray, memoryview]


def digest(data: bytes) -> bytes:
    """SHA-256 of raw bytes."""
    return hashlib.sha256(data).digest()


def _field(data: bytes) -> bytes:
    return len(data).to_bytes(8, "big") + data


def canonical_proof_system_name(name: str) -> str:
    """Canonicalise a proof-system name to lowercase, hyphen-separated form.

    "Groth16 BN254_v1" -> "groth16-bn254-v1".

    Raises:
        ValueError: If the canonical form is empty or contains characters
            outside [a-z0-9-].
    """
    canonical = _SEPARATORS.sub("-", name.strip().lower())
    if not _CANONICAL_NAME.match(canonical):
        raise ValueError(f"Not a canonical proof-system name: {name!r}")
    return canonical


def proof_system_id(name: str) -> bytes:
    """Derive the 4-byte dispatch identifier for a proof-system name."""
    canonical = canonical_proof_system_name(name)
    return digest(DOMAIN_PROOF_SYSTEM + canonical.encode("utf-8"))[:PROOF_SYSTEM_ID_SIZE]


def operation_selector(signature: str) -> bytes:
    """Derive the 4-byte selector for a protected operation signature.

    Whitespace is removed before hashing, so "transfer(address, uint256)"
    and "transfer(address,uint256)" select the same operation.
    """
    canonical = "".join(signature.split())
    if not canonical:
        raise ValueError("Operation signature cannot be empty")
    return digest(DOMAIN_SELECTOR + canonical.encode("utf-8"))[:SELECTOR_SIZE]


def new_nonce() -> bytes:
    """Fresh per-inference salt."""
    return secrets.token_bytes(NONCE_SIZE)


def input_commitment(
    private_inputs: Iterable[BytesLike],
    public_inputs: Iterable[BytesLike] = (),
    nonce: Optional[bytes] = None,
) -> bytes:
    """Commit to every input of one inference.

    Args:
        private_inputs: Private input blobs, in order.
        public_inputs: Publicly declared input blobs, in order.
        nonce: Optional per-inference salt. Supply one whenever the
            computation is non-deterministic or single-use, otherwise two
            distinct invocations over the same inputs share a commitment.

    Returns:
        32-byte commitment.
    """
    private = [bytes(p) for p in private_inputs]
    public = [bytes(p) for p in public_inputs]

    parts = [DOMAIN_INPUT_COMMITMENT]
    parts.append(len(private).to_bytes(4, "big"))
    parts.extend(_field(p) for p in private)
    parts.append(len(public).to_bytes(4, "big"))
    parts.extend(_field(p) for p in public)
    if nonce is None:
        parts.append(b"\x00")
    else:
        parts.append(b"\x01" + _field(bytes(nonce)))
    return digest(b"".join(parts))


def inference_id(model_id: int, input_commitment: bytes, output: bytes) -> bytes:
    """Deterministic receipt id for an accepted (model, input, output) triple."""
    preimage = b"".join([
        DOMAIN_INFERENCE,
        model_id.to_bytes(8, "big"),
        _field(bytes(input_commitment)),
        _field(bytes(output)),
    ])
    return digest(preimage)


def from_hex(value: str, size: Optional[int] = None) -> bytes:
    """Decode a hex string (optional 0x prefix), checking width if given."""
    text = value.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    raw = bytes.fromhex(text)
    if size is not None and len(raw) != size:
        raise ValueError(f"Expected {size} bytes, got {len(raw)}")
    return raw
