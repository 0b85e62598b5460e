"""Model commitment and inference record models.

A ModelCommitment identifies a computation artifact (a "model") by three
digests: the weights/architecture, the verification circuit and the
verifying key. The proof_system_id selects which verification backend
checks proofs for it.

Commitments are immutable. A model changes by replacing its commitment,
never by mutating one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from zkgate.crypto.digests import DIGEST_SIZE, PROOF_SYSTEM_ID_SIZE, from_hex


@dataclass(frozen=True)
class ModelCommitment:
    """Immutable snapshot identifying one version of a model.

    The uri is an off-path metadata pointer and is never trust-bearing.
    """
    model_hash: bytes
    circuit_hash: bytes
    vk_hash: bytes
    proof_system_id: bytes
    uri: Optional[str] = None

    def malformed_fields(self) -> list[str]:
        """Return the names of fields with the wrong type or width."""
        bad: list[str] = []
        for name in ("model_hash", "circuit_hash", "vk_hash"):
            value = getattr(self, name)
            if not isinstance(value, bytes) or len(value) != DIGEST_SIZE:
                bad.append(name)
        if (
            not isinstance(self.proof_system_id, bytes)
            or len(self.proof_system_id) != PROOF_SYSTEM_ID_SIZE
        ):
            bad.append("proof_system_id")
        if self.uri is not None and not isinstance(self.uri, str):
            bad.append("uri")
        return bad

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_hash": self.model_hash.hex(),
            "circuit_hash": self.circuit_hash.hex(),
            "vk_hash": self.vk_hash.hex(),
            "proof_system_id": self.proof_system_id.hex(),
            "uri": self.uri,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ModelCommitment:
        return ModelCommitment(
            model_hash=from_hex(data["model_hash"]),
            circuit_hash=from_hex(data["circuit_hash"]),
            vk_hash=from_hex(data["vk_hash"]),
            proof_system_id=from_hex(data["proof_system_id"]),
            uri=data.get("uri"),
        )


@dataclass
class ModelRecord:
    """A registered model.

    Only the owner may replace the commitment or deprecate the model.
    Deprecation is one-way; once set the record is frozen.
    """
    model_id: int
    commitment: ModelCommitment
    owner: str
    registered_utc: datetime
    deprecated: bool = False
    version: int = 1
    history: list[ModelCommitment] = field(default_factory=list)


@dataclass(frozen=True)
class ModelView:
    """Read-only snapshot returned by the registry."""
    model_id: int
    commitment: ModelCommitment
    deprecated: bool
    owner: str
    version: int


@dataclass(frozen=True)
class InferenceRecord:
    """An accepted inference, stored once and never modified."""
    inference_id: bytes
    model_id: int
    input_commitment: bytes
    output: bytes
    stored_utc: datetime
