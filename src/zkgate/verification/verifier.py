"""Inference verifier — checks a proof of computation against a model commitment.

Protocol for verify_inference(model_id, input_commitment, output, proof):
1. Load a snapshot of the model from the registry (ModelNotFound).
2. Refuse deprecated models (ModelDeprecated), whatever the proof.
3. Resolve the backend for the commitment's proof-system id
   (UnsupportedProofSystem).
4. Call the backend with (vk_hash, input_commitment, output, proof).
5. A False result is InvalidProof; a backend may raise a refined
   ModelMismatch / InputCommitmentMismatch / OutputMismatch instead.
6. On success append INFERENCE_VERIFIED and return None.

The verifier holds no state beyond the event stream it appends to. Each
call is a read of one registry snapshot followed by a pure predicate, so
concurrent callers need no coordination.
"""

from __future__ import annotations

import logging
from typing import Optional

from zkgate.crypto.digests import DIGEST_SIZE
from zkgate.errors import InvalidProof, ModelDeprecated, ValidationError
from zkgate.models.commitment import ModelView
from zkgate.persistence.event_log import EventKind, EventLog
from zkgate.registry.model_registry import ModelRegistry
from zkgate.verification.dispatch import ProofSystemDispatchTable

logger = logging.getLogger(__name__)


class InferenceVerifier:
    """Dispatches inference proofs to the backend selected by the model."""

    def __init__(
        self,
        registry: ModelRegistry,
        dispatch: ProofSystemDispatchTable,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._registry = registry
        self._dispatch = dispatch
        self._event_log = event_log if event_log is not None else registry.event_log

    @property
    def registry(self) -> ModelRegistry:
        """Handle to the registry this verifier reads from."""
        return self._registry

    @property
    def dispatch(self) -> ProofSystemDispatchTable:
        return self._dispatch

    def proof_system_of(self, model_id: int) -> bytes:
        """Proof-system id of a model's current commitment."""
        return self._registry.get_model(model_id).commitment.proof_system_id

    def verify_inference(
        self,
        model_id: int,
        input_commitment: bytes,
        output: bytes,
        proof: bytes,
        caller: str,
    ) -> None:
        """Verify one inference. Returns normally on success.

        Raises:
            ModelNotFound: Unknown model.
            ModelDeprecated: The model is deprecated.
            UnsupportedProofSystem: No backend for the model's proof system.
            InvalidProof: The proof was rejected (or one of its refined
                subclasses when the backend distinguishes the cause).
            ValidationError: Arguments have the wrong type or width.
        """
        model = self.check(model_id, input_commitment, output, proof)
        self._event_log.emit(
            EventKind.INFERENCE_VERIFIED,
            caller,
            {
                "model_id": model_id,
                "input_commitment": input_commitment.hex(),
                "output": output.hex(),
                "caller": caller,
                "model_version": model.version,
            },
        )
        logger.info("Verified inference for model %d from %s", model_id, caller)

    def check(
        self,
        model_id: int,
        input_commitment: bytes,
        output: bytes,
        proof: bytes,
    ) -> ModelView:
        """Run steps 1-5 of the protocol without emitting anything.

        Returns the model snapshot the proof was checked against.
        """
        _check_arguments(input_commitment, output, proof)

        model = self._registry.get_model(model_id)
        if model.deprecated:
            logger.warning("Refused inference against deprecated model %d", model_id)
            raise ModelDeprecated(model_id)

        backend = self._dispatch.resolve(model.commitment.proof_system_id)

        try:
            ok = backend.verify(
                model.commitment.vk_hash, input_commitment, output, proof,
            )
        except InvalidProof as exc:
            logger.info("Rejected proof for model %d: %s", model_id, exc)
            if exc.model_id is None:
                raise type(exc)(model_id, exc.detail) from exc
            raise

        if not ok:
            logger.info("Rejected proof for model %d", model_id)
            raise InvalidProof(model_id)
        return model


def _check_arguments(input_commitment: bytes, output: bytes, proof: bytes) -> None:
    if not isinstance(input_commitment, bytes) or len(input_commitment) != DIGEST_SIZE:
        raise ValidationError(
            f"Input commitment must be {DIGEST_SIZE} bytes"
        )
    if not isinstance(output, bytes):
        raise ValidationError("Output must be bytes")
    if not isinstance(proof, bytes):
        raise ValidationError("Proof must be bytes")
