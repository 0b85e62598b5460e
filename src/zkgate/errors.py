"""Error taxonomy for zkgate.

Every failure aborts the unit of work it occurred in. Callers get a
specific error class (and a short ``kind`` string for transport) that is
enough to tell "try a different model", "you are not authorised" and
"this proof is simply invalid" apart.

Kinds:
- not_found: unknown model or inference id.
- authorization: non-owner mutation attempt.
- state: operation on a deprecated model.
- validation: malformed input or caller, invalid proof, unsupported
  proof system.
- layer_rejection: a pipeline layer's business rule failed.
"""

from __future__ import annotations


class ZkGateError(Exception):
    """Base class for every error raised by zkgate."""
    kind = "error"


# ------------------------------------------------------------------ #
# Not found                                                           #
# ------------------------------------------------------------------ #

class NotFoundError(ZkGateError):
    kind = "not_found"


class ModelNotFound(NotFoundError):
    def __init__(self, model_id: int) -> None:
        super().__init__(f"Model not found: {model_id}")
        self.model_id = model_id


class InferenceNotFound(NotFoundError):
    def __init__(self, inference_id: bytes) -> None:
        super().__init__(f"Inference not found: {inference_id.hex()}")
        self.inference_id = inference_id


# ------------------------------------------------------------------ #
# Authorization                                                       #
# ------------------------------------------------------------------ #

class AuthorizationError(ZkGateError):
    kind = "authorization"


class NotModelOwner(AuthorizationError):
    def __init__(self, model_id: int, caller: str) -> None:
        super().__init__(f"Caller {caller} is not the owner of model {model_id}")
        self.model_id = model_id
        self.caller = caller


# ------------------------------------------------------------------ #
# State                                                               #
# ------------------------------------------------------------------ #

class StateError(ZkGateError):
    kind = "state"


class ModelDeprecated(StateError):
    """Raised for any new inference or mutation against a deprecated model."""

    def __init__(self, model_id: int) -> None:
        super().__init__(f"Model {model_id} is deprecated")
        self.model_id = model_id


# ------------------------------------------------------------------ #
# Validation                                                          #
# ------------------------------------------------------------------ #

class ValidationError(ZkGateError):
    kind = "validation"


class MalformedCommitment(ValidationError):
    pass


class InvalidCaller(ValidationError):
    def __init__(self, caller: object) -> None:
        super().__init__(f"Invalid caller: {caller!r}")
        self.caller = caller


class UnsupportedProofSystem(ValidationError):
    def __init__(self, proof_system_id: bytes) -> None:
        super().__init__(f"No backend registered for proof system {proof_system_id.hex()}")
        self.proof_system_id = proof_system_id


class InvalidProof(ValidationError):
    def __init__(self, model_id: int | None = None, detail: str = "") -> None:
        message = "Invalid proof"
        if model_id is not None:
            message += f" for model {model_id}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.model_id = model_id
        self.detail = detail


class ModelMismatch(InvalidProof):
    """The proof was produced against a different verifying key."""


class InputCommitmentMismatch(InvalidProof):
    """The proof does not bind the declared input commitment."""


class OutputMismatch(InvalidProof):
    """The proof does not bind the declared output."""


# ------------------------------------------------------------------ #
# Pipeline                                                            #
# ------------------------------------------------------------------ #

class LayerRejection(ZkGateError):
    """A pipeline layer refused the invocation."""
    kind = "layer_rejection"

    def __init__(self, layer: str, reason: str) -> None:
        super().__init__(f"[{layer}] {reason}")
        self.layer = layer
        self.reason = reason


class TransitionError(ZkGateError):
    """Raised when a pipeline state transition is not allowed."""
    kind = "state"
