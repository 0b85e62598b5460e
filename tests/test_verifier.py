"""Tests for the inference verifier.

Covers the verification protocol end to end with the digest backend:
- a valid proof against an active model succeeds and is audited;
- tampered outputs, foreign verifying keys and garbage proofs fail with
  a proof error, never silently;
- deprecated models and unknown proof systems are refused whatever the
  proof;
- after an owner update, proofs made for the old verifying key fail.
"""

from __future__ import annotations

import threading

import pytest

from zkgate.crypto.digests import digest, input_commitment, proof_system_id
from zkgate.errors import (
    InvalidProof,
    ModelDeprecated,
    ModelMismatch,
    ModelNotFound,
    OutputMismatch,
    UnsupportedProofSystem,
    ValidationError,
)
from zkgate.models.commitment import ModelCommitment
from zkgate.persistence.event_log import EventKind, EventLog
from zkgate.registry.model_registry import ModelRegistry
from zkgate.verification.digest_backend import DigestProofBackend
from zkgate.verification.dispatch import ProofBackend, ProofSystemDispatchTable
from zkgate.verification.verifier import InferenceVerifier

PS = "groth16-bn254-v1"


def _commitment(seed: str = "m1", ps: str = PS) -> ModelCommitment:
    return ModelCommitment(
        model_hash=digest(f"model:{seed}".encode()),
        circuit_hash=digest(f"circuit:{seed}".encode()),
        vk_hash=digest(f"vk:{seed}".encode()),
        proof_system_id=proof_system_id(ps),
    )


class _Rejecting(ProofBackend):
    def verify(self, vk_hash, input_commitment, output, proof) -> bool:
        return False


class _Recording(ProofBackend):
    def __init__(self) -> None:
        self.calls: list[tuple[bytes, bytes, bytes, bytes]] = []

    def verify(self, vk_hash, input_commitment, output, proof) -> bool:
        self.calls.append((vk_hash, input_commitment, output, proof))
        return True


@pytest.fixture
def log() -> EventLog:
    return EventLog()


@pytest.fixture
def registry(log: EventLog) -> ModelRegistry:
    return ModelRegistry(event_log=log)


@pytest.fixture
def dispatch() -> ProofSystemDispatchTable:
    table = ProofSystemDispatchTable()
    table.register_named(PS, DigestProofBackend())
    return table


@pytest.fixture
def verifier(registry: ModelRegistry, dispatch: ProofSystemDispatchTable) -> InferenceVerifier:
    return InferenceVerifier(registry, dispatch)


class TestVerifyInference:
    def test_valid_proof_succeeds_and_is_audited(
        self, registry: ModelRegistry, verifier: InferenceVerifier, log: EventLog,
    ) -> None:
        commitment = _commitment()
        model_id = registry.register_model(commitment, caller="alice")
        ic = input_commitment([b"image-bytes"])
        output = b"\x07"
        proof = DigestProofBackend.prove(commitment.vk_hash, ic, output)

        assert verifier.verify_inference(model_id, ic, output, proof, caller="prover") is None

        events = log.events(EventKind.INFERENCE_VERIFIED)
        assert len(events) == 1
        assert events[0].payload == {
            "model_id": model_id,
            "input_commitment": ic.hex(),
            "output": output.hex(),
            "caller": "prover",
            "model_version": 1,
        }

    def test_tampered_output_rejected(
        self, registry: ModelRegistry, verifier: InferenceVerifier, log: EventLog,
    ) -> None:
        commitment = _commitment()
        model_id = registry.register_model(commitment, caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(commitment.vk_hash, ic, b"\x01")

        with pytest.raises(OutputMismatch) as exc_info:
            verifier.verify_inference(model_id, ic, b"\x02", proof, caller="prover")

        assert isinstance(exc_info.value, InvalidProof)
        assert exc_info.value.model_id == model_id
        assert log.events(EventKind.INFERENCE_VERIFIED) == []

    def test_refined_error_message_names_model(
        self, registry: ModelRegistry, verifier: InferenceVerifier,
    ) -> None:
        commitment = _commitment()
        model_id = registry.register_model(commitment, caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(commitment.vk_hash, ic, b"\x01")

        with pytest.raises(OutputMismatch) as exc_info:
            verifier.verify_inference(model_id, ic, b"\x02", proof, caller="prover")

        assert str(exc_info.value) == (
            f"Invalid proof for model {model_id}: proof does not bind the output"
        )
        assert exc_info.value.detail == "proof does not bind the output"
        assert isinstance(exc_info.value.__cause__, OutputMismatch)

    def test_coarse_backend_false_is_invalid_proof(
        self, registry: ModelRegistry, dispatch: ProofSystemDispatchTable,
    ) -> None:
        dispatch.register_named("plonk-kzg-v1", _Rejecting())
        model_id = registry.register_model(_commitment(ps="plonk-kzg-v1"), caller="alice")
        verifier = InferenceVerifier(registry, dispatch)
        with pytest.raises(InvalidProof) as exc_info:
            verifier.verify_inference(
                model_id, input_commitment([b"x"]), b"out", b"proof", caller="p",
            )
        assert type(exc_info.value) is InvalidProof
        assert exc_info.value.model_id == model_id

    def test_garbage_proof_rejected(
        self, registry: ModelRegistry, verifier: InferenceVerifier,
    ) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        with pytest.raises(InvalidProof):
            verifier.verify_inference(
                model_id, input_commitment([b"x"]), b"out", b"\x00" * 96, caller="p",
            )

    def test_unknown_model(self, verifier: InferenceVerifier) -> None:
        with pytest.raises(ModelNotFound):
            verifier.verify_inference(1, input_commitment([b"x"]), b"o", b"p", caller="p")

    def test_deprecated_model_refused_even_with_valid_proof(
        self, registry: ModelRegistry, verifier: InferenceVerifier,
    ) -> None:
        commitment = _commitment()
        model_id = registry.register_model(commitment, caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(commitment.vk_hash, ic, b"o")
        registry.deprecate_model(model_id, caller="alice")

        with pytest.raises(ModelDeprecated):
            verifier.verify_inference(model_id, ic, b"o", proof, caller="p")

    def test_unsupported_proof_system(
        self, registry: ModelRegistry, verifier: InferenceVerifier,
    ) -> None:
        commitment = _commitment(ps="halo2-ipa-v1")
        model_id = registry.register_model(commitment, caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(commitment.vk_hash, ic, b"o")

        with pytest.raises(UnsupportedProofSystem) as exc_info:
            verifier.verify_inference(model_id, ic, b"o", proof, caller="p")
        assert exc_info.value.proof_system_id == proof_system_id("halo2-ipa-v1")

    def test_old_proof_fails_after_update(
        self, registry: ModelRegistry, verifier: InferenceVerifier,
    ) -> None:
        old = _commitment("v1")
        model_id = registry.register_model(old, caller="alice")
        ic = input_commitment([b"x"])
        old_proof = DigestProofBackend.prove(old.vk_hash, ic, b"o")
        verifier.verify_inference(model_id, ic, b"o", old_proof, caller="p")

        new = _commitment("v2")
        registry.update_model(model_id, new, caller="alice")

        with pytest.raises(ModelMismatch):
            verifier.verify_inference(model_id, ic, b"o", old_proof, caller="p")
        new_proof = DigestProofBackend.prove(new.vk_hash, ic, b"o")
        verifier.verify_inference(model_id, ic, b"o", new_proof, caller="p")

    def test_backend_receives_current_vk(
        self, registry: ModelRegistry, dispatch: ProofSystemDispatchTable,
    ) -> None:
        backend = _Recording()
        dispatch.register_named("plonk-kzg-v1", backend)
        commitment = _commitment(ps="plonk-kzg-v1")
        model_id = registry.register_model(commitment, caller="alice")
        ic = input_commitment([b"x"])

        InferenceVerifier(registry, dispatch).verify_inference(
            model_id, ic, b"out", b"proof", caller="p",
        )
        assert backend.calls == [(commitment.vk_hash, ic, b"out", b"proof")]

    @pytest.mark.parametrize(
        "ic, output, proof",
        [
            (b"\x00" * 31, b"o", b"p"),
            ("not-bytes", b"o", b"p"),
            (b"\x00" * 32, "o", b"p"),
            (b"\x00" * 32, b"o", None),
        ],
    )
    def test_argument_validation(
        self, registry: ModelRegistry, verifier: InferenceVerifier, ic, output, proof,
    ) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        with pytest.raises(ValidationError):
            verifier.verify_inference(model_id, ic, output, proof, caller="p")

    def test_proof_system_of(self, registry: ModelRegistry, verifier: InferenceVerifier) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        assert verifier.proof_system_of(model_id) == proof_system_id(PS)


class TestConcurrentVerification:
    def test_parallel_verifications_all_succeed(
        self, registry: ModelRegistry, verifier: InferenceVerifier, log: EventLog,
    ) -> None:
        commitment = _commitment()
        model_id = registry.register_model(commitment, caller="alice")
        errors: list[Exception] = []

        def worker(n: int) -> None:
            for i in range(10):
                ic = input_commitment([f"{n}:{i}".encode()])
                proof = DigestProofBackend.prove(commitment.vk_hash, ic, b"o")
                try:
                    verifier.verify_inference(model_id, ic, b"o", proof, caller=f"p{n}")
                except Exception as exc:  # noqa: BLE001
                    errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(log.events(EventKind.INFERENCE_VERIFIED)) == 60
