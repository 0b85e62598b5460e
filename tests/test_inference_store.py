"""Tests for the inference record store."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from zkgate.crypto.digests import digest, inference_id, input_commitment, proof_system_id
from zkgate.errors import InferenceNotFound, InvalidProof, ModelDeprecated
from zkgate.models.commitment import ModelCommitment
from zkgate.persistence.event_log import EventKind, EventLog
from zkgate.registry.model_registry import ModelRegistry
from zkgate.verification.digest_backend import DigestProofBackend
from zkgate.verification.dispatch import ProofSystemDispatchTable
from zkgate.verification.inference_store import InferenceRecordStore
from zkgate.verification.verifier import InferenceVerifier


def _commitment() -> ModelCommitment:
    return ModelCommitment(
        model_hash=digest(b"model"),
        circuit_hash=digest(b"circuit"),
        vk_hash=digest(b"vk"),
        proof_system_id=proof_system_id("digest-sha256-v1"),
    )


@pytest.fixture
def log() -> EventLog:
    return EventLog()


@pytest.fixture
def registry(log: EventLog) -> ModelRegistry:
    return ModelRegistry(event_log=log)


@pytest.fixture
def store(registry: ModelRegistry) -> InferenceRecordStore:
    dispatch = ProofSystemDispatchTable()
    dispatch.register_named("digest-sha256-v1", DigestProofBackend())
    return InferenceRecordStore(InferenceVerifier(registry, dispatch))


class TestVerifyAndStore:
    def test_stores_record_under_derived_id(
        self, registry: ModelRegistry, store: InferenceRecordStore, log: EventLog,
    ) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(digest(b"vk"), ic, b"out")

        inf_id = store.verify_and_store_inference(model_id, ic, b"out", proof, caller="p")

        assert inf_id == inference_id(model_id, ic, b"out")
        record = store.get_inference(inf_id)
        assert record.model_id == model_id
        assert record.input_commitment == ic
        assert record.output == b"out"
        assert inf_id in store
        assert [e.payload for e in log.events(EventKind.INFERENCE_STORED)] == [
            {"inference_id": inf_id.hex()},
        ]

    def test_replay_returns_same_id_without_new_record(
        self, registry: ModelRegistry, store: InferenceRecordStore, log: EventLog,
    ) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(digest(b"vk"), ic, b"out")

        first = store.verify_and_store_inference(model_id, ic, b"out", proof, caller="p")
        original = store.get_inference(first)
        second = store.verify_and_store_inference(model_id, ic, b"out", proof, caller="q")

        assert first == second
        assert store.count == 1
        assert store.get_inference(first) is original
        assert len(log.events(EventKind.INFERENCE_STORED)) == 1
        assert len(log.events(EventKind.INFERENCE_VERIFIED)) == 2

    def test_fresh_nonce_yields_fresh_record(
        self, registry: ModelRegistry, store: InferenceRecordStore,
    ) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        ids = set()
        for nonce in (b"\x01" * 32, b"\x02" * 32):
            ic = input_commitment([b"x"], nonce=nonce)
            proof = DigestProofBackend.prove(digest(b"vk"), ic, b"out")
            ids.add(store.verify_and_store_inference(model_id, ic, b"out", proof, caller="p"))
        assert len(ids) == 2
        assert store.count == 2

    def test_nothing_stored_on_failure(
        self, registry: ModelRegistry, store: InferenceRecordStore, log: EventLog,
    ) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(digest(b"vk"), ic, b"out")

        with pytest.raises(InvalidProof):
            store.verify_and_store_inference(model_id, ic, b"tampered", proof, caller="p")
        registry.deprecate_model(model_id, caller="alice")
        with pytest.raises(ModelDeprecated):
            store.verify_and_store_inference(model_id, ic, b"out", proof, caller="p")

        assert store.count == 0
        assert log.events(EventKind.INFERENCE_STORED) == []

    def test_unknown_inference(self, store: InferenceRecordStore) -> None:
        with pytest.raises(InferenceNotFound) as exc_info:
            store.get_inference(b"\x00" * 32)
        assert exc_info.value.kind == "not_found"

    def test_nothing_stored_when_audit_write_fails(
        self, registry: ModelRegistry, tmp_path: Path,
    ) -> None:
        log_dir = tmp_path / "log"
        log_dir.mkdir()
        dispatch = ProofSystemDispatchTable()
        dispatch.register_named("digest-sha256-v1", DigestProofBackend())
        store = InferenceRecordStore(
            InferenceVerifier(registry, dispatch),
            event_log=EventLog(storage_path=log_dir / "events.jsonl"),
        )
        model_id = registry.register_model(_commitment(), caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(digest(b"vk"), ic, b"out")
        shutil.rmtree(log_dir)

        with pytest.raises(OSError):
            store.verify_and_store_inference(model_id, ic, b"out", proof, caller="p")
        assert store.count == 0
        assert inference_id(model_id, ic, b"out") not in store


class TestPersistence:
    def test_round_trip(self, registry: ModelRegistry, store: InferenceRecordStore) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(digest(b"vk"), ic, b"out")
        inf_id = store.verify_and_store_inference(model_id, ic, b"out", proof, caller="p")

        verifier = InferenceVerifier(registry, ProofSystemDispatchTable())
        restored = InferenceRecordStore.from_records(verifier, store.to_records())

        assert restored.get_inference(inf_id) == store.get_inference(inf_id)

    def test_tampered_record_rejected(
        self, registry: ModelRegistry, store: InferenceRecordStore,
    ) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(digest(b"vk"), ic, b"out")
        store.verify_and_store_inference(model_id, ic, b"out", proof, caller="p")

        records = store.to_records()
        records[0]["output"] = b"other".hex()
        verifier = InferenceVerifier(registry, ProofSystemDispatchTable())
        with pytest.raises(ValueError, match="mismatch"):
            InferenceRecordStore.from_records(verifier, records)

    def test_failed_load_keeps_existing_records(
        self, registry: ModelRegistry, store: InferenceRecordStore,
    ) -> None:
        model_id = registry.register_model(_commitment(), caller="alice")
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(digest(b"vk"), ic, b"out")
        inf_id = store.verify_and_store_inference(model_id, ic, b"out", proof, caller="p")

        records = store.to_records()
        records[0]["model_id"] = model_id + 1
        with pytest.raises(ValueError, match="mismatch"):
            store.load_records(records)
        assert store.get_inference(inf_id).model_id == model_id
