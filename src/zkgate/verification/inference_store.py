"""Inference record store — idempotent receipts for accepted inferences.

verify_and_store_inference runs the full verifier protocol and, only on
success, stores the triple under

    inference_id = H(model_id, input_commitment, output)

Because the id is a deterministic function of its inputs, resubmitting
the same triple lands on the same record. That collision is the only
built-in replay signal: the second submission still verifies, returns
the same id and leaves the original record untouched, but it does not
produce a second INFERENCE_STORED event. Real replay prevention needs
single-use input commitments (a per-inference nonce).
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from zkgate.crypto.digests import from_hex, inference_id as derive_inference_id
from zkgate.errors import InferenceNotFound
from zkgate.models.commitment import InferenceRecord
from zkgate.persistence.event_log import EventKind, EventLog
from zkgate.verification.verifier import InferenceVerifier

logger = logging.getLogger(__name__)


class InferenceRecordStore:
    """Stores accepted inferences keyed by their derived id.

    Usage:
        store = InferenceRecordStore(verifier)
        inference_id = store.verify_and_store_inference(
            model_id, input_commitment, output, proof, caller="prover-1",
        )
        record = store.get_inference(inference_id)
    """

    def __init__(
        self,
        verifier: InferenceVerifier,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._verifier = verifier
        self._event_log = (
            event_log if event_log is not None else verifier.registry.event_log
        )
        self._records: dict[bytes, InferenceRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_records(
        cls,
        verifier: InferenceVerifier,
        records: list[dict[str, Any]],
        event_log: Optional[EventLog] = None,
    ) -> InferenceRecordStore:
        """Restore store state from persistence records."""
        store = cls(verifier, event_log=event_log)
        store.load_records(records)
        return store

    def load_records(self, records: list[dict[str, Any]]) -> None:
        """Replace all stored inferences with persistence records.

        Raises:
            ValueError: A record's id does not match its contents. The
                store is left unchanged.
        """
        loaded: dict[bytes, InferenceRecord] = {}
        for rd in records:
            record = InferenceRecord(
                inference_id=from_hex(rd["inference_id"]),
                model_id=int(rd["model_id"]),
                input_commitment=from_hex(rd["input_commitment"]),
                output=from_hex(rd["output"]),
                stored_utc=datetime.fromisoformat(rd["stored_utc"]),
            )
            expected = derive_inference_id(
                record.model_id, record.input_commitment, record.output,
            )
            if expected != record.inference_id:
                raise ValueError(
                    f"Inference id mismatch on restore: {rd['inference_id']}"
                )
            loaded[record.inference_id] = record
        with self._lock:
            self._records = loaded

    def verify_and_store_inference(
        self,
        model_id: int,
        input_commitment: bytes,
        output: bytes,
        proof: bytes,
        caller: str,
        now: Optional[datetime] = None,
    ) -> bytes:
        """Verify an inference and store its receipt.

        Fails exactly as InferenceVerifier.verify_inference does; nothing
        is stored unless verification succeeds.

        Returns:
            The 32-byte inference id.
        """
        self._verifier.verify_inference(
            model_id, input_commitment, output, proof, caller,
        )
        if now is None:
            now = datetime.now(timezone.utc)

        inference_id = derive_inference_id(model_id, input_commitment, output)
        with self._lock:
            if inference_id in self._records:
                logger.warning(
                    "Replayed inference %s for model %d",
                    inference_id.hex()[:16], model_id,
                )
                return inference_id
            self._event_log.emit(
                EventKind.INFERENCE_STORED,
                caller,
                {"inference_id": inference_id.hex()},
            )
            self._records[inference_id] = InferenceRecord(
                inference_id=inference_id,
                model_id=model_id,
                input_commitment=input_commitment,
                output=output,
                stored_utc=now,
            )
        logger.info("Stored inference %s", inference_id.hex()[:16])
        return inference_id

    def get_inference(self, inference_id: bytes) -> InferenceRecord:
        """Look up a stored inference.

        Raises:
            InferenceNotFound: Unknown id.
        """
        record = self._records.get(inference_id)
        if record is None:
            raise InferenceNotFound(inference_id)
        return record

    def __contains__(self, inference_id: object) -> bool:
        return inference_id in self._records

    @property
    def count(self) -> int:
        return len(self._records)

    def to_records(self) -> list[dict[str, Any]]:
        """Serialise all stored inferences for persistence."""
        with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.stored_utc)
        return [
            {
                "inference_id": r.inference_id.hex(),
                "model_id": r.model_id,
                "input_commitment": r.input_commitment.hex(),
                "output": r.output.hex(),
                "stored_utc": r.stored_utc.isoformat(),
            }
            for r in records
        ]
