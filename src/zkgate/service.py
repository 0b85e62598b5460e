"""zkgate service — unified facade over registry, verifier and inference store.

This is the primary interface for programmatic access to zkgate. It
wires together:
- Commitment registry (register, update, deprecate, look up models)
- Proof-system dispatch table (backend installation)
- Inference verifier and inference record store
- Persistence (event log, state snapshot)

All operations produce typed results. zkgate errors become failed
results carrying the error kind; anything else propagates.

Mutations run one at a time. Their audit events are held back until the
state snapshot is saved, and a failure to save either one restores the
in-memory state and returns a failed result of kind "persistence", so a
caller never sees a change that was not made durable.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence, TypeVar

from zkgate.errors import ZkGateError
from zkgate.models.commitment import ModelCommitment, ModelView
from zkgate.persistence.event_log import EventKind, EventLog
from zkgate.persistence.state_store import StateStore
from zkgate.pipeline.builder import build_pipeline
from zkgate.pipeline.pipeline import LayerPipeline
from zkgate.registry.model_registry import ModelRegistry
from zkgate.verification.dispatch import ProofBackend, ProofSystemDispatchTable
from zkgate.verification.inference_store import InferenceRecordStore
from zkgate.verification.verifier import InferenceVerifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class ZkGateService:
    """Facade over the commitment registry and verification stack.

    Usage:
        service = ZkGateService()
        service.install_backend("groth16-bn254-v1", Groth16Backend())
        result = service.register_model(commitment, caller="alice")
        model_id = result.data["model_id"]
        result = service.verify_and_store_inference(
            model_id, input_commitment, output, proof, caller="prover",
        )

    Persistence (optional):
        service = ZkGateService(event_log=log, state_store=store)
        # Registry and inference records are restored on construction
        # and saved after each successful mutation.
    """

    def __init__(
        self,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
        dispatch: Optional[ProofSystemDispatchTable] = None,
    ) -> None:
        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store
        self._dispatch = dispatch if dispatch is not None else ProofSystemDispatchTable()
        self._mutation_lock = threading.Lock()

        if state_store is not None:
            self._registry = ModelRegistry.from_records(
                state_store.section("registry"), event_log=self._event_log,
            )
        else:
            self._registry = ModelRegistry(event_log=self._event_log)

        self._verifier = InferenceVerifier(
            self._registry, self._dispatch, event_log=self._event_log,
        )
        if state_store is not None:
            self._inferences = InferenceRecordStore.from_records(
                self._verifier,
                state_store.section("inferences"),
                event_log=self._event_log,
            )
        else:
            self._inferences = InferenceRecordStore(
                self._verifier, event_log=self._event_log,
            )

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def verifier(self) -> InferenceVerifier:
        return self._verifier

    @property
    def inferences(self) -> InferenceRecordStore:
        return self._inferences

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    def install_backend(
        self,
        name: str,
        backend: ProofBackend,
        replace: bool = False,
    ) -> bytes:
        """Register a backend under a canonical proof-system name."""
        return self._dispatch.register_named(name, backend, replace=replace)

    # ------------------------------------------------------------------
    # Guarded operations
    # ------------------------------------------------------------------

    def pipeline_for(
        self,
        signature: str,
        specs: Sequence[Mapping[str, Any]],
    ) -> LayerPipeline:
        """Build a layer pipeline whose invocations are audited in this service's log."""
        return build_pipeline(signature, specs, event_log=self._event_log)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_model(self, commitment: ModelCommitment, caller: str) -> ServiceResult:
        result = self._mutate(lambda: self._registry.register_model(commitment, caller))
        if not result.success:
            return result
        model_id = result.data["value"]
        return ServiceResult(success=True, data={
            "model_id": model_id,
            "owner": caller,
            "proof_system_id": commitment.proof_system_id.hex(),
        })

    def update_model(
        self,
        model_id: int,
        commitment: ModelCommitment,
        caller: str,
    ) -> ServiceResult:
        result = self._mutate(
            lambda: self._registry.update_model(model_id, commitment, caller)
        )
        if not result.success:
            return result
        return ServiceResult(success=True, data=_model_data(result.data["value"]))

    def deprecate_model(self, model_id: int, caller: str) -> ServiceResult:
        result = self._mutate(lambda: self._registry.deprecate_model(model_id, caller))
        if not result.success:
            return result
        return ServiceResult(success=True, data=_model_data(result.data["value"]))

    def get_model(self, model_id: int) -> ServiceResult:
        result = self._run(lambda: self._registry.get_model(model_id))
        if not result.success:
            return result
        return ServiceResult(success=True, data=_model_data(result.data["value"]))

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_inference(
        self,
        model_id: int,
        input_commitment: bytes,
        output: bytes,
        proof: bytes,
        caller: str,
    ) -> ServiceResult:
        result = self._run(lambda: self._verifier.verify_inference(
            model_id, input_commitment, output, proof, caller,
        ))
        if not result.success:
            return result
        return ServiceResult(success=True, data={"model_id": model_id})

    def verify_and_store_inference(
        self,
        model_id: int,
        input_commitment: bytes,
        output: bytes,
        proof: bytes,
        caller: str,
    ) -> ServiceResult:
        result = self._mutate(lambda: self._inferences.verify_and_store_inference(
            model_id, input_commitment, output, proof, caller,
        ))
        if not result.success:
            return result
        return ServiceResult(success=True, data={
            "inference_id": result.data["value"].hex(),
            "model_id": model_id,
        })

    def get_inference(self, inference_id: bytes) -> ServiceResult:
        result = self._run(lambda: self._inferences.get_inference(inference_id))
        if not result.success:
            return result
        record = result.data["value"]
        return ServiceResult(success=True, data={
            "inference_id": record.inference_id.hex(),
            "model_id": record.model_id,
            "input_commitment": record.input_commitment.hex(),
            "output": record.output.hex(),
            "stored_utc": record.stored_utc.isoformat(),
        })

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        models = self._registry.list_models()
        return {
            "models": {
                "total": len(models),
                "deprecated": sum(1 for m in models if m.deprecated),
            },
            "inferences": self._inferences.count,
            "proof_systems": [
                {"id": ps.hex(), "name": self._dispatch.name_of(ps)}
                for ps in self._dispatch.ids()
            ],
            "events": {
                "total": self._event_log.count,
                "verified": len(self._event_log.events(EventKind.INFERENCE_VERIFIED)),
                "aborted_invocations": len(
                    self._event_log.events(EventKind.INVOCATION_ABORTED)
                ),
            },
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, action: Callable[[], T]) -> ServiceResult:
        try:
            value = action()
        except ZkGateError as exc:
            logger.debug("Operation failed (%s): %s", exc.kind, exc)
            return ServiceResult(
                success=False,
                errors=[str(exc)],
                data={"error_kind": exc.kind, "error": type(exc).__name__},
            )
        return ServiceResult(success=True, data={"value": value})

    def _mutate(self, action: Callable[[], T]) -> ServiceResult:
        with self._mutation_lock:
            registry_before = self._registry.to_records()
            inferences_before = self._inferences.to_records()
            try:
                with self._event_log.deferred():
                    result = self._run(action)
                    if result.success:
                        self._persist()
            except OSError as exc:
                self._registry.load_records(registry_before)
                self._inferences.load_records(inferences_before)
                logger.error("Persistence failed, in-memory state restored: %s", exc)
                try:
                    self._persist()
                except OSError as again:
                    logger.error("Could not rewrite state snapshot: %s", again)
                return ServiceResult(
                    success=False,
                    errors=[f"Persistence failed: {exc}"],
                    data={"error_kind": "persistence", "error": type(exc).__name__},
                )
        return result

    def _persist(self) -> None:
        if self._state_store is None:
            return
        self._state_store.save(
            registry=self._registry.to_records(),
            inferences=self._inferences.to_records(),
        )


def _model_data(view: ModelView) -> dict[str, Any]:
    return {
        "model_id": view.model_id,
        "owner": view.owner,
        "deprecated": view.deprecated,
        "version": view.version,
        "commitment": view.commitment.to_dict(),
    }
