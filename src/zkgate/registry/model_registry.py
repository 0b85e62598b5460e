"""Commitment Registry — owner-controlled model commitments.

The registry stores one record per model: the current commitment, the
owning principal, a one-way deprecation flag and the history of every
commitment the model has carried.

Architecture:
- ModelRegistry handles registration, update, deprecation and lookup.
- Each mutation appends its audit event to the attached EventLog before
  the record changes; if the append fails the record is left as it was.
- The verifier reads snapshots only; it never mutates a record.

Invariants:
- Model ids are unique and allocated monotonically from 1.
- Only the owner may update or deprecate a model.
- A deprecated model's commitment is frozen.

Update policy: updates mutate in place. A model keeps its id for life and
carries many commitment versions over time; ``version`` counts them and
``history`` keeps every superseded commitment in order. Each update emits
both the old and the new commitment for audit.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from zkgate.errors import (
    InvalidCaller,
    MalformedCommitment,
    ModelDeprecated,
    ModelNotFound,
    NotModelOwner,
)
from zkgate.models.commitment import ModelCommitment, ModelRecord, ModelView
from zkgate.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Model commitment registry.

    Usage:
        registry = ModelRegistry(event_log=EventLog())
        model_id = registry.register_model(commitment, caller="alice")
        registry.update_model(model_id, new_commitment, caller="alice")
        registry.deprecate_model(model_id, caller="alice")
        view = registry.get_model(model_id)

    Every mutation and every snapshot read runs under one re-entrant lock,
    so concurrent writers to the same model are serialised and the owner
    check is evaluated against the state visible at serialisation time.
    """

    def __init__(self, event_log: Optional[EventLog] = None) -> None:
        self._event_log = event_log if event_log is not None else EventLog()
        self._models: dict[int, ModelRecord] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @classmethod
    def from_records(
        cls,
        records: list[dict[str, Any]],
        event_log: Optional[EventLog] = None,
    ) -> ModelRegistry:
        """Restore registry state from persistence records."""
        registry = cls(event_log=event_log)
        registry.load_records(records)
        return registry

    def load_records(self, records: list[dict[str, Any]]) -> None:
        """Replace all registry state with persistence records.

        Every commitment, current and historical, must pass the same shape
        check registration applies.

        Raises:
            ValueError: Duplicate model id or malformed commitment. The
                registry is left unchanged.
        """
        models: dict[int, ModelRecord] = {}
        next_id = 1
        for rd in records:
            record = ModelRecord(
                model_id=int(rd["model_id"]),
                commitment=ModelCommitment.from_dict(rd["commitment"]),
                owner=rd["owner"],
                registered_utc=datetime.fromisoformat(rd["registered_utc"]),
                deprecated=bool(rd["deprecated"]),
                version=int(rd["version"]),
                history=[ModelCommitment.from_dict(h) for h in rd.get("history", [])],
            )
            if record.model_id in models:
                raise ValueError(f"Duplicate model id in records: {record.model_id}")
            for commitment in [*record.history, record.commitment]:
                try:
                    _check_commitment(commitment)
                except MalformedCommitment as exc:
                    raise ValueError(
                        f"Model {record.model_id} in records: {exc}"
                    ) from exc
            models[record.model_id] = record
            next_id = max(next_id, record.model_id + 1)

        with self._lock:
            self._models = models
            self._next_id = next_id

    def register_model(
        self,
        commitment: ModelCommitment,
        caller: str,
        now: Optional[datetime] = None,
    ) -> int:
        """Register a new model with the caller as owner.

        Args:
            commitment: The model's initial commitment.
            caller: Principal registering the model; becomes the owner.
            now: Current UTC time.

        Returns:
            The freshly allocated model id.

        Raises:
            MalformedCommitment: If a required digest is missing or has
                the wrong width.
            InvalidCaller: If the caller is empty.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        _check_commitment(commitment)
        if not caller or not isinstance(caller, str):
            raise InvalidCaller(caller)

        with self._lock:
            model_id = self._next_id
            self._event_log.emit(
                EventKind.MODEL_REGISTERED,
                caller,
                {
                    "model_id": model_id,
                    "owner": caller,
                    "commitment": commitment.to_dict(),
                },
            )
            self._models[model_id] = ModelRecord(
                model_id=model_id,
                commitment=commitment,
                owner=caller,
                registered_utc=now,
            )
            self._next_id += 1

        logger.info("Registered model %d for owner %s", model_id, caller)
        return model_id

    def update_model(
        self,
        model_id: int,
        new_commitment: ModelCommitment,
        caller: str,
    ) -> ModelView:
        """Replace a model's commitment in place.

        Checks run in order: existence, ownership, deprecation, then the
        shape of the new commitment.

        Returns:
            Snapshot of the updated model.

        Raises:
            ModelNotFound: No such model.
            NotModelOwner: Caller is not the owner.
            ModelDeprecated: The model is deprecated.
            MalformedCommitment: The new commitment is malformed.
        """
        with self._lock:
            record = self._get(model_id)
            if record.owner != caller:
                raise NotModelOwner(model_id, caller)
            if record.deprecated:
                raise ModelDeprecated(model_id)
            _check_commitment(new_commitment)

            old = record.commitment
            self._event_log.emit(
                EventKind.MODEL_UPDATED,
                caller,
                {
                    "model_id": model_id,
                    "old": old.to_dict(),
                    "new": new_commitment.to_dict(),
                    "version": record.version + 1,
                },
            )
            record.history.append(old)
            record.commitment = new_commitment
            record.version += 1
            view = _view(record)

        logger.info("Updated model %d to version %d", model_id, view.version)
        return view

    def deprecate_model(self, model_id: int, caller: str) -> ModelView:
        """Mark a model deprecated. Irreversible; repeating it is a no-op.

        Raises:
            ModelNotFound: No such model.
            NotModelOwner: Caller is not the owner.
        """
        with self._lock:
            record = self._get(model_id)
            if record.owner != caller:
                raise NotModelOwner(model_id, caller)
            if record.deprecated:
                return _view(record)
            self._event_log.emit(
                EventKind.MODEL_DEPRECATED,
                caller,
                {"model_id": model_id},
            )
            record.deprecated = True
            view = _view(record)

        logger.info("Deprecated model %d", model_id)
        return view

    def get_model(self, model_id: int) -> ModelView:
        """Return a consistent snapshot of a model.

        Raises:
            ModelNotFound: No such model.
        """
        with self._lock:
            return _view(self._get(model_id))

    def history(self, model_id: int) -> list[ModelCommitment]:
        """Every commitment the model has carried, oldest first, current last."""
        with self._lock:
            record = self._get(model_id)
            return [*record.history, record.commitment]

    def list_models(
        self,
        owner: Optional[str] = None,
        include_deprecated: bool = True,
    ) -> list[ModelView]:
        """List models by id, optionally filtered by owner."""
        with self._lock:
            records = sorted(self._models.values(), key=lambda r: r.model_id)
            views = [_view(r) for r in records]
        if owner is not None:
            views = [v for v in views if v.owner == owner]
        if not include_deprecated:
            views = [v for v in views if not v.deprecated]
        return views

    @property
    def count(self) -> int:
        return len(self._models)

    def to_records(self) -> list[dict[str, Any]]:
        """Serialise all models for persistence."""
        with self._lock:
            return [
                {
                    "model_id": r.model_id,
                    "commitment": r.commitment.to_dict(),
                    "owner": r.owner,
                    "registered_utc": r.registered_utc.isoformat(),
                    "deprecated": r.deprecated,
                    "version": r.version,
                    "history": [h.to_dict() for h in r.history],
                }
                for r in sorted(self._models.values(), key=lambda r: r.model_id)
            ]

    def _get(self, model_id: int) -> ModelRecord:
        record = self._models.get(model_id)
        if record is None:
            raise ModelNotFound(model_id)
        return record


def _check_commitment(commitment: ModelCommitment) -> None:
    if not isinstance(commitment, ModelCommitment):
        raise MalformedCommitment(
            f"Expected ModelCommitment, got {type(commitment).__name__}"
        )
    bad = commitment.malformed_fields()
    if bad:
        raise MalformedCommitment(
            f"Malformed commitment fields: {', '.join(bad)}"
        )


def _view(record: ModelRecord) -> ModelView:
    return ModelView(
        model_id=record.model_id,
        commitment=record.commitment,
        deprecated=record.deprecated,
        owner=record.owner,
        version=record.version,
    )
