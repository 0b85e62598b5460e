"""Layer pipeline — ordered guards around one protected operation.

For each invocation the pipeline:
1. runs every layer's pre_check in the configured order (PRE_CHECKING);
2. runs the protected operation (EXECUTING);
3. runs every layer's post_check in the same order, handing each layer
   the carry data its own pre_check returned (POST_CHECKING);
4. commits (COMMITTED).

The first failure anywhere moves the invocation to ABORTED: no further
layer runs, the operation's recorded effects are undone in reverse, layers
whose pre_check succeeded get on_abort in reverse, and the original
exception propagates unchanged to the caller. A failing cleanup step
(rollback or one layer's on_abort) is logged and chained as context; it
does not stop the remaining steps or the INVOCATION_ABORTED record.

INVOCATION_COMMITTED is recorded before the journal is released, so an
audit write failure aborts the invocation like any other failure.

The order of bindings is part of the contract: swapping two layers can
change whether an invocation is accepted. A pipeline's bindings never
change after construction; reconfigured() returns a new pipeline.
"""

from __future__ import annotations

import logging
import uuid
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

from zkgate.crypto.digests import SELECTOR_SIZE, operation_selector
from zkgate.models.invocation import Invocation, PipelineState
from zkgate.persistence.event_log import EventKind, EventLog
from zkgate.pipeline.journal import EffectJournal
from zkgate.pipeline.layer import LayerBinding
from zkgate.pipeline.state_machine import InvocationStateMachine

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[Invocation, EffectJournal], T]


class LayerPipeline:
    """Runs a fixed, ordered list of layers around a protected operation.

    Usage:
        pipeline = LayerPipeline.for_operation(
            "withdraw(uint256)",
            [LayerBinding(allowlist, {"allowed": ["alice"]}),
             LayerBinding(limiter, {"max_calls": 10, "window_seconds": 60})],
        )

        def withdraw(invocation, journal):
            journal.set_item(balances, invocation.caller,
                             balances[invocation.caller] - invocation.value)

        pipeline.invoke("alice", withdraw, value=5)
    """

    def __init__(
        self,
        selector: bytes,
        bindings: Iterable[LayerBinding] = (),
        event_log: Optional[EventLog] = None,
    ) -> None:
        if not isinstance(selector, bytes) or len(selector) != SELECTOR_SIZE:
            raise ValueError(f"Selector must be {SELECTOR_SIZE} bytes")
        self._selector = selector
        self._bindings: tuple[LayerBinding, ...] = tuple(bindings)
        self._event_log = event_log
        for binding in self._bindings:
            if not isinstance(binding, LayerBinding):
                raise TypeError(f"Not a LayerBinding: {binding!r}")

    @classmethod
    def for_operation(
        cls,
        signature: str,
        bindings: Iterable[LayerBinding] = (),
        event_log: Optional[EventLog] = None,
    ) -> LayerPipeline:
        """Build a pipeline whose selector is derived from a signature."""
        return cls(operation_selector(signature), bindings, event_log)

    @property
    def selector(self) -> bytes:
        return self._selector

    @property
    def bindings(self) -> tuple[LayerBinding, ...]:
        return self._bindings

    @property
    def layer_names(self) -> list[str]:
        return [b.name for b in self._bindings]

    def reconfigured(self, bindings: Iterable[LayerBinding]) -> LayerPipeline:
        """Return a new pipeline for the same operation with new bindings."""
        return LayerPipeline(self._selector, bindings, self._event_log)

    def invoke(
        self,
        caller: str,
        operation: Operation[T],
        value: int = 0,
        data: Optional[Mapping[str, Any]] = None,
    ) -> T:
        """Run one protected invocation.

        Args:
            caller: Canonical identifier of the calling principal.
            operation: The protected body, called as
                ``operation(invocation, journal)``. Every effect it applies
                must be recorded in the journal to be undone on abort.
            value: Value transferred with the call.
            data: Invocation data, shared read-only with every layer.

        Returns:
            Whatever the operation returned.

        Raises:
            Whatever the failing layer or operation raised.
        """
        invocation = Invocation(
            invocation_id=f"inv_{uuid.uuid4().hex[:12]}",
            selector=self._selector,
            caller=caller,
            value=value,
            data=MappingProxyType(dict(data or {})),
        )
        journal = EffectJournal()
        carries: list[tuple[LayerBinding, Any]] = []
        failing_layer: Optional[str] = None

        try:
            InvocationStateMachine.apply_transition(invocation, PipelineState.PRE_CHECKING)
            for binding in self._bindings:
                failing_layer = binding.name
                carry = binding.layer.pre_check(
                    binding.config,
                    invocation.selector,
                    invocation.caller,
                    invocation.value,
                    invocation.data,
                )
                carries.append((binding, carry))
            failing_layer = None

            InvocationStateMachine.apply_transition(invocation, PipelineState.EXECUTING)
            result = operation(invocation, journal)

            InvocationStateMachine.apply_transition(invocation, PipelineState.POST_CHECKING)
            for binding, carry in carries:
                failing_layer = binding.name
                binding.layer.post_check(
                    binding.config,
                    invocation.selector,
                    invocation.caller,
                    invocation.value,
                    invocation.data,
                    carry,
                )
            failing_layer = None

            if self._event_log is not None:
                self._event_log.emit(
                    EventKind.INVOCATION_COMMITTED,
                    caller,
                    {
                        "invocation_id": invocation.invocation_id,
                        "selector": self._selector.hex(),
                        "value": value,
                        "layers": self.layer_names,
                    },
                )
        except Exception as exc:
            cleanup_errors = self._abort(invocation, journal, carries, failing_layer, exc)
            if cleanup_errors and exc.__context__ is None:
                first = cleanup_errors[0]
                if first.__context__ is exc:
                    first.__context__ = None
                exc.__context__ = first
            raise

        InvocationStateMachine.apply_transition(invocation, PipelineState.COMMITTED)
        journal.commit()
        logger.debug(
            "Committed %s for %s on selector %s",
            invocation.invocation_id, caller, self._selector.hex(),
        )
        return result

    def _abort(
        self,
        invocation: Invocation,
        journal: EffectJournal,
        carries: list[tuple[LayerBinding, Any]],
        failing_layer: Optional[str],
        error: Exception,
    ) -> list[Exception]:
        """Undo the invocation and record the abort.

        Every cleanup step runs even when an earlier one fails. Cleanup
        failures are logged and returned; they never replace ``error``.
        """
        stage = invocation.state
        invocation.aborted_by = failing_layer
        InvocationStateMachine.apply_transition(invocation, PipelineState.ABORTED)
        cleanup_errors: list[Exception] = []

        try:
            journal.rollback()
        except Exception as exc:
            logger.error("Rollback failed for %s: %s", invocation.invocation_id, exc)
            cleanup_errors.append(exc)

        for binding, carry in reversed(carries):
            try:
                binding.layer.on_abort(binding.config, invocation, carry)
            except Exception as exc:
                logger.error(
                    "on_abort of layer %s failed for %s: %s",
                    binding.name, invocation.invocation_id, exc,
                )
                cleanup_errors.append(exc)

        logger.info(
            "Aborted %s at %s (%s): %s",
            invocation.invocation_id, stage.value,
            failing_layer or "operation", error,
        )
        if self._event_log is not None:
            payload: dict[str, Any] = {
                "invocation_id": invocation.invocation_id,
                "selector": self._selector.hex(),
                "stage": stage.value,
                "layer": failing_layer,
                "error_kind": getattr(error, "kind", type(error).__name__),
                "error": str(error),
            }
            if cleanup_errors:
                payload["cleanup_errors"] = [
                    f"{type(e).__name__}: {e}" for e in cleanup_errors
                ]
            try:
                self._event_log.emit(EventKind.INVOCATION_ABORTED, invocation.caller, payload)
            except Exception as exc:
                logger.error(
                    "Could not record abort of %s: %s", invocation.invocation_id, exc,
                )
                cleanup_errors.append(exc)
        return cleanup_errors
