"""Proof-system dispatch table.

Maps a 4-byte proof-system id to the backend able to check proofs from
that system. New backends register here without any change to the
verifier. Lookups of an unknown id fail with UnsupportedProofSystem;
there is no default backend and no silent skip.

Backends are pure predicates over their inputs. They hold no state
shared with other backends, so unrelated verifications can run in
parallel and each backend can be audited on its own.
"""

from __future__ import annotations

import abc
import logging
import threading

from zkgate.crypto.digests import PROOF_SYSTEM_ID_SIZE, proof_system_id
from zkgate.errors import UnsupportedProofSystem

logger = logging.getLogger(__name__)


class ProofBackend(abc.ABC):
    """A verification routine for one proof system."""

    @abc.abstractmethod
    def verify(
        self,
        vk_hash: bytes,
        input_commitment: bytes,
        output: bytes,
        proof: bytes,
    ) -> bool:
        """Return True if ``proof`` is valid for the given statement.

        A backend may raise ModelMismatch, InputCommitmentMismatch or
        OutputMismatch instead of returning False when it can tell which
        binding failed.
        """


class ProofSystemDispatchTable:
    """Registry of proof-system backends keyed by proof-system id.

    Usage:
        table = ProofSystemDispatchTable()
        ps_id = table.register_named("groth16-bn254-v1", Groth16Backend())
        backend = table.resolve(ps_id)
    """

    def __init__(self) -> None:
        self._backends: dict[bytes, ProofBackend] = {}
        self._names: dict[bytes, str] = {}
        self._lock = threading.RLock()

    def register(
        self,
        ps_id: bytes,
        backend: ProofBackend,
        name: str | None = None,
        replace: bool = False,
    ) -> None:
        """Register a backend under a proof-system id.

        Raises:
            ValueError: If the id has the wrong width, or is already
                registered and replace is False.
        """
        if not isinstance(ps_id, bytes) or len(ps_id) != PROOF_SYSTEM_ID_SIZE:
            raise ValueError(
                f"Proof-system id must be {PROOF_SYSTEM_ID_SIZE} bytes"
            )
        if not isinstance(backend, ProofBackend):
            raise TypeError(f"Not a ProofBackend: {type(backend).__name__}")
        with self._lock:
            if ps_id in self._backends and not replace:
                raise ValueError(
                    f"Proof system {ps_id.hex()} already has a backend"
                )
            self._backends[ps_id] = backend
            if name is not None:
                self._names[ps_id] = name
        logger.info(
            "Registered backend %s for proof system %s",
            type(backend).__name__, name or ps_id.hex(),
        )

    def register_named(
        self,
        name: str,
        backend: ProofBackend,
        replace: bool = False,
    ) -> bytes:
        """Register a backend under the id derived from a canonical name."""
        ps_id = proof_system_id(name)
        self.register(ps_id, backend, name=name, replace=replace)
        return ps_id

    def unregister(self, ps_id: bytes) -> None:
        """Remove a backend. Verifications against it fail from now on."""
        with self._lock:
            if ps_id not in self._backends:
                raise UnsupportedProofSystem(ps_id)
            del self._backends[ps_id]
            self._names.pop(ps_id, None)
        logger.info("Unregistered backend for proof system %s", ps_id.hex())

    def resolve(self, ps_id: bytes) -> ProofBackend:
        """Return the backend for a proof-system id.

        Raises:
            UnsupportedProofSystem: No backend is registered for the id.
        """
        with self._lock:
            backend = self._backends.get(ps_id)
        if backend is None:
            raise UnsupportedProofSystem(ps_id)
        return backend

    def name_of(self, ps_id: bytes) -> str | None:
        return self._names.get(ps_id)

    def ids(self) -> list[bytes]:
        with self._lock:
            return sorted(self._backends)

    def __contains__(self, ps_id: object) -> bool:
        return ps_id in self._backends

    def __len__(self) -> int:
        return len(self._backends)
