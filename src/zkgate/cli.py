"""zkgate CLI — command-line interface for the commitment registry and verifier.

Usage:
    python -m zkgate.cli status
    python -m zkgate.cli proof-system-id --name groth16-bn254-v1
    python -m zkgate.cli register-model --caller alice --model-hash <hex> \\
        --circuit-hash <hex> --vk-hash <hex> --proof-system digest-sha256-v1
    python -m zkgate.cli commit-input --input <hex> --fresh-nonce
    python -m zkgate.cli --config gate.json pipeline --signature "withdraw(uint256)"
    python -m zkgate.cli prove --vk-hash <hex> --input-commitment <hex> --output <hex>
    python -m zkgate.cli verify-inference --id 1 --input-commitment <hex> \\
        --output <hex> --proof <hex> --caller prover --store

The CLI installs the digest backend for every proof system named in the
configuration; it is a test harness, not a production prover.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from zkgate.config import GateConfig, configure_logging, load_config
from zkgate.crypto.digests import (
    DIGEST_SIZE,
    PROOF_SYSTEM_ID_SIZE,
    from_hex,
    input_commitment,
    new_nonce,
    operation_selector,
    proof_system_id,
)
from zkgate.models.commitment import ModelCommitment
from zkgate.persistence.event_log import EventLog
from zkgate.persistence.state_store import StateStore
from zkgate.service import ServiceResult, ZkGateService
from zkgate.verification.digest_backend import DigestProofBackend


def _make_service(config: GateConfig) -> ZkGateService:
    """Create a ZkGateService with durable persistence."""
    config.data_dir.mkdir(parents=True, exist_ok=True)
    service = ZkGateService(
        event_log=EventLog(storage_path=config.events_path),
        state_store=StateStore(config.state_path),
    )
    for name in config.proof_systems:
        service.install_backend(name, DigestProofBackend())
    return service


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _commitment_from_args(args: argparse.Namespace) -> ModelCommitment:
    if args.proof_system_id:
        ps_id = from_hex(args.proof_system_id, PROOF_SYSTEM_ID_SIZE)
    else:
        ps_id = proof_system_id(args.proof_system)
    return ModelCommitment(
        model_hash=from_hex(args.model_hash, DIGEST_SIZE),
        circuit_hash=from_hex(args.circuit_hash, DIGEST_SIZE),
        vk_hash=from_hex(args.vk_hash, DIGEST_SIZE),
        proof_system_id=ps_id,
        uri=args.uri,
    )


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.gate_config)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_proof_system_id(args: argparse.Namespace) -> int:
    print(proof_system_id(args.name).hex())
    return 0


def cmd_selector(args: argparse.Namespace) -> int:
    print(operation_selector(args.signature).hex())
    return 0


def cmd_commit_input(args: argparse.Namespace) -> int:
    nonce = None
    if args.nonce:
        nonce = from_hex(args.nonce)
    elif args.fresh_nonce:
        nonce = new_nonce()
    commitment = input_commitment(
        [from_hex(i) for i in args.input],
        [from_hex(p) for p in args.public],
        nonce=nonce,
    )
    print(json.dumps({
        "input_commitment": commitment.hex(),
        "nonce": nonce.hex() if nonce is not None else None,
    }, indent=2))
    return 0


def cmd_register_model(args: argparse.Namespace) -> int:
    service = _make_service(args.gate_config)
    return _report(service.register_model(_commitment_from_args(args), args.caller))


def cmd_update_model(args: argparse.Namespace) -> int:
    service = _make_service(args.gate_config)
    return _report(
        service.update_model(args.id, _commitment_from_args(args), args.caller)
    )


def cmd_deprecate_model(args: argparse.Namespace) -> int:
    service = _make_service(args.gate_config)
    return _report(service.deprecate_model(args.id, args.caller))


def cmd_get_model(args: argparse.Namespace) -> int:
    service = _make_service(args.gate_config)
    return _report(service.get_model(args.id))


def cmd_prove(args: argparse.Namespace) -> int:
    proof = DigestProofBackend.prove(
        from_hex(args.vk_hash, DIGEST_SIZE),
        from_hex(args.input_commitment, DIGEST_SIZE),
        from_hex(args.output),
    )
    print(proof.hex())
    return 0


def cmd_verify_inference(args: argparse.Namespace) -> int:
    service = _make_service(args.gate_config)
    call = (
        service.verify_and_store_inference if args.store
        else service.verify_inference
    )
    return _report(call(
        args.id,
        from_hex(args.input_commitment, DIGEST_SIZE),
        from_hex(args.output),
        from_hex(args.proof),
        args.caller,
    ))


def cmd_get_inference(args: argparse.Namespace) -> int:
    service = _make_service(args.gate_config)
    return _report(service.get_inference(from_hex(args.inference_id, DIGEST_SIZE)))


def cmd_pipeline(args: argparse.Namespace) -> int:
    config = args.gate_config
    service = _make_service(config)
    pipeline = service.pipeline_for(args.signature, config.pipeline)
    print(json.dumps({
        "selector": pipeline.selector.hex(),
        "layers": [
            {"name": b.name, "kind": type(b.layer).__name__, "config": dict(b.config)}
            for b in pipeline.bindings
        ],
    }, indent=2))
    return 0


def _add_commitment_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--caller", required=True, help="Calling principal")
    parser.add_argument("--model-hash", required=True, help="Weights/architecture digest (hex)")
    parser.add_argument("--circuit-hash", required=True, help="Circuit digest (hex)")
    parser.add_argument("--vk-hash", required=True, help="Verifying key digest (hex)")
    ps = parser.add_mutually_exclusive_group(required=True)
    ps.add_argument("--proof-system", help="Proof-system name, e.g. groth16-bn254-v1")
    ps.add_argument("--proof-system-id", help="Raw 4-byte proof-system id (hex)")
    parser.add_argument("--uri", help="Off-path metadata URI")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zkgate",
        description="zkgate — model commitment registry and proof verifier",
    )
    parser.add_argument("--config", type=Path, help="JSON config file")
    parser.add_argument("--data-dir", type=Path, help="Override the data directory")
    parser.add_argument("--log-level", help="Logging level (default: WARNING)")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show registry and verifier status")

    p_ps = sub.add_parser("proof-system-id", help="Derive a proof-system id")
    p_ps.add_argument("--name", required=True, help="Proof-system name")

    p_sel = sub.add_parser("selector", help="Derive an operation selector")
    p_sel.add_argument("--signature", required=True, help="Operation signature")

    p_ci = sub.add_parser("commit-input", help="Compute an input commitment")
    p_ci.add_argument("--input", action="append", default=[], help="Private input (hex), repeatable")
    p_ci.add_argument("--public", action="append", default=[], help="Public input (hex), repeatable")
    nonce = p_ci.add_mutually_exclusive_group()
    nonce.add_argument("--nonce", help="Per-inference nonce (hex)")
    nonce.add_argument("--fresh-nonce", action="store_true", help="Generate a random nonce")

    p_reg = sub.add_parser("register-model", help="Register a model commitment")
    _add_commitment_args(p_reg)

    p_upd = sub.add_parser("update-model", help="Replace a model's commitment")
    p_upd.add_argument("--id", type=int, required=True, help="Model ID")
    _add_commitment_args(p_upd)

    p_dep = sub.add_parser("deprecate-model", help="Deprecate a model")
    p_dep.add_argument("--id", type=int, required=True, help="Model ID")
    p_dep.add_argument("--caller", required=True, help="Calling principal")

    p_get = sub.add_parser("get-model", help="Show a model")
    p_get.add_argument("--id", type=int, required=True, help="Model ID")

    p_prove = sub.add_parser("prove", help="Produce a digest-backend proof")
    p_prove.add_argument("--vk-hash", required=True, help="Verifying key digest (hex)")
    p_prove.add_argument("--input-commitment", required=True, help="Input commitment (hex)")
    p_prove.add_argument("--output", required=True, help="Output bytes (hex)")

    p_ver = sub.add_parser("verify-inference", help="Verify an inference proof")
    p_ver.add_argument("--id", type=int, required=True, help="Model ID")
    p_ver.add_argument("--input-commitment", required=True, help="Input commitment (hex)")
    p_ver.add_argument("--output", required=True, help="Output bytes (hex)")
    p_ver.add_argument("--proof", required=True, help="Proof bytes (hex)")
    p_ver.add_argument("--caller", required=True, help="Calling principal")
    p_ver.add_argument("--store", action="store_true", help="Store an inference record")

    p_pipe = sub.add_parser("pipeline", help="Show the configured layer pipeline for an operation")
    p_pipe.add_argument("--signature", required=True, help="Operation signature")

    p_inf = sub.add_parser("get-inference", help="Show a stored inference")
    p_inf.add_argument("--inference-id", required=True, help="Inference ID (hex)")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
        if args.data_dir is not None:
            config = replace(config, data_dir=args.data_dir)
        if args.log_level:
            config = replace(config, log_level=args.log_level)
        configure_logging(config.log_level)
    except (OSError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    args.gate_config = config

    commands = {
        "status": cmd_status,
        "proof-system-id": cmd_proof_system_id,
        "selector": cmd_selector,
        "commit-input": cmd_commit_input,
        "register-model": cmd_register_model,
        "update-model": cmd_update_model,
        "deprecate-model": cmd_deprecate_model,
        "get-model": cmd_get_model,
        "prove": cmd_prove,
        "verify-inference": cmd_verify_inference,
        "get-inference": cmd_get_inference,
        "pipeline": cmd_pipeline,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ValueError as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
