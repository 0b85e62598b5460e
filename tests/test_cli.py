"""Tests for the command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from zkgate.cli import main
from zkgate.crypto.digests import digest, input_commitment, operation_selector, proof_system_id
from zkgate.verification.digest_backend import DigestProofBackend

MODEL = digest(b"model").hex()
CIRCUIT = digest(b"circuit").hex()
VK = digest(b"vk").hex()


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("ZKGATE_CONFIG", "ZKGATE_DATA_DIR", "ZKGATE_LOG_LEVEL", "ZKGATE_PROOF_SYSTEMS"):
        monkeypatch.delenv(name, raising=False)


def _run(tmp_path: Path, *argv: str) -> int:
    return main(["--data-dir", str(tmp_path / "data"), *argv])


def _register(tmp_path: Path, caller: str = "alice") -> int:
    return _run(
        tmp_path, "register-model", "--caller", caller,
        "--model-hash", MODEL, "--circuit-hash", CIRCUIT, "--vk-hash", VK,
        "--proof-system", "digest-sha256-v1",
    )


class TestDerivations:
    def test_proof_system_id(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["proof-system-id", "--name", "groth16-bn254-v1"]) == 0
        assert capsys.readouterr().out.strip() == proof_system_id("groth16-bn254-v1").hex()

    def test_selector(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["selector", "--signature", "withdraw(uint256)"]) == 0
        assert capsys.readouterr().out.strip() == operation_selector("withdraw(uint256)").hex()

    def test_commit_input(self, capsys: pytest.CaptureFixture[str]) -> None:
        nonce = "01" * 32
        assert main(["commit-input", "--input", "aa", "--public", "bb", "--nonce", nonce]) == 0
        out = json.loads(capsys.readouterr().out)
        expected = input_commitment([b"\xaa"], [b"\xbb"], nonce=bytes.fromhex(nonce))
        assert out == {"input_commitment": expected.hex(), "nonce": nonce}

    def test_bad_proof_system_name(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["proof-system-id", "--name", "not valid!"]) == 1
        assert "Failed" in capsys.readouterr().err

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()


class TestRegistryCommands:
    def test_register_then_get(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _register(tmp_path) == 0
        assert json.loads(capsys.readouterr().out)["model_id"] == 1

        assert _run(tmp_path, "get-model", "--id", "1") == 0
        out = json.loads(capsys.readouterr().out)
        assert out["owner"] == "alice"
        assert out["commitment"]["vk_hash"] == VK

    def test_non_owner_deprecate_fails(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        _register(tmp_path)
        capsys.readouterr()
        assert _run(tmp_path, "deprecate-model", "--id", "1", "--caller", "mallory") == 1
        assert "not the owner" in capsys.readouterr().err

    def test_update_model(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _register(tmp_path)
        capsys.readouterr()
        new_vk = digest(b"vk2").hex()
        code = _run(
            tmp_path, "update-model", "--id", "1", "--caller", "alice",
            "--model-hash", MODEL, "--circuit-hash", CIRCUIT, "--vk-hash", new_vk,
            "--proof-system-id", proof_system_id("digest-sha256-v1").hex(),
        )
        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["version"] == 2
        assert out["commitment"]["vk_hash"] == new_vk

    def test_short_digest_rejected(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        code = _run(
            tmp_path, "register-model", "--caller", "alice",
            "--model-hash", "abcd", "--circuit-hash", CIRCUIT, "--vk-hash", VK,
            "--proof-system", "digest-sha256-v1",
        )
        assert code == 1
        assert "Failed" in capsys.readouterr().err


class TestVerifyCommands:
    def test_prove_verify_store_and_fetch(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        _register(tmp_path)
        ic = input_commitment([b"x"]).hex()
        assert main(["prove", "--vk-hash", VK, "--input-commitment", ic, "--output", "2a"]) == 0
        capsys.readouterr()
        proof = DigestProofBackend.prove(bytes.fromhex(VK), bytes.fromhex(ic), b"\x2a").hex()

        code = _run(
            tmp_path, "verify-inference", "--id", "1", "--input-commitment", ic,
            "--output", "2a", "--proof", proof, "--caller", "prover", "--store",
        )
        assert code == 0
        inference_id = json.loads(capsys.readouterr().out)["inference_id"]

        assert _run(tmp_path, "get-inference", "--inference-id", inference_id) == 0
        assert json.loads(capsys.readouterr().out)["output"] == "2a"

    def test_tampered_output_fails(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        _register(tmp_path)
        ic = input_commitment([b"x"])
        proof = DigestProofBackend.prove(bytes.fromhex(VK), ic, b"\x2a").hex()
        capsys.readouterr()

        code = _run(
            tmp_path, "verify-inference", "--id", "1", "--input-commitment", ic.hex(),
            "--output", "2b", "--proof", proof, "--caller", "prover",
        )
        assert code == 1
        assert "Invalid proof" in capsys.readouterr().err

    def test_status(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _register(tmp_path)
        capsys.readouterr()
        assert _run(tmp_path, "status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["models"]["total"] == 1
        assert status["proof_systems"][0]["name"] == "digest-sha256-v1"


class TestConfig:
    def test_pipeline_from_config_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        config = tmp_path / "gate.json"
        config.write_text(json.dumps({
            "data_dir": str(tmp_path / "data"),
            "pipeline": [
                {"layer": "allowlist", "config": {"allowed": ["alice"]}},
                {"layer": "rate_limit", "config": {"max_calls": 10}},
            ],
        }), encoding="utf-8")

        code = main(["--config", str(config), "pipeline", "--signature", "withdraw(uint256)"])

        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["selector"] == operation_selector("withdraw(uint256)").hex()
        assert [layer["name"] for layer in out["layers"]] == ["allowlist", "rate_limit"]

    def test_invalid_config_reported(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        config = tmp_path / "gate.json"
        config.write_text(json.dumps({"log_level": "LOUD"}), encoding="utf-8")
        assert main(["--config", str(config), "status"]) == 1
        assert "Configuration error" in capsys.readouterr().err
