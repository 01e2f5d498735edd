"""Tests for the environment drift detection script."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from scripts import check_env

REQUIRED_ENV_VALUES = {
    "CLIENT_ID": "abc",
    "CLIENT_SECRET": "secret",
    "REDIRECT_URI": "https://example.com/api/auth/callback",
    "SCOPES": "crm.objects.contacts.read",
    "TOKEN_URL": "https://api.example.com/oauth/v1/token",
    "ENCRYPTION_KEY": "encryption-key",
    "JWT_SECRET": "jwt-secret",
    "WEBHOOK_URL": "https://hooks.example.com/workflow",
    "STORAGE_URL": "sqlite:///data/records.db",
}


def _write_env(env_path: Path, **values: str) -> None:
    contents = "\n".join(f"{key}={value}" for key, value in values.items())
    env_path.write_text(contents + "\n", encoding="utf-8")


def _clear_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in REQUIRED_ENV_VALUES:
        monkeypatch.delenv(key, raising=False)


@pytest.mark.parametrize("command", ["record", "verify", "check"])
def test_main_requires_existing_env_file(tmp_path: Path, command: str) -> None:
    env_file = tmp_path / ".missing-env"
    hash_file = tmp_path / ".env.sha256"

    argv = [command, "--env-file", str(env_file)]
    if command != "check":
        argv.extend(["--hash-file", str(hash_file)])

    exit_code = check_env.main(argv)
    assert exit_code == check_env.EXIT_RUNTIME_ERROR


def test_record_and_verify_detects_mismatched_checksum(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"

    _clear_required_env(monkeypatch)
    _write_env(env_file, **REQUIRED_ENV_VALUES)

    exit_code = check_env.main(
        [
            "record",
            "--env-file",
            str(env_file),
            "--hash-file",
            str(hash_file),
        ]
    )
    assert exit_code == check_env.EXIT_OK
    baseline = hash_file.read_text(encoding="utf-8").strip()
    assert baseline

    exit_code = check_env.main(
        [
            "verify",
            "--env-file",
            str(env_file),
            "--hash-file",
            str(hash_file),
        ]
    )
    assert exit_code == check_env.EXIT_OK

    _write_env(env_file, **{**REQUIRED_ENV_VALUES, "CLIENT_SECRET": "different"})

    exit_code = check_env.main(
        [
            "verify",
            "--env-file",
            str(env_file),
            "--hash-file",
            str(hash_file),
        ]
    )
    assert exit_code == check_env.EXIT_CHECKSUM_ERROR


def test_validation_failure_for_missing_required_values(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"

    _clear_required_env(monkeypatch)
    values = dict(REQUIRED_ENV_VALUES)
    values.pop("ENCRYPTION_KEY")
    _write_env(env_file, **values)

    exit_code = check_env.main(
        [
            "record",
            "--env-file",
            str(env_file),
            "--hash-file",
            str(hash_file),
        ]
    )
    assert exit_code == check_env.EXIT_VALIDATION_ERROR
    assert "Missing required environment variable: ENCRYPTION_KEY" in capsys.readouterr().err
    assert not hash_file.exists()


def test_validation_does_not_leak_env_values(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    _clear_required_env(monkeypatch)
    _write_env(env_file, **REQUIRED_ENV_VALUES)

    assert check_env.main(["check", "--env-file", str(env_file)]) == check_env.EXIT_OK

    assert "CLIENT_ID" not in os.environ


def test_check_rejects_unknown_storage_backend(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    _clear_required_env(monkeypatch)
    _write_env(env_file, **{**REQUIRED_ENV_VALUES, "STORAGE_URL": "redis://localhost:6379/0"})

    assert check_env.main(["check", "--env-file", str(env_file)]) == check_env.EXIT_VALIDATION_ERROR


def test_check_prints_summary_without_secrets(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = tmp_path / ".env"
    _clear_required_env(monkeypatch)
    _write_env(env_file, **{**REQUIRED_ENV_VALUES, "JWT_EXPIRES_IN": "15m"})

    assert check_env.main(["check", "--env-file", str(env_file)]) == check_env.EXIT_OK

    output = capsys.readouterr().out
    assert "storage:         sqlite" in output
    assert "access ttl:      900s" in output
    assert REQUIRED_ENV_VALUES["CLIENT_SECRET"] not in output
    assert REQUIRED_ENV_VALUES["JWT_SECRET"] not in output
