"""Utility for verifying that required environment configuration is intact.

The tool performs two main checks:

1. It attempts to build ``AppSettings`` from the provided ``.env`` file,
   surfacing missing or empty OAuth, encryption, signing and storage settings
   before the API refuses to start.
2. It can record and verify a checksum for the ``.env`` file so unexpected
   edits are detected.

Example usages::

    python -m scripts.check_env record --env-file /srv/crm-bridge/.env \
        --hash-file /srv/crm-bridge/.env.sha256

    python -m scripts.check_env verify --env-file /srv/crm-bridge/.env \
        --hash-file /srv/crm-bridge/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator
from urllib.parse import urlparse

from crm_bridge.core.config import AppSettings, load_settings, read_env_file
from crm_bridge.core.errors import ConfigIncompleteError

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    """Return the SHA256 checksum for the target environment file."""
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


@contextmanager
def _environment(values: Dict[str, str]) -> Iterator[None]:
    """Overlay ``values`` on os.environ, restoring the previous state afterwards."""
    previous = {key: os.environ.get(key) for key in values}
    os.environ.update(values)
    try:
        yield
    finally:
        for key, value in previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


_STORAGE_SCHEMES = ("sqlite", "dynamodb")


def _validate_settings(env_file: Path) -> AppSettings:
    """Ensure required settings can be loaded from the supplied env file."""
    with _environment(read_env_file(str(env_file))):
        settings = load_settings()
    scheme = urlparse(settings.storage.url).scheme
    if scheme not in _STORAGE_SCHEMES:
        raise ConfigIncompleteError(
            f"STORAGE_URL: unsupported scheme {scheme!r}; expected one of {', '.join(_STORAGE_SCHEMES)}"
        )
    return settings


def _print_summary(settings: AppSettings) -> int:
    """Print the non-secret parts of the resolved configuration."""
    print(f"Settings OK for environment {settings.environment!r}.")
    print(f"  storage:         {urlparse(settings.storage.url).scheme}")
    print(f"  token endpoint:  {settings.oauth.token_url}")
    print(f"  access ttl:      {settings.security.access_token_ttl_seconds}s")
    print(f"  refresh ttl:     {settings.security.refresh_token_ttl_seconds}s")
    print(f"  forwarded props: {', '.join(sorted(settings.crm.forward_fields))}")
    return EXIT_OK


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    """Persist the current checksum to ``hash_file``."""
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    """Compare the current checksum to the recorded baseline."""
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting services.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate required settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common_arguments(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    for name, help_text in (
        ("record", "Validate settings and store the checksum baseline."),
        ("verify", "Validate settings and compare the checksum with the baseline."),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        add_common_arguments(subparser)
        subparser.add_argument(
            "--hash-file",
            required=True,
            type=Path,
            help="Location of the checksum baseline.",
        )

    check_parser = subparsers.add_parser(
        "check",
        help="Validate settings without touching any checksum files.",
    )
    add_common_arguments(check_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file

    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings = _validate_settings(env_file)
    except ConfigIncompleteError as exc:
        print(f"Settings validation failed.\n{exc.message}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    command: str = args.command
    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: _print_summary(settings),
    }
    return handlers[command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
