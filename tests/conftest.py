"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from crm_bridge.clients import SQLiteStore
from crm_bridge.core.config import SecuritySettings


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def record_store(tmp_path) -> SQLiteStore:
    return SQLiteStore(str(tmp_path / "records.db"))


@pytest.fixture
def security_settings() -> SecuritySettings:
    return SecuritySettings(
        ENCRYPTION_KEY="unit-test-encryption",
        JWT_SECRET="unit-test-signing",
        JWT_EXPIRES_IN="15m",
        JWT_REFRESH_EXPIRES_IN="30d",
    )
