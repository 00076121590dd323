"""
Root conftest for all tests.

Provides:
1. Environment isolation: every registry source key and secrets setting is
   removed before each test, so a developer's shell or .env never leaks in
2. A controllable clock for TTL and token-expiry tests (no sleeping)
3. A set of secret values that pass production validation
"""

from datetime import UTC, datetime, timedelta

import pytest

from libs.secrets.config import get_secrets_settings
from libs.secrets.definitions import DEFAULT_REGISTRY

SETTINGS_ENV_VARS = (
    "SECRETS_PROVIDER",
    "DEPLOYMENT_ENV",
    "SECRETS_CACHE_TTL_MS",
    "SECRETS_HTTP_TIMEOUT_SECONDS",
    "SECRETS_DOTENV_PATH",
    "BARBICAN_ENDPOINT",
    "OPENSTACK_AUTH_URL",
    "OPENSTACK_USERNAME",
    "OPENSTACK_PASSWORD",
    "OPENSTACK_USER_DOMAIN_NAME",
    "BARBICAN_PROJECT_ID",
    "BARBICAN_CACHE_TTL_MS",
    "AUTH_TOKEN_EXPIRY_BUFFER_SECONDS",
    "LOG_LEVEL",
)


class FakeClock:
    """Callable clock returning a fixed aware UTC time until advanced."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def clean_secret_env(monkeypatch):
    """Remove secrets-related variables for the duration of each test."""
    for definition in DEFAULT_REGISTRY.values():
        monkeypatch.delenv(definition.source_key, raising=False)
    for var in SETTINGS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    get_secrets_settings.cache_clear()
    yield
    get_secrets_settings.cache_clear()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def strong_secrets() -> dict[str, str]:
    """Source-key → value map that satisfies every production policy."""
    return {
        "JWT_SECRET": "Zq8xK2mW9vR4nB7pL3jH6fY1cT5gA0eUwQsXiOkMdNz",
        "JWT_REFRESH_SECRET": "Hb4Lr9Wm2Qx7Kc5Vn8Pz3Yt6Jf1Gs0DaEuRiOkMwNqX",
        "ENCRYPTION_KEY": "9f3A7c1E5b8D2a6F0e4C" * 7,
        "SESSION_SECRET": "Mx7Rk2Vw9Qb4Nz8Lp3Hj6Fy1Ct5Ga0Eu" * 2,
        "DATABASE_PASSWORD": "Yh7#Kq2!Wm9$Vr4&",
        "REDIS_PASSWORD": "strong-redis-pass-1234!",
        "LICENSE_MANAGER_DB_PASSWORD": "strong-license-db-pass!",
    }


@pytest.fixture()
def strong_env(monkeypatch, strong_secrets):
    """Export strong_secrets into the process environment."""
    for key, value in strong_secrets.items():
        monkeypatch.setenv(key, value)
    return strong_secrets
