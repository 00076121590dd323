"""
Secrets subsystem settings loaded from environment variables.

Uses Pydantic Settings for type-safe configuration with validation.
All settings can be overridden via environment variables or .env file.
"""

from datetime import timedelta
from enum import StrEnum
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from libs.secrets.definitions import Environment


class ProviderKind(StrEnum):
    """Closed set of secret providers selectable via SECRETS_PROVIDER."""

    ENVIRONMENT = "environment"
    VAULT = "vault"


class SecretsSettings(BaseSettings):
    """
    Secrets subsystem configuration.

    Vault connection fields are optional here; the factory reports every
    missing one at once when the vault provider is selected.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Application secrets share the same environment
    )

    # Provider Selection
    secrets_provider: ProviderKind = Field(
        default=ProviderKind.ENVIRONMENT,
        description="Secret provider: 'environment' or 'vault'",
    )
    deployment_env: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (production, staging, development, test)",
    )

    # Manager Configuration
    secrets_cache_ttl_ms: int = Field(
        default=300_000,
        ge=0,
        description="Manager-level cache TTL in milliseconds (0 disables caching)",
    )
    secrets_http_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-call timeout for identity and vault requests",
    )

    # Environment Provider Configuration
    secrets_dotenv_path: str | None = Field(
        default=None,
        description="Optional .env file loaded by the environment provider",
    )

    # Vault Provider Configuration
    barbican_endpoint: str | None = Field(
        default=None,
        description="Vault API base URL including version (e.g., https://barbican.example.com/v1)",
    )
    openstack_auth_url: str | None = Field(
        default=None,
        description="Identity API base URL (e.g., https://keystone.example.com/v3)",
    )
    openstack_username: str | None = Field(default=None, description="Identity user name")
    openstack_password: SecretStr | None = Field(default=None, description="Identity password")
    openstack_user_domain_name: str = Field(default="Default", description="Identity user domain")
    barbican_project_id: str | None = Field(default=None, description="Project scope for the token")
    barbican_cache_ttl_ms: int = Field(
        default=300_000,
        ge=0,
        description="Vault provider cache TTL in milliseconds",
    )
    auth_token_expiry_buffer_seconds: int = Field(
        default=60,
        ge=0,
        description="Safety buffer subtracted from the declared token expiry",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    @field_validator("secrets_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() or ProviderKind.ENVIRONMENT
        return value

    @field_validator("deployment_env", mode="before")
    @classmethod
    def _parse_environment(cls, value: object) -> object:
        if isinstance(value, str):
            return Environment.parse(value)
        return value

    @property
    def manager_cache_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.secrets_cache_ttl_ms)

    @property
    def vault_cache_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.barbican_cache_ttl_ms)

    @property
    def token_expiry_buffer(self) -> timedelta:
        return timedelta(seconds=self.auth_token_expiry_buffer_seconds)


@lru_cache
def get_secrets_settings() -> SecretsSettings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once; tests call
    ``get_secrets_settings.cache_clear()`` after changing the environment.
    """
    return SecretsSettings()
