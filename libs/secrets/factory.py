"""
Factory for creating the SecretsManager and its provider from configuration.

The provider is one of a closed set selected once, at construction, by
``SecretsSettings.secrets_provider``:
    - SECRETS_PROVIDER="environment" → EnvironmentProvider (default)
    - SECRETS_PROVIDER="vault" → VaultProvider (staging/production)

Production Guardrails:
    - The environment provider in production is permitted but logged as a warning
    - The vault provider requires endpoint, identity URL, username, password
      and project id; every missing one is reported in a single error

Example Usage:
    >>> import os
    >>> os.environ["SECRETS_PROVIDER"] = "vault"
    >>> manager = create_secrets_manager()
    >>> isinstance(manager.provider, VaultProvider)
    True

Environment Variables:
    See libs/secrets/config.py (SecretsSettings) for the full list.
"""

import logging
from pathlib import Path

from libs.secrets.auth_session import AuthSessionManager
from libs.secrets.config import ProviderKind, SecretsSettings, get_secrets_settings
from libs.secrets.definitions import DEFAULT_REGISTRY, SecretRegistry
from libs.secrets.env_backend import EnvironmentProvider
from libs.secrets.exceptions import SecretManagerError
from libs.secrets.manager import SecretsManager
from libs.secrets.provider import SecretProvider
from libs.secrets.vault_backend import VaultProvider

logger = logging.getLogger(__name__)


def _resolve_dotenv_path(settings: SecretsSettings) -> Path | None:
    """
    Resolve the .env file path to load for EnvironmentProvider.

    Priority:
        1. SECRETS_DOTENV_PATH (must exist, otherwise raise)
        2. No .env file (EnvironmentProvider uses the current environment)
    """
    override_path = settings.secrets_dotenv_path
    if not override_path:
        return None

    candidate = Path(override_path).expanduser().resolve()
    if not candidate.is_file():
        raise SecretManagerError(
            f"SECRETS_DOTENV_PATH is set to '{candidate}', but the file does not exist."
        )
    return candidate


def _create_vault_provider(settings: SecretsSettings) -> VaultProvider:
    required = {
        "BARBICAN_ENDPOINT": settings.barbican_endpoint,
        "OPENSTACK_AUTH_URL": settings.openstack_auth_url,
        "OPENSTACK_USERNAME": settings.openstack_username,
        "OPENSTACK_PASSWORD": (
            settings.openstack_password.get_secret_value()
            if settings.openstack_password is not None
            else None
        ),
        "BARBICAN_PROJECT_ID": settings.barbican_project_id,
    }
    missing = [key for key, value in required.items() if not value]
    if missing:
        raise SecretManagerError(
            f"Vault provider requires {', '.join(missing)}. "
            f"Set these environment variables or use SECRETS_PROVIDER='environment'.",
            backend="vault",
        )

    session = AuthSessionManager(
        auth_url=required["OPENSTACK_AUTH_URL"],
        username=required["OPENSTACK_USERNAME"],
        password=required["OPENSTACK_PASSWORD"],
        project_id=required["BARBICAN_PROJECT_ID"],
        user_domain_name=settings.openstack_user_domain_name,
        timeout_seconds=settings.secrets_http_timeout_seconds,
        expiry_buffer=settings.token_expiry_buffer,
    )
    logger.info(
        "Initializing VaultProvider",
        extra={
            "endpoint": settings.barbican_endpoint,
            "auth_url": settings.openstack_auth_url,
            "project_id": settings.barbican_project_id,
        },
    )
    return VaultProvider(
        endpoint=required["BARBICAN_ENDPOINT"],
        session=session,
        cache_ttl=settings.vault_cache_ttl,
        timeout_seconds=settings.secrets_http_timeout_seconds,
    )


def create_provider(settings: SecretsSettings | None = None) -> SecretProvider:
    """
    Create the SecretProvider selected by configuration.

    Args:
        settings: Configuration; read from the environment if None

    Returns:
        EnvironmentProvider or VaultProvider

    Raises:
        SecretManagerError: Vault parameters missing, or SECRETS_DOTENV_PATH
            points at a file that does not exist
    """
    settings = settings or get_secrets_settings()

    if settings.secrets_provider is ProviderKind.VAULT:
        return _create_vault_provider(settings)

    if settings.deployment_env.is_production:
        logger.warning(
            "EnvironmentProvider selected in production. "
            "Use SECRETS_PROVIDER='vault' for production deployments.",
            extra={"environment": settings.deployment_env.value},
        )

    dotenv_path = _resolve_dotenv_path(settings)
    if dotenv_path:
        logger.info(
            "Initializing EnvironmentProvider with dotenv file",
            extra={"dotenv_path": str(dotenv_path)},
        )
    return EnvironmentProvider(dotenv_path=dotenv_path)


def create_secrets_manager(
    settings: SecretsSettings | None = None,
    registry: SecretRegistry = DEFAULT_REGISTRY,
) -> SecretsManager:
    """
    Create a SecretsManager wired to the configured provider.

    Examples:
        >>> manager = create_secrets_manager()  # EnvironmentProvider, development
        >>> manager.environment
        <Environment.DEVELOPMENT: 'development'>
    """
    settings = settings or get_secrets_settings()
    provider = create_provider(settings)
    logger.info(
        "Created secrets manager",
        extra={
            "provider": provider.backend,
            "environment": settings.deployment_env.value,
            "cache_ttl_ms": settings.secrets_cache_ttl_ms,
        },
    )
    return SecretsManager(
        provider=provider,
        registry=registry,
        environment=settings.deployment_env,
        cache_ttl=settings.manager_cache_ttl,
    )
