"""
Secret Lifecycle Management.

This package defines, validates, retrieves, stores, rotates, and caches the
sensitive credentials the application needs (signing keys, database
passwords, encryption keys, session secrets).

Architecture:
    - SecretRegistry: Every secret the process needs, with policy (definitions.py)
    - validate_secret(): Strength validation, environment-sensitive severity (validator.py)
    - SecretCache: In-memory TTL cache, one per manager and per provider (cache.py)
    - SecretProvider: EnvironmentProvider or VaultProvider (provider.py)
    - AuthSessionManager: Identity token for the vault (auth_session.py)
    - SecretsManager: Façade used by application code (manager.py)
    - create_secrets_manager(): Builds the façade from SecretsSettings (factory.py)

Quick Start:
    >>> from libs.secrets import load_secrets_or_exit
    >>> secrets = load_secrets_or_exit()  # Exits with status 1 on any violation
    >>> jwt_secret = secrets["JWT_SECRET"]

Security Requirements:
    - Secret values NEVER logged (only names/references)
    - No disk persistence; caches are in-memory only
    - No automatic retries; failures surface immediately and specifically
"""

from libs.secrets.auth_session import AuthSessionManager, SessionState
from libs.secrets.cache import SecretCache
from libs.secrets.config import ProviderKind, SecretsSettings, get_secrets_settings
from libs.secrets.definitions import (
    DEFAULT_REGISTRY,
    Environment,
    SecretDefinition,
    SecretRegistry,
)
from libs.secrets.env_backend import EnvironmentProvider
from libs.secrets.exceptions import (
    AuthenticationError,
    ForbiddenValueError,
    MissingSecretError,
    PolicyViolation,
    ProviderUnavailableError,
    SecretAccessError,
    SecretManagerError,
    SecretNotFoundError,
    SecretReuseError,
    SecretsLoadError,
    SecretWriteError,
    UnknownSecretError,
    WeakSecretError,
)
from libs.secrets.factory import create_provider, create_secrets_manager
from libs.secrets.manager import SecretsManager
from libs.secrets.provider import (
    ProviderHealth,
    SecretListing,
    SecretOptions,
    SecretProvider,
    SecretReference,
)
from libs.secrets.startup import load_secrets_or_exit
from libs.secrets.validator import validate_secret
from libs.secrets.vault_backend import VaultProvider

# Package exports (PEP 8: __all__ defines public API)
__all__ = [
    # Façade and startup (recommended for most use cases)
    "SecretsManager",
    "create_secrets_manager",
    "load_secrets_or_exit",
    # Configuration
    "SecretsSettings",
    "ProviderKind",
    "get_secrets_settings",
    "create_provider",
    # Registry and validation
    "Environment",
    "SecretDefinition",
    "SecretRegistry",
    "DEFAULT_REGISTRY",
    "validate_secret",
    # Providers
    "SecretProvider",
    "EnvironmentProvider",
    "VaultProvider",
    "AuthSessionManager",
    "SessionState",
    "SecretOptions",
    "SecretReference",
    "SecretListing",
    "ProviderHealth",
    # Cache utility
    "SecretCache",
    # Exceptions (callers should catch these)
    "SecretManagerError",
    "SecretNotFoundError",
    "SecretAccessError",
    "AuthenticationError",
    "ProviderUnavailableError",
    "SecretWriteError",
    "UnknownSecretError",
    "PolicyViolation",
    "MissingSecretError",
    "WeakSecretError",
    "ForbiddenValueError",
    "SecretReuseError",
    "SecretsLoadError",
]
