"""
Environment Variable Secret Provider.

This module implements EnvironmentProvider, the default secrets backend for
local development and CI. It reads secrets from process environment variables
and, optionally, a .env file loaded at construction.

Architecture:
    - Reads secrets from environment variables (os.environ) by source key
    - Supports .env file loading via python-dotenv
    - No caching and no network I/O: the environment is process-local and cheap
    - An unset or empty variable is reported as absent (None), never raised

Security Considerations:
    - Secret values NEVER logged (only names)
    - .env files MUST be in .gitignore (prevent accidental commits)
    - set_secret() updates the process environment ONLY (does not persist to .env)

Usage Example:
    >>> from libs.secrets.env_backend import EnvironmentProvider
    >>> provider = EnvironmentProvider(dotenv_path=".env")
    >>> provider.get_secret("DATABASE_PASSWORD")
    'local-dev-password-1234'
    >>> provider.get_secret("NOT_SET") is None
    True
"""

from __future__ import annotations

import logging
import os
import threading
import warnings
from pathlib import Path

from dotenv import load_dotenv

from libs.secrets.exceptions import SecretAccessError, SecretNotFoundError
from libs.secrets.provider import (
    ProviderHealth,
    SecretListing,
    SecretOptions,
    SecretProvider,
    SecretReference,
)

logger = logging.getLogger(__name__)


class EnvironmentProvider(SecretProvider):
    """
    Environment variable secrets backend.

    Features:
        - Reads from environment variables (os.environ)
        - Loads .env file on initialization (if provided)
        - Writes are runtime-only and guarded by threading.Lock

    Example:
        >>> provider = EnvironmentProvider()
        >>> provider.set_secret("SESSION_SECRET", "runtime-only-value")
        >>> provider.list_secrets(prefix="SESSION_")
        [SecretListing(name='SESSION_SECRET', reference='env:SESSION_SECRET', status='ACTIVE')]
    """

    backend = "environment"

    def __init__(self, dotenv_path: str | Path | None = None) -> None:
        """
        Initialize EnvironmentProvider with optional .env file loading.

        Args:
            dotenv_path: Optional path to .env file to load (overrides existing
                variables). If None, only reads existing environment variables.

        Raises:
            SecretAccessError: If .env file path is provided but file doesn't exist
        """
        self._lock = threading.Lock()
        self._dotenv_path = dotenv_path

        if dotenv_path is not None:
            dotenv_file = Path(dotenv_path)
            if not dotenv_file.is_file():
                raise SecretAccessError(
                    secret_name="dotenv_file",
                    backend=self.backend,
                    reason=f".env file not found: {dotenv_path}",
                )

            load_dotenv(dotenv_path=dotenv_file, override=True)
            logger.info(
                "Loaded .env file for secrets management",
                extra={"dotenv_path": str(dotenv_file), "backend": self.backend},
            )
        else:
            logger.info(
                "Using environment variables without .env file",
                extra={"backend": self.backend},
            )

    def find_secret(self, name: str, refresh: bool = False) -> str | None:
        value = os.environ.get(name)
        if not value:
            logger.debug(
                "Environment variable not set",
                extra={"secret_name": name, "backend": self.backend},
            )
            return None

        logger.debug(
            "Secret read from environment",
            extra={"secret_name": name, "backend": self.backend},
        )
        return value

    def set_secret(self, name: str, value: str) -> None:
        """
        Set or update an environment variable (runtime only, not persisted).

        **WARNING**: Changes are lost on process restart. Edit the .env file
        for permanent changes.
        """
        with self._lock:
            os.environ[name] = value
        logger.warning(
            "Secret updated in process environment only; change is not persisted",
            extra={"secret_name": name, "backend": self.backend},
        )

    def store_secret(
        self,
        name: str,
        value: str,
        options: SecretOptions | None = None,
    ) -> SecretReference:
        """Store as an environment variable. Options other than the value are ignored."""
        self.set_secret(name, value)
        return self._reference(name)

    def delete_secret(self, name: str) -> None:
        """
        Remove the environment variable.

        Raises:
            SecretNotFoundError: Variable is not set
        """
        with self._lock:
            if name not in os.environ:
                raise SecretNotFoundError(
                    secret_name=name,
                    backend=self.backend,
                    additional_context=f"Environment variable '{name}' not set",
                )
            del os.environ[name]
        logger.info(
            "Secret removed from process environment",
            extra={"secret_name": name, "backend": self.backend},
        )

    def rotate_secret(
        self,
        name: str,
        new_value: str,
        store_first: bool = False,
    ) -> SecretReference:
        """Replace the variable's value in place (atomic, so store_first has no effect)."""
        with self._lock:
            os.environ[name] = new_value
        logger.info(
            "Secret rotated in process environment",
            extra={"secret_name": name, "backend": self.backend},
        )
        return self._reference(name)

    def generate_secret(
        self,
        name: str,
        options: SecretOptions | None = None,
    ) -> SecretReference:
        raise NotImplementedError(
            "EnvironmentProvider cannot generate secrets; use the vault provider"
        )

    def list_secrets(self, prefix: str | None = None) -> list[SecretListing]:
        """
        List environment variable names (optional prefix filter).

        Calling without a prefix returns EVERY variable in the process,
        including system and infrastructure variables, and emits a UserWarning.

        Returns:
            Listings sorted by name; NEVER values
        """
        if prefix is None:
            warnings.warn(
                "list_secrets() called without prefix filter. "
                "This returns ALL environment variables including system vars. "
                "Use a prefix filter (e.g., 'JWT_', 'DATABASE_') to limit exposure.",
                category=UserWarning,
                stacklevel=2,
            )

        names = sorted(
            var for var in os.environ if prefix is None or var.startswith(prefix)
        )
        logger.info(
            "Listed environment variables",
            extra={"count": len(names), "prefix": prefix, "backend": self.backend},
        )
        return [SecretListing(name=var, reference=f"env:{var}") for var in names]

    def health_check(self) -> ProviderHealth:
        return ProviderHealth(status="healthy", provider=self.backend, authenticated=True)

    def _reference(self, name: str) -> SecretReference:
        return SecretReference(url=f"env:{name}", secret_id=name)
