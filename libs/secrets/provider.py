"""
Abstract SecretProvider Interface for Pluggable Secret Stores.

This module defines the contract every secret store backend follows, so the
SecretsManager façade can swap between the process environment and the
remote vault without changing callers.

Architecture:
    SecretProvider (ABC)
    ├── VaultProvider - Remote vault over HTTP (vault_backend.py)
    └── EnvironmentProvider - Process environment variables (env_backend.py)

Backend selection via factory (factory.py):
    - SECRETS_PROVIDER=vault → VaultProvider
    - SECRETS_PROVIDER=environment → EnvironmentProvider (default)

Absent values are reported as ``None`` from find_secret(); exceptions are
reserved for genuine failures (network, authentication, permissions).
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from types import TracebackType
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from libs.secrets.exceptions import SecretNotFoundError

_UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def is_uuid(value: str) -> bool:
    """True only for the canonical hyphenated 8-4-4-4-12 hex form."""
    return bool(_UUID_PATTERN.match(value))


class SecretOptions(BaseModel):
    """
    Options for storing or generating a secret.

    Unknown keys are rejected at construction.

    Attributes:
        algorithm: Key algorithm (aes, rsa, dsa, ec, octets). Default: "aes"
        bit_length: Key size in bits. Default: 256
        mode: Cipher mode (cbc, gcm, ...). Default: "cbc"
        secret_type: symmetric, asymmetric, passphrase, opaque. Default: None,
            meaning "opaque" for stored payloads and "symmetric" for generated ones
        expiration: Optional expiry recorded by the vault
        payload_content_type: Content type of stored payloads. Default: "text/plain"
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    algorithm: str = "aes"
    bit_length: int = Field(default=256, gt=0)
    mode: str = "cbc"
    secret_type: str | None = None
    expiration: datetime | None = None
    payload_content_type: str = "text/plain"


@dataclass(frozen=True)
class SecretReference:
    """
    Resolved pointer to a stored secret.

    Attributes:
        url: Full reference URL (e.g., ".../v1/secrets/<uuid>") or provider-local key
        secret_id: Trailing identifier of the reference
    """

    url: str
    secret_id: str

    @classmethod
    def from_url(cls, url: str) -> SecretReference:
        stripped = url.rstrip("/")
        return cls(url=stripped, secret_id=stripped.rsplit("/", 1)[-1])


class SecretListing(BaseModel):
    """One entry of list_secrets(). Never carries the value."""

    model_config = ConfigDict(frozen=True)

    name: str
    reference: str
    status: str = "ACTIVE"


class ProviderHealth(BaseModel):
    """Result of health_check(); never raised, so monitors can poll safely."""

    status: Literal["healthy", "unhealthy"]
    provider: str
    authenticated: bool
    error: str | None = None


class SecretProvider(ABC):
    """
    Abstract base class for all secret store backends.

    Implementations:
        - VaultProvider: Remote vault via httpx, token from AuthSessionManager
        - EnvironmentProvider: os.environ (local development and CI)

    Security:
        - NEVER log secret values (only names/references)
        - Write operations invalidate any provider-local cache entry
    """

    backend: str = "provider"

    @abstractmethod
    def find_secret(self, name: str, refresh: bool = False) -> str | None:
        """
        Look up a secret value by name.

        Args:
            name: Source key / label of the secret
            refresh: Bypass any provider-local cache

        Returns:
            The value, or None when the provider holds no such secret

        Raises:
            SecretAccessError: Authentication, permission, or transport failure
        """

    def get_secret(self, name: str, refresh: bool = False) -> str | None:
        """
        Retrieve a secret value.

        Default behaviour returns None for an absent secret. Providers whose
        contract treats absence as an error override this.
        """
        return self.find_secret(name, refresh=refresh)

    def require_secret(self, name: str, refresh: bool = False) -> str:
        """Like find_secret(), but raises SecretNotFoundError when absent."""
        value = self.find_secret(name, refresh=refresh)
        if value is None:
            raise SecretNotFoundError(secret_name=name, backend=self.backend)
        return value

    @abstractmethod
    def store_secret(
        self,
        name: str,
        value: str,
        options: SecretOptions | None = None,
    ) -> SecretReference:
        """
        Store a secret under name.

        Raises:
            SecretWriteError: Write rejected or failed
        """

    @abstractmethod
    def delete_secret(self, name: str) -> None:
        """
        Delete the secret stored under name.

        Raises:
            SecretNotFoundError: Nothing stored under name
            SecretWriteError: Delete rejected or failed
        """

    @abstractmethod
    def rotate_secret(
        self,
        name: str,
        new_value: str,
        store_first: bool = False,
    ) -> SecretReference:
        """
        Replace the value stored under name.

        Args:
            store_first: Write the replacement before removing the old value.
                Providers whose rotation is already atomic ignore it.
        """

    @abstractmethod
    def generate_secret(
        self,
        name: str,
        options: SecretOptions | None = None,
    ) -> SecretReference:
        """
        Have the store generate a new secret (no plaintext transits the client).

        Raises:
            NotImplementedError: Provider cannot generate secrets
        """

    @abstractmethod
    def list_secrets(self) -> list[SecretListing]:
        """List stored secrets (names and references only, NEVER values)."""

    @abstractmethod
    def health_check(self) -> ProviderHealth:
        """Report provider health without raising."""

    def invalidate(self, name: str) -> None:  # noqa: B027 - optional hook, default no-op
        """Drop any provider-local cached value for name."""

    def clear_cache(self) -> None:  # noqa: B027 - optional hook, default no-op
        """Drop all provider-local cached values."""

    def close(self) -> None:  # noqa: B027 - optional hook, default no-op
        """Release connections and clear caches."""

    def __enter__(self) -> SecretProvider:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
