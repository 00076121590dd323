"""
SecretsManager façade over a pluggable SecretProvider.

The rest of the application reaches secrets only through this class: a
fail-fast ``load_all()`` at startup and ``get_secret(name)`` at runtime. It
owns the SecretRegistry, a manager-level SecretCache, and exactly one
provider chosen at construction (see factory.py).

Architecture:
    SecretsManager
    ├── SecretRegistry - which secrets exist and their policy
    ├── SecretCache - manager-level TTL cache (constructor-injected)
    └── SecretProvider - EnvironmentProvider or VaultProvider

Startup (load_all):
    - Resolves every registry entry by its source key, validates it, and
      collects ALL violations before failing with one SecretsLoadError
    - Checks distinct-value groups once every entry is resolved
    - On success the result becomes the process-wide immutable secret set

Runtime (get_secret):
    - Names outside the registry raise UnknownSecretError (typos fail early)
    - Cache hit → value; miss → provider lookup, validation, cache
    - Write passthroughs invalidate the manager cache entry whether or not the
      provider call succeeded

Usage Example:
    >>> manager = SecretsManager(EnvironmentProvider(), environment=Environment.PRODUCTION)
    >>> secrets = manager.load_all()
    >>> jwt_secret = manager.get_secret("JWT_SECRET")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from types import MappingProxyType, TracebackType
from typing import Any

from libs.secrets.cache import SecretCache
from libs.secrets.definitions import (
    DEFAULT_REGISTRY,
    Environment,
    SecretDefinition,
    SecretRegistry,
)
from libs.secrets.exceptions import (
    MissingSecretError,
    PolicyViolation,
    SecretManagerError,
    SecretsLoadError,
    UnknownSecretError,
)
from libs.secrets.provider import (
    ProviderHealth,
    SecretListing,
    SecretOptions,
    SecretProvider,
    SecretReference,
)
from libs.secrets.validator import validate_distinct, validate_secret

logger = logging.getLogger(__name__)


class SecretsManager:
    """
    Uniform secret lifecycle API for application code.

    Thread Safety:
        The manager cache is lock-protected and last-writer-wins. Concurrent
        misses on the same name may both reach the provider; fetches are
        idempotent so the duplicate is harmless.

    Attributes:
        provider: The active SecretProvider
        registry: The SecretRegistry this manager serves
        environment: Environment used for validation severity
    """

    def __init__(
        self,
        provider: SecretProvider,
        registry: SecretRegistry = DEFAULT_REGISTRY,
        environment: Environment = Environment.DEVELOPMENT,
        cache: SecretCache | None = None,
        cache_ttl: timedelta = timedelta(minutes=5),
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.environment = environment
        self._cache = cache if cache is not None else SecretCache(ttl=cache_ttl)
        self._loaded: Mapping[str, str | None] | None = None

    @property
    def cache(self) -> SecretCache:
        return self._cache

    @property
    def loaded(self) -> Mapping[str, str | None]:
        """
        The immutable secret set produced by the last successful load_all().

        Raises:
            SecretManagerError: load_all() has not completed successfully
        """
        if self._loaded is None:
            raise SecretManagerError(
                "Secrets have not been loaded; call load_all() at startup",
                backend=self.provider.backend,
            )
        return self._loaded

    @property
    def is_loaded(self) -> bool:
        return self._loaded is not None

    def load_all(self, environment: Environment | str | None = None) -> Mapping[str, str | None]:
        """
        Resolve and validate every secret in the registry.

        Resolution is sequential; completion order does not affect the
        outcome, only the aggregate set of violations does.

        Args:
            environment: Overrides the manager's environment for this load
                (and becomes the manager's environment on success)

        Returns:
            Read-only mapping of name → value (None for unset optional secrets)

        Raises:
            SecretsLoadError: One or more secrets violated policy or could
                not be fetched; ``violations`` lists every one of them
        """
        env = Environment.parse(environment) if environment is not None else self.environment
        resolved: dict[str, str | None] = {}
        violations: list[SecretManagerError] = []

        logger.info(
            "Loading secrets",
            extra={
                "environment": env.value,
                "provider": self.provider.backend,
                "count": len(self.registry),
            },
        )

        for name, definition in self.registry.items():
            try:
                raw = self.provider.find_secret(definition.source_key)
            except SecretManagerError as e:
                if definition.required:
                    logger.error(
                        "Failed to fetch required secret",
                        extra={
                            "secret_name": name,
                            "provider": self.provider.backend,
                            "error_type": type(e).__name__,
                        },
                    )
                    violations.append(e)
                    continue
                logger.warning(
                    "Failed to fetch optional secret, treating as absent",
                    extra={
                        "secret_name": name,
                        "provider": self.provider.backend,
                        "error_type": type(e).__name__,
                    },
                )
                raw = None

            try:
                resolved[name] = validate_secret(name, raw, definition, env)
            except PolicyViolation as e:
                violations.append(e)

        violations.extend(validate_distinct(self.registry, resolved, env))

        if violations:
            error = SecretsLoadError(violations)
            logger.error(
                "Secret loading failed",
                extra={
                    "environment": env.value,
                    "provider": self.provider.backend,
                    "violation_count": len(violations),
                    "failed_secrets": [v.secret_name for v in violations],
                },
            )
            raise error

        self.environment = env
        self._loaded = MappingProxyType(resolved)
        for name, value in resolved.items():
            if value is not None:
                self._cache.set(name, value)

        logger.info(
            "Secrets loaded",
            extra={
                "environment": env.value,
                "provider": self.provider.backend,
                "configured": sum(1 for value in resolved.values() if value is not None),
            },
        )
        return self._loaded

    def get_secret(self, name: str) -> str | None:
        """
        Return the current value of a registered secret.

        Returns:
            The value, or None for an optional secret that is not configured

        Raises:
            UnknownSecretError: name is not in the registry
            MissingSecretError: A required secret is absent
            PolicyViolation: The fetched value violates policy (production)
            SecretAccessError: Provider failure (no automatic retry)
        """
        definition = self._definition(name)

        cached_value = self._cache.get(name)
        if cached_value is not None:
            return cached_value

        value = validate_secret(
            name,
            self.provider.find_secret(definition.source_key),
            definition,
            self.environment,
        )
        if value is None:
            if definition.required:
                raise MissingSecretError(name, definition.source_key)
            return None

        self._cache.set(name, value)
        return value

    def set_secret(
        self,
        name: str,
        value: str,
        options: SecretOptions | None = None,
    ) -> SecretReference:
        """
        Validate then store a new value for a registered secret.

        Raises:
            UnknownSecretError: name is not in the registry
            PolicyViolation: value violates policy (production), before any write
            SecretWriteError: Provider rejected the write
        """
        definition = self._definition(name)
        self._validate_new_value(name, value, definition)
        try:
            reference = self.provider.store_secret(definition.source_key, value, options)
        finally:
            self._invalidate(name, definition)
        self._audit("set", name)
        return reference

    def delete_secret(self, name: str) -> None:
        definition = self._definition(name)
        try:
            self.provider.delete_secret(definition.source_key)
        finally:
            self._invalidate(name, definition)
        self._audit("delete", name)

    def rotate_secret(
        self,
        name: str,
        new_value: str,
        store_first: bool = False,
    ) -> SecretReference:
        """
        Validate then rotate a registered secret.

        ``store_first`` is passed to the provider (the vault provider then
        stores the replacement before deleting the old secret). Provider
        errors from either rotation step propagate unchanged; rotation never
        reports success after a failed step.
        """
        definition = self._definition(name)
        self._validate_new_value(name, new_value, definition)
        try:
            reference = self.provider.rotate_secret(
                definition.source_key, new_value, store_first=store_first
            )
        except SecretManagerError:
            logger.error(
                "Secret rotation failed",
                extra={"secret_name": name, "provider": self.provider.backend},
            )
            raise
        finally:
            self._invalidate(name, definition)
        self._audit("rotate", name)
        return reference

    def generate_secret(
        self,
        name: str,
        options: SecretOptions | None = None,
    ) -> SecretReference:
        definition = self._definition(name)
        try:
            reference = self.provider.generate_secret(definition.source_key, options)
        finally:
            self._invalidate(name, definition)
        self._audit("generate", name)
        return reference

    def list_secrets(self, **kwargs: Any) -> list[SecretListing]:
        """Forward to the provider (names and references only)."""
        return self.provider.list_secrets(**kwargs)

    def health_check(self) -> ProviderHealth:
        return self.provider.health_check()

    def clear_cache(self) -> None:
        """Clear the manager cache and the provider's cache."""
        self._cache.clear()
        self.provider.clear_cache()
        logger.info("Secret caches cleared", extra={"provider": self.provider.backend})

    def cache_stats(self) -> dict[str, Any]:
        return {
            "size": len(self._cache),
            "provider": self.provider.backend,
            "ttl_seconds": self._cache.ttl.total_seconds(),
        }

    def close(self) -> None:
        self._cache.clear()
        self.provider.close()

    def __enter__(self) -> SecretsManager:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def _definition(self, name: str) -> SecretDefinition:
        try:
            return self.registry[name]
        except KeyError:
            raise UnknownSecretError(name, known=self.registry.keys()) from None

    def _validate_new_value(self, name: str, value: str, definition: SecretDefinition) -> None:
        if not value:
            raise MissingSecretError(name, definition.source_key)
        validate_secret(name, value, definition, self.environment)

    def _invalidate(self, name: str, definition: SecretDefinition) -> None:
        self._cache.invalidate(name)
        self.provider.invalidate(definition.source_key)

    def _audit(self, operation: str, name: str) -> None:
        logger.info(
            "Secret %s completed",
            operation,
            extra={
                "secret_name": name,
                "operation": operation,
                "provider": self.provider.backend,
            },
        )
