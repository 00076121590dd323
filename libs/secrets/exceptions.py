"""
Secrets Lifecycle Exception Hierarchy.

This module defines every exception raised by the secrets subsystem: provider
failures (lookup, access, write), identity failures, policy violations found
by the strength validator, and the aggregate startup error.

Exception hierarchy:
    SecretManagerError (base)
    ├── SecretNotFoundError - Secret doesn't exist in the provider
    ├── SecretAccessError - Permission/transport failure reading secrets
    │   ├── AuthenticationError - Identity token exchange failed
    │   └── ProviderUnavailableError - Vault unreachable, timed out, or 5xx
    ├── SecretWriteError - Failed to store/delete/rotate a secret
    ├── UnknownSecretError - Name is not in the secret registry
    ├── PolicyViolation - Value breaks a definition's policy
    │   ├── MissingSecretError - Required value absent
    │   ├── WeakSecretError - Shorter than the minimum length
    │   ├── ForbiddenValueError - Contains a disallowed substring
    │   └── SecretReuseError - Secrets that must differ share a value
    └── SecretsLoadError - Aggregate of every failure found by load_all()

All exceptions carry structured context (secret name, backend) and NEVER the
secret value itself.
"""

from __future__ import annotations

from collections.abc import Iterable


class SecretManagerError(Exception):
    """
    Base exception for all secrets subsystem errors.

    Attributes:
        secret_name: Logical name or source key of the secret (e.g., "JWT_SECRET")
        backend: Provider that raised ("vault", "environment") or None
        message: Human-readable error message (MUST NOT include secret value)

    Example:
        >>> try:
        ...     value = manager.get_secret("JWT_SECRET")
        ... except SecretManagerError as e:
        ...     logger.error("Secret error", extra={"secret_name": e.secret_name})
    """

    def __init__(
        self,
        message: str,
        secret_name: str | None = None,
        backend: str | None = None,
    ) -> None:
        super().__init__(message)
        self.secret_name = secret_name
        self.backend = backend
        self.message = message

    def __str__(self) -> str:
        """
        Format error message with context (secret name + backend).

        Example:
            >>> str(SecretManagerError("Timeout", "DATABASE_PASSWORD", "vault"))
            'Timeout (secret: DATABASE_PASSWORD, backend: vault)'
        """
        context_parts = []
        if self.secret_name:
            context_parts.append(f"secret: {self.secret_name}")
        if self.backend:
            context_parts.append(f"backend: {self.backend}")

        if context_parts:
            context = ", ".join(context_parts)
            return f"{self.message} ({context})"
        return self.message


def _require_text(**fields: str) -> None:
    for field_name, field_value in fields.items():
        if not isinstance(field_value, str) or not field_value:
            raise TypeError(f"{field_name} must be a non-empty string")


class SecretNotFoundError(SecretManagerError):
    """
    Raised when a requested secret doesn't exist in the provider.

    Common causes:
    - Vault name lookup returned no match
    - Secret reference (UUID) points at a deleted secret
    - Environment variable not set
    """

    def __init__(
        self,
        secret_name: str,
        backend: str,
        additional_context: str | None = None,
    ) -> None:
        _require_text(secret_name=secret_name, backend=backend)

        base_message = f"Secret '{secret_name}' not found in {backend.upper()}"
        if additional_context:
            base_message += f". {additional_context}"

        super().__init__(
            message=base_message,
            secret_name=secret_name,
            backend=backend,
        )


class SecretAccessError(SecretManagerError):
    """
    Raised when reading from the secrets provider fails.

    Covers permission failures (HTTP 403), malformed responses and, through
    its subclasses, identity and transport failures.
    """

    prefix = "Access denied"

    def __init__(
        self,
        secret_name: str,
        backend: str,
        reason: str,
    ) -> None:
        _require_text(secret_name=secret_name, backend=backend, reason=reason)
        self.reason = reason
        super().__init__(
            message=f"{self.prefix}: {reason}",
            secret_name=secret_name,
            backend=backend,
        )


class AuthenticationError(SecretAccessError):
    """
    Raised when the identity token exchange fails.

    The subsystem authenticates itself (not the application) against the
    identity endpoint. Any network error, non-2xx response, or response
    without a token header surfaces as this error. Never retried
    automatically: a blind retry against bad credentials masks misconfiguration.
    """

    prefix = "Authentication failed"


class ProviderUnavailableError(SecretAccessError):
    """
    Raised on transport failures talking to the vault.

    Connection refused, DNS failure, per-call timeout, or HTTP 5xx.
    """

    prefix = "Provider unavailable"


class SecretWriteError(SecretManagerError):
    """
    Raised when storing, generating, deleting or rotating a secret fails.
    """

    def __init__(
        self,
        secret_name: str,
        backend: str,
        reason: str,
    ) -> None:
        _require_text(secret_name=secret_name, backend=backend, reason=reason)
        self.reason = reason
        super().__init__(
            message=f"Failed to write secret: {reason}",
            secret_name=secret_name,
            backend=backend,
        )


class UnknownSecretError(SecretManagerError):
    """
    Raised when a caller asks for a name that is not in the secret registry.

    Catches typos at the call site instead of silently returning nothing.
    """

    def __init__(self, secret_name: str, known: Iterable[str] = ()) -> None:
        known_names = sorted(known)
        message = f"Unknown secret '{secret_name}'"
        if known_names:
            message += f". Registered secrets: {', '.join(known_names)}"
        super().__init__(message=message, secret_name=secret_name)


class PolicyViolation(SecretManagerError):
    """
    Base class for violations of a SecretDefinition's policy.

    Raised by the strength validator when a hard rule is broken for the
    active environment.
    """

    def __init__(self, secret_name: str, message: str) -> None:
        super().__init__(message=message, secret_name=secret_name)


class MissingSecretError(PolicyViolation):
    """Required secret has no value."""

    def __init__(self, secret_name: str, source_key: str | None = None) -> None:
        message = "Required secret is not set"
        if source_key and source_key != secret_name:
            message += f" (expected in '{source_key}')"
        super().__init__(secret_name, message)
        self.source_key = source_key


class WeakSecretError(PolicyViolation):
    """Secret is shorter than its definition's minimum length."""

    def __init__(self, secret_name: str, actual_length: int, min_length: int) -> None:
        super().__init__(
            secret_name,
            f"Secret is too short: {actual_length} characters, minimum is {min_length}",
        )
        self.actual_length = actual_length
        self.min_length = min_length


class ForbiddenValueError(PolicyViolation):
    """Secret contains a disallowed substring (case-insensitive)."""

    def __init__(self, secret_name: str, matched: str) -> None:
        super().__init__(
            secret_name,
            f"Secret contains forbidden substring '{matched}'",
        )
        self.matched = matched


class SecretReuseError(PolicyViolation):
    """Two or more secrets that must hold distinct values are identical."""

    def __init__(self, secret_names: Iterable[str]) -> None:
        names = list(secret_names)
        super().__init__(
            names[0],
            f"Secrets must have different values: {', '.join(names)}",
        )
        self.secret_names = names


class SecretsLoadError(SecretManagerError):
    """
    Aggregate startup failure raised by SecretsManager.load_all().

    Carries every violation found while resolving the registry so operators
    get one report instead of a fix-one-rerun loop.

    Example:
        >>> try:
        ...     manager.load_all(Environment.PRODUCTION)
        ... except SecretsLoadError as e:
        ...     print(e)
        Failed to load 2 secret(s):
          - JWT_SECRET: MissingSecretError: Required secret is not set
          - DATABASE_PASSWORD: WeakSecretError: Secret is too short: 8 characters, minimum is 16
    """

    def __init__(self, violations: Iterable[SecretManagerError]) -> None:
        self.violations: list[SecretManagerError] = list(violations)
        super().__init__(message=f"Failed to load {len(self.violations)} secret(s)")

    def __str__(self) -> str:
        lines = [f"{self.message}:"]
        for violation in self.violations:
            lines.append(
                f"  - {violation.secret_name or '<unknown>'}: "
                f"{type(violation).__name__}: {violation.message}"
            )
        return "\n".join(lines)
