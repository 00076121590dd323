"""
Secret strength validation.

Pure checks of a candidate value against a SecretDefinition's policy. Hard
rules (presence, minimum length, forbidden substrings) raise in production
and warn elsewhere; low-entropy heuristics only ever warn.

Every check outcome is logged with the secret NAME only, never the value.

Example:
    >>> from libs.secrets.definitions import DEFAULT_REGISTRY, Environment
    >>> definition = DEFAULT_REGISTRY["DATABASE_PASSWORD"]
    >>> validate_secret("DATABASE_PASSWORD", "postgres", definition, Environment.DEVELOPMENT)
    'postgres'
    >>> validate_secret("DATABASE_PASSWORD", "postgres", definition, Environment.PRODUCTION)
    Traceback (most recent call last):
    ...
    WeakSecretError: Secret is too short: 8 characters, minimum is 16 (secret: DATABASE_PASSWORD)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from libs.secrets.definitions import Environment, SecretDefinition, SecretRegistry
from libs.secrets.exceptions import (
    ForbiddenValueError,
    MissingSecretError,
    SecretReuseError,
    WeakSecretError,
)

logger = logging.getLogger(__name__)

_REPEATED_RUN = re.compile(r"(.)\1{3,}")
_WEAK_PREFIXES = ("test", "dev", "demo", "temp", "default", "changeme")
_SEQUENCE_LENGTH = 4
_MIN_DISTINCT_RATIO = 0.25


def validate_secret(
    name: str,
    value: str | None,
    definition: SecretDefinition,
    environment: Environment,
) -> str | None:
    """
    Check a secret value against its definition's policy.

    Args:
        name: Logical secret name (used only for diagnostics)
        value: Candidate value; None or "" means not configured
        definition: Policy to enforce
        environment: Active environment; production turns hard-rule
            violations into exceptions

    Returns:
        The value unchanged, or None when an optional secret is not configured
        (or a required one is absent outside enforcement).

    Raises:
        MissingSecretError: Required value absent and enforcement applies
        WeakSecretError: Shorter than min_length in production
        ForbiddenValueError: Contains a forbidden substring in production
    """
    if not value:
        if definition.required and (environment.is_production or definition.enforce_in_production):
            _log_outcome(name, "presence", "failed", environment)
            raise MissingSecretError(name, definition.source_key)
        if definition.required:
            _log_outcome(name, "presence", "warned", environment)
        else:
            _log_outcome(name, "presence", "not_configured", environment, level=logging.DEBUG)
        return None

    enforcing = environment.is_production and definition.enforce_in_production

    if len(value) < definition.min_length:
        if enforcing:
            _log_outcome(name, "min_length", "failed", environment)
            raise WeakSecretError(name, len(value), definition.min_length)
        _log_outcome(
            name,
            "min_length",
            "warned",
            environment,
            actual_length=len(value),
            min_length=definition.min_length,
        )
    else:
        _log_outcome(name, "min_length", "passed", environment, level=logging.DEBUG)

    matched = find_forbidden_substring(value, definition)
    if matched is not None:
        if enforcing:
            _log_outcome(name, "forbidden_substrings", "failed", environment)
            raise ForbiddenValueError(name, matched)
        _log_outcome(name, "forbidden_substrings", "warned", environment, matched=matched)
    else:
        _log_outcome(name, "forbidden_substrings", "passed", environment, level=logging.DEBUG)

    for finding in entropy_warnings(value):
        _log_outcome(name, "entropy", "warned", environment, finding=finding)

    return value


def validate_distinct(
    registry: SecretRegistry,
    values: Mapping[str, str | None],
    environment: Environment,
) -> list[SecretReuseError]:
    """
    Check every distinct group of the registry against resolved values.

    Groups are compared only when every member resolved to a value. Outside
    production duplicates are logged and no errors are returned.

    Returns:
        One SecretReuseError per group whose members share a value (production only)
    """
    errors: list[SecretReuseError] = []
    for group in registry.distinct_groups:
        resolved = [values.get(name) for name in group]
        if any(not value for value in resolved):
            continue
        if len(set(resolved)) == len(resolved):
            continue

        if environment.is_production:
            logger.error(
                "Secrets that must differ share a value",
                extra={"secret_names": list(group), "environment": environment.value},
            )
            errors.append(SecretReuseError(group))
        else:
            logger.warning(
                "Secrets that must differ share a value",
                extra={"secret_names": list(group), "environment": environment.value},
            )
    return errors


def find_forbidden_substring(value: str, definition: SecretDefinition) -> str | None:
    """Return the first forbidden substring found in value (sorted for determinism)."""
    lowered = value.lower()
    for candidate in sorted(definition.forbidden_substrings):
        if candidate in lowered:
            return candidate
    return None


def entropy_warnings(value: str) -> list[str]:
    """
    Advisory low-entropy findings for a value.

    Never enforced, even in production.
    """
    findings: list[str] = []
    if _REPEATED_RUN.search(value):
        findings.append("repeated_characters")
    if value.lower().startswith(_WEAK_PREFIXES):
        findings.append("weak_prefix")
    if _has_sequential_run(value, _SEQUENCE_LENGTH):
        findings.append("sequential_characters")
    if len(value) >= 16 and len(set(value)) / len(value) < _MIN_DISTINCT_RATIO:
        findings.append("low_character_diversity")
    return findings


def _has_sequential_run(value: str, length: int) -> bool:
    # Ascending digit or letter runs such as "1234" or "abcd"
    run = 1
    for previous, current in zip(value, value[1:], strict=False):
        same_class = (previous.isdigit() and current.isdigit()) or (
            previous.isalpha() and current.isalpha()
        )
        if same_class and ord(current.lower()) - ord(previous.lower()) == 1:
            run += 1
            if run >= length:
                return True
        else:
            run = 1
    return False


def _log_outcome(
    name: str,
    check: str,
    outcome: str,
    environment: Environment,
    level: int | None = None,
    **context: object,
) -> None:
    if level is None:
        level = {
            "failed": logging.ERROR,
            "warned": logging.WARNING,
        }.get(outcome, logging.INFO)
    logger.log(
        level,
        "Secret validation %s: %s",
        outcome,
        check,
        extra={
            "secret_name": name,
            "check": check,
            "outcome": outcome,
            "environment": environment.value,
            **context,
        },
    )
