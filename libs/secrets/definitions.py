"""
Secret Definition Registry.

Static table of every secret the process needs, with the validation policy
for each one. Loaded once at import, never mutated.

Example:
    >>> from libs.secrets.definitions import DEFAULT_REGISTRY
    >>> DEFAULT_REGISTRY["ENCRYPTION_MASTER_KEY"].source_key
    'ENCRYPTION_KEY'
    >>> "JWT_SECRET" in DEFAULT_REGISTRY
    True
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType


class Environment(StrEnum):
    """Deployment environment. Only production escalates policy warnings to errors."""

    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    TEST = "test"

    @classmethod
    def parse(cls, value: str | Environment) -> Environment:
        """Parse an environment name, accepting the short aliases used in deploy configs."""
        if isinstance(value, Environment):
            return value
        normalized = value.strip().lower()
        normalized = _ENVIRONMENT_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Invalid environment '{value}'. Valid options: {valid}") from None

    @property
    def is_production(self) -> bool:
        return self is Environment.PRODUCTION


_ENVIRONMENT_ALIASES = {
    "prod": "production",
    "dev": "development",
    "local": "development",
}


@dataclass(frozen=True)
class SecretDefinition:
    """
    Validation policy for one secret.

    Attributes:
        name: Unique logical key (e.g., "JWT_SECRET")
        source_key: External variable/label the value is read from
        required: Fetch failure or absence is fatal
        min_length: Minimum acceptable character length
        enforce_in_production: Violations raise in production (warn elsewhere)
        forbidden_substrings: Case-insensitive substrings that disqualify a value
        description: Human-readable purpose, used only in diagnostics
    """

    name: str
    source_key: str = ""
    required: bool = True
    min_length: int = 0
    enforce_in_production: bool = True
    forbidden_substrings: frozenset[str] = field(default_factory=frozenset)
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("SecretDefinition.name must be non-empty")
        if self.min_length < 0:
            raise ValueError(f"min_length must be >= 0 for {self.name}")
        if not self.source_key:
            object.__setattr__(self, "source_key", self.name)
        # Normalize once so matching is a plain lowercase containment test
        object.__setattr__(
            self,
            "forbidden_substrings",
            frozenset(s.lower() for s in self.forbidden_substrings if s),
        )


class SecretRegistry(Mapping[str, SecretDefinition]):
    """
    Immutable, name-keyed collection of SecretDefinitions.

    Also records groups of secrets whose values must differ from each other
    (e.g., access and refresh token signing keys).

    Raises:
        ValueError: Duplicate definition name, or a distinct group referencing
            an unregistered name
    """

    def __init__(
        self,
        definitions: Iterable[SecretDefinition],
        distinct_groups: Iterable[Iterable[str]] = (),
    ) -> None:
        by_name: dict[str, SecretDefinition] = {}
        for definition in definitions:
            if definition.name in by_name:
                raise ValueError(f"Duplicate secret definition: {definition.name}")
            by_name[definition.name] = definition
        self._definitions = MappingProxyType(by_name)

        groups = tuple(tuple(group) for group in distinct_groups)
        for group in groups:
            unknown = [name for name in group if name not in by_name]
            if unknown:
                raise ValueError(f"Distinct group references unknown secrets: {unknown}")
            if len(group) < 2:
                raise ValueError(f"Distinct group needs at least two secrets: {group}")
        self._distinct_groups = groups

    def __getitem__(self, name: str) -> SecretDefinition:
        return self._definitions[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __repr__(self) -> str:
        return f"SecretRegistry({list(self._definitions)})"

    @property
    def distinct_groups(self) -> tuple[tuple[str, ...], ...]:
        return self._distinct_groups


_TOKEN_FORBIDDEN = frozenset({"test", "dev", "demo", "example", "secret", "password", "changeme"})
_KEY_FORBIDDEN = frozenset({"default", "test", "example", "changeme", "password"})
_PASSWORD_FORBIDDEN = frozenset({"password", "admin", "root", "test", "postgres", "changeme"})


DEFAULT_REGISTRY = SecretRegistry(
    [
        SecretDefinition(
            name="JWT_SECRET",
            min_length=43,
            forbidden_substrings=_TOKEN_FORBIDDEN,
            description="Signing key for access tokens",
        ),
        SecretDefinition(
            name="JWT_REFRESH_SECRET",
            min_length=43,
            forbidden_substrings=_TOKEN_FORBIDDEN,
            description="Signing key for refresh tokens (must differ from JWT_SECRET)",
        ),
        SecretDefinition(
            name="ENCRYPTION_MASTER_KEY",
            source_key="ENCRYPTION_KEY",
            min_length=128,
            forbidden_substrings=_KEY_FORBIDDEN,
            description="Master key for field-level encryption at rest",
        ),
        SecretDefinition(
            name="SESSION_SECRET",
            min_length=64,
            forbidden_substrings=_TOKEN_FORBIDDEN,
            description="Cookie session signing secret",
        ),
        SecretDefinition(
            name="DATABASE_PASSWORD",
            min_length=16,
            forbidden_substrings=_PASSWORD_FORBIDDEN,
            description="Primary relational database password",
        ),
        SecretDefinition(
            name="REDIS_PASSWORD",
            min_length=16,
            forbidden_substrings=_PASSWORD_FORBIDDEN,
            description="Cache/queue Redis password",
        ),
        SecretDefinition(
            name="LICENSE_MANAGER_DB_PASSWORD",
            min_length=16,
            forbidden_substrings=_PASSWORD_FORBIDDEN,
            description="License manager database password",
        ),
        SecretDefinition(
            name="SMTP_PASSWORD",
            required=False,
            min_length=12,
            enforce_in_production=False,
            forbidden_substrings=_PASSWORD_FORBIDDEN,
            description="Outbound mail relay password (email features disabled when unset)",
        ),
    ],
    distinct_groups=[("JWT_SECRET", "JWT_REFRESH_SECRET")],
)
