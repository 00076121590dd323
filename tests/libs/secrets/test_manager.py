"""
Tests for the SecretsManager façade.

This module validates:
1. load_all(): aggregate failure reporting, environment-sensitive severity,
   distinct-value groups, provider error handling, immutable result
2. get_secret(): registry gate, source key mapping, caching, call counts
3. Write passthroughs: validation first, cache invalidation on success AND failure
4. Rotation failures surface unchanged
5. cache_stats(), clear_cache(), close()
"""

import logging
from datetime import timedelta
from unittest.mock import Mock

import pytest

from libs.secrets.cache import SecretCache
from libs.secrets.definitions import DEFAULT_REGISTRY, Environment, SecretDefinition, SecretRegistry
from libs.secrets.env_backend import EnvironmentProvider
from libs.secrets.exceptions import (
    ForbiddenValueError,
    MissingSecretError,
    ProviderUnavailableError,
    SecretManagerError,
    SecretReuseError,
    SecretsLoadError,
    SecretWriteError,
    UnknownSecretError,
    WeakSecretError,
)
from libs.secrets.manager import SecretsManager
from libs.secrets.provider import ProviderHealth, SecretListing, SecretProvider, SecretReference

NEW_REFERENCE = SecretReference(url="https://barbican.example.com/v1/secrets/abc", secret_id="abc")


def _provider(values: dict[str, str]) -> Mock:
    """Mock provider reading from a mutable dict keyed by source key."""
    provider = Mock(spec=SecretProvider)
    provider.backend = "mock"
    provider.find_secret.side_effect = lambda name, refresh=False: values.get(name)
    provider.store_secret.return_value = NEW_REFERENCE
    provider.rotate_secret.return_value = NEW_REFERENCE
    provider.generate_secret.return_value = NEW_REFERENCE
    return provider


@pytest.fixture()
def manager_factory(clock):
    def build(values, environment=Environment.DEVELOPMENT, registry=DEFAULT_REGISTRY):
        return SecretsManager(
            provider=_provider(values),
            registry=registry,
            environment=environment,
            cache=SecretCache(ttl=timedelta(minutes=5), clock=clock),
        )

    return build


# ============================================================================
# LOAD_ALL TESTS
# ============================================================================


class TestLoadAllProduction:
    """Test fail-fast loading in production."""

    @pytest.mark.unit()
    def test_strong_secrets_load(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets, Environment.PRODUCTION)

        loaded = manager.load_all()

        assert loaded["JWT_SECRET"] == strong_secrets["JWT_SECRET"]
        assert loaded["ENCRYPTION_MASTER_KEY"] == strong_secrets["ENCRYPTION_KEY"]
        assert loaded["SMTP_PASSWORD"] is None
        assert manager.loaded is loaded
        assert manager.is_loaded

    @pytest.mark.unit()
    def test_loaded_mapping_is_immutable(self, manager_factory, strong_secrets):
        loaded = manager_factory(strong_secrets, Environment.PRODUCTION).load_all()

        with pytest.raises(TypeError):
            loaded["JWT_SECRET"] = "tampered"  # type: ignore[index]

    @pytest.mark.unit()
    @pytest.mark.parametrize(
        ("source_key", "value", "error_type"),
        [
            ("JWT_SECRET", None, MissingSecretError),
            ("JWT_SECRET", "Zq8xK2mW9vR4nB7pL3jH6fY1cT5gA", WeakSecretError),
            ("JWT_SECRET", "Zq8xK2mW9vR4nB7pL3jH6fY1cT5gA0eUwQsXiOkMdemo", ForbiddenValueError),
            ("ENCRYPTION_KEY", "9f3A7c1E5b8D2a6F0e4C" * 3, WeakSecretError),
            ("DATABASE_PASSWORD", "postgres-Yh7#Kq2!Wm9", ForbiddenValueError),
            ("REDIS_PASSWORD", None, MissingSecretError),
        ],
    )
    def test_single_violation_fails_load(
        self, manager_factory, strong_secrets, source_key, value, error_type
    ):
        """Absent, too short, or forbidden required secrets fail production startup."""
        values = dict(strong_secrets)
        if value is None:
            values.pop(source_key)
        else:
            values[source_key] = value
        manager = manager_factory(values, Environment.PRODUCTION)

        with pytest.raises(SecretsLoadError) as exc_info:
            manager.load_all()

        assert [type(v) for v in exc_info.value.violations] == [error_type]
        assert not manager.is_loaded

    @pytest.mark.unit()
    def test_all_violations_collected(self, manager_factory):
        """Two missing and one short secret yield exactly three violations."""
        registry = SecretRegistry(
            [
                SecretDefinition(name="API_KEY", min_length=16),
                SecretDefinition(name="DB_PASSWORD", min_length=16),
                SecretDefinition(name="SIGNING_KEY", min_length=16),
            ]
        )
        manager = manager_factory({"API_KEY": "short"}, Environment.PRODUCTION, registry)

        with pytest.raises(SecretsLoadError) as exc_info:
            manager.load_all()

        violations = exc_info.value.violations
        assert len(violations) == 3
        assert {(v.secret_name, type(v)) for v in violations} == {
            ("API_KEY", WeakSecretError),
            ("DB_PASSWORD", MissingSecretError),
            ("SIGNING_KEY", MissingSecretError),
        }

    @pytest.mark.unit()
    def test_load_error_enumerates_every_violation(self, manager_factory):
        registry = SecretRegistry(
            [SecretDefinition(name="API_KEY", min_length=16), SecretDefinition(name="DB_PASSWORD")]
        )
        manager = manager_factory({"API_KEY": "short"}, Environment.PRODUCTION, registry)

        with pytest.raises(SecretsLoadError) as exc_info:
            manager.load_all()

        rendered = str(exc_info.value)
        assert rendered.startswith("Failed to load 2 secret(s):")
        assert "  - API_KEY: WeakSecretError: Secret is too short: 5 characters" in rendered
        assert "  - DB_PASSWORD: MissingSecretError: Required secret is not set" in rendered
        assert "short" not in rendered.replace("too short", "")

    @pytest.mark.unit()
    def test_identical_jwt_secrets_rejected(self, manager_factory, strong_secrets):
        """Both keys pass individually but must differ from each other."""
        shared = "Pq3Wn8Zr5Ty2Ux7Vk4Lm9Bh6Cj1Df0GsHaJeKoMiNuQ"
        values = dict(strong_secrets, JWT_SECRET=shared, JWT_REFRESH_SECRET=shared)
        manager = manager_factory(values, Environment.PRODUCTION)

        with pytest.raises(SecretsLoadError) as exc_info:
            manager.load_all()

        (violation,) = exc_info.value.violations
        assert isinstance(violation, SecretReuseError)
        assert violation.secret_names == ["JWT_SECRET", "JWT_REFRESH_SECRET"]

    @pytest.mark.unit()
    def test_provider_error_on_required_secret_collected(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets, Environment.PRODUCTION)
        outage = ProviderUnavailableError("SESSION_SECRET", "mock", "HTTP 503")
        original = manager.provider.find_secret.side_effect

        def find(name, refresh=False):
            if name == "SESSION_SECRET":
                raise outage
            return original(name)

        manager.provider.find_secret.side_effect = find

        with pytest.raises(SecretsLoadError) as exc_info:
            manager.load_all()

        assert exc_info.value.violations == [outage]

    @pytest.mark.unit()
    def test_provider_error_on_optional_secret_treated_as_absent(
        self, manager_factory, strong_secrets, caplog
    ):
        manager = manager_factory(strong_secrets, Environment.PRODUCTION)
        original = manager.provider.find_secret.side_effect

        def find(name, refresh=False):
            if name == "SMTP_PASSWORD":
                raise ProviderUnavailableError("SMTP_PASSWORD", "mock", "timeout")
            return original(name)

        manager.provider.find_secret.side_effect = find

        with caplog.at_level(logging.WARNING):
            loaded = manager.load_all()

        assert loaded["SMTP_PASSWORD"] is None
        assert "optional secret" in caplog.text


class TestLoadAllDevelopment:
    """Test non-production severity."""

    @pytest.fixture()
    def weak_values(self):
        return {
            "JWT_SECRET": "dev-secret-30-chars-short!",
            "JWT_REFRESH_SECRET": "dev-refresh-different-30ch!",
            "ENCRYPTION_KEY": "dev-encryption-key-64-chars" + "x" * 40,
            "SESSION_SECRET": "dev-session-32-chars" + "x" * 44,
            "DATABASE_PASSWORD": "dev-db-pass-1234!",
            "REDIS_PASSWORD": "dev-redis-pass-1234!",
            "LICENSE_MANAGER_DB_PASSWORD": "strong-license-db-pass!",
        }

    @pytest.mark.unit()
    def test_weak_values_returned_unchanged(self, manager_factory, weak_values):
        loaded = manager_factory(weak_values, Environment.DEVELOPMENT).load_all()

        assert loaded["JWT_SECRET"] == weak_values["JWT_SECRET"]
        assert loaded["ENCRYPTION_MASTER_KEY"] == weak_values["ENCRYPTION_KEY"]

    @pytest.mark.unit()
    def test_weak_values_logged_as_warnings(self, manager_factory, weak_values, caplog):
        with caplog.at_level(logging.WARNING):
            manager_factory(weak_values, Environment.DEVELOPMENT).load_all()

        warned = {r.secret_name for r in caplog.records if getattr(r, "outcome", None) == "warned"}
        assert {"JWT_SECRET", "ENCRYPTION_MASTER_KEY", "SESSION_SECRET"} <= warned

    @pytest.mark.unit()
    def test_identical_jwt_secrets_only_warn(self, manager_factory, weak_values, caplog):
        values = dict(weak_values, JWT_REFRESH_SECRET=weak_values["JWT_SECRET"])

        with caplog.at_level(logging.WARNING):
            manager_factory(values, Environment.DEVELOPMENT).load_all()

        assert "must differ" in caplog.text

    @pytest.mark.unit()
    def test_environment_argument_overrides_configured(self, manager_factory, weak_values):
        """load_all('production') applies production rules to a development manager."""
        manager = manager_factory(weak_values, Environment.DEVELOPMENT)

        with pytest.raises(SecretsLoadError):
            manager.load_all("production")

        assert manager.environment is Environment.DEVELOPMENT

    @pytest.mark.unit()
    def test_loaded_before_load_all_raises(self, manager_factory):
        with pytest.raises(SecretManagerError, match="not been loaded"):
            manager_factory({}).loaded


# ============================================================================
# GET_SECRET TESTS
# ============================================================================


class TestGetSecret:
    """Test runtime lookups."""

    @pytest.mark.unit()
    def test_second_call_within_ttl_served_from_cache(self, manager_factory, strong_secrets):
        """Two calls inside the TTL make exactly one provider call."""
        manager = manager_factory(strong_secrets)

        first = manager.get_secret("JWT_SECRET")
        second = manager.get_secret("JWT_SECRET")

        assert first == second == strong_secrets["JWT_SECRET"]
        manager.provider.find_secret.assert_called_once_with("JWT_SECRET")

    @pytest.mark.unit()
    def test_refetch_after_ttl(self, manager_factory, strong_secrets, clock):
        manager = manager_factory(strong_secrets)

        manager.get_secret("JWT_SECRET")
        clock.advance(minutes=6)
        manager.get_secret("JWT_SECRET")

        assert manager.provider.find_secret.call_count == 2

    @pytest.mark.unit()
    def test_load_all_seeds_cache(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets, Environment.PRODUCTION)
        manager.load_all()
        calls_after_load = manager.provider.find_secret.call_count

        assert manager.get_secret("DATABASE_PASSWORD") == strong_secrets["DATABASE_PASSWORD"]
        assert manager.provider.find_secret.call_count == calls_after_load

    @pytest.mark.unit()
    def test_source_key_used_for_provider_lookup(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)

        manager.get_secret("ENCRYPTION_MASTER_KEY")

        manager.provider.find_secret.assert_called_once_with("ENCRYPTION_KEY")

    @pytest.mark.unit()
    def test_unknown_name_raises_without_provider_call(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)

        with pytest.raises(UnknownSecretError, match="JWT_SECRETT"):
            manager.get_secret("JWT_SECRETT")

        manager.provider.find_secret.assert_not_called()

    @pytest.mark.unit()
    def test_optional_secret_absent_returns_none(self, manager_factory, strong_secrets):
        assert manager_factory(strong_secrets).get_secret("SMTP_PASSWORD") is None

    @pytest.mark.unit()
    def test_required_secret_absent_raises(self, manager_factory):
        with pytest.raises(MissingSecretError):
            manager_factory({}).get_secret("DATABASE_PASSWORD")

    @pytest.mark.unit()
    def test_weak_value_rejected_at_runtime_in_production(self, manager_factory, strong_secrets):
        values = dict(strong_secrets, DATABASE_PASSWORD="short")

        with pytest.raises(WeakSecretError):
            manager_factory(values, Environment.PRODUCTION).get_secret("DATABASE_PASSWORD")


# ============================================================================
# WRITE PASSTHROUGH TESTS
# ============================================================================


class TestWritePassthroughs:
    """Test writes and cache invalidation."""

    @pytest.mark.unit()
    def test_set_secret_bypasses_stale_cache(self, manager_factory, strong_secrets):
        values = dict(strong_secrets)
        manager = manager_factory(values)
        manager.get_secret("DATABASE_PASSWORD")
        replacement = "Nw8$Rt3!Lp6#Qz1&"

        def store(name, value, options=None):
            values[name] = value
            return NEW_REFERENCE

        manager.provider.store_secret.side_effect = store

        manager.set_secret("DATABASE_PASSWORD", replacement)

        assert manager.get_secret("DATABASE_PASSWORD") == replacement
        assert manager.provider.find_secret.call_count == 2
        manager.provider.invalidate.assert_called_with("DATABASE_PASSWORD")

    @pytest.mark.unit()
    def test_set_secret_validates_before_writing(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets, Environment.PRODUCTION)

        with pytest.raises(WeakSecretError):
            manager.set_secret("DATABASE_PASSWORD", "short")

        manager.provider.store_secret.assert_not_called()

    @pytest.mark.unit()
    def test_set_secret_rejects_empty_value(self, manager_factory, strong_secrets):
        with pytest.raises(MissingSecretError):
            manager_factory(strong_secrets).set_secret("DATABASE_PASSWORD", "")

    @pytest.mark.unit()
    def test_set_secret_uses_source_key(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)
        new_key = "8e2B6d0F4a9C1e5A3b7D" * 7

        manager.set_secret("ENCRYPTION_MASTER_KEY", new_key)

        manager.provider.store_secret.assert_called_once_with("ENCRYPTION_KEY", new_key, None)

    @pytest.mark.unit()
    def test_writes_reject_unknown_names(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)

        with pytest.raises(UnknownSecretError):
            manager.delete_secret("NOT_REGISTERED")
        with pytest.raises(UnknownSecretError):
            manager.generate_secret("NOT_REGISTERED")

    @pytest.mark.unit()
    def test_delete_invalidates_cache(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)
        manager.get_secret("JWT_SECRET")

        manager.delete_secret("JWT_SECRET")

        assert manager.cache.get("JWT_SECRET") is None
        manager.provider.delete_secret.assert_called_once_with("JWT_SECRET")

    @pytest.mark.unit()
    def test_failed_delete_still_invalidates_cache(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)
        manager.get_secret("JWT_SECRET")
        manager.provider.delete_secret.side_effect = SecretWriteError("JWT_SECRET", "mock", "HTTP 403")

        with pytest.raises(SecretWriteError):
            manager.delete_secret("JWT_SECRET")

        assert manager.cache.get("JWT_SECRET") is None

    @pytest.mark.unit()
    def test_rotation_delete_failure_surfaces(self, manager_factory, strong_secrets):
        """A rotation whose delete step fails raises the provider error unchanged."""
        manager = manager_factory(strong_secrets)
        manager.get_secret("DATABASE_PASSWORD")
        failure = ProviderUnavailableError("DATABASE_PASSWORD", "mock", "delete returned HTTP 503")
        manager.provider.rotate_secret.side_effect = failure

        with pytest.raises(ProviderUnavailableError) as exc_info:
            manager.rotate_secret("DATABASE_PASSWORD", "Nw8$Rt3!Lp6#Qz1&")

        assert exc_info.value is failure
        assert manager.cache.get("DATABASE_PASSWORD") is None

    @pytest.mark.unit()
    def test_rotate_forwards_ordering_option(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)

        reference = manager.rotate_secret("DATABASE_PASSWORD", "Nw8$Rt3!Lp6#Qz1&", store_first=True)

        assert reference is NEW_REFERENCE
        manager.provider.rotate_secret.assert_called_once_with(
            "DATABASE_PASSWORD", "Nw8$Rt3!Lp6#Qz1&", store_first=True
        )

    @pytest.mark.integration()
    def test_rotate_store_first_with_environment_provider(self, strong_env):
        """The ordering option is part of every provider's rotate contract."""
        manager = SecretsManager(EnvironmentProvider())
        manager.get_secret("DATABASE_PASSWORD")

        manager.rotate_secret("DATABASE_PASSWORD", "Nw8$Rt3!Lp6#Qz1&", store_first=True)

        assert manager.get_secret("DATABASE_PASSWORD") == "Nw8$Rt3!Lp6#Qz1&"

    @pytest.mark.unit()
    def test_rotate_validates_new_value(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets, Environment.PRODUCTION)

        with pytest.raises(ForbiddenValueError):
            manager.rotate_secret("DATABASE_PASSWORD", "admin-Nw8$Rt3!Lp6#Qz1&")

        manager.provider.rotate_secret.assert_not_called()

    @pytest.mark.unit()
    def test_generate_secret_invalidates_cache(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)
        manager.get_secret("SESSION_SECRET")

        assert manager.generate_secret("SESSION_SECRET") is NEW_REFERENCE
        assert manager.cache.get("SESSION_SECRET") is None


# ============================================================================
# PASSTHROUGH / LIFECYCLE TESTS
# ============================================================================


class TestManagerLifecycle:
    """Test list/health passthroughs, stats and close()."""

    @pytest.mark.unit()
    def test_list_and_health_delegate_to_provider(self, manager_factory):
        manager = manager_factory({})
        listing = [SecretListing(name="JWT_SECRET", reference="env:JWT_SECRET")]
        health = ProviderHealth(status="healthy", provider="mock", authenticated=True)
        manager.provider.list_secrets.return_value = listing
        manager.provider.health_check.return_value = health

        assert manager.list_secrets(limit=5) == listing
        assert manager.health_check() is health
        manager.provider.list_secrets.assert_called_once_with(limit=5)

    @pytest.mark.unit()
    def test_cache_stats(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)
        manager.get_secret("JWT_SECRET")

        assert manager.cache_stats() == {"size": 1, "provider": "mock", "ttl_seconds": 300.0}

    @pytest.mark.unit()
    def test_clear_cache_clears_both_levels(self, manager_factory, strong_secrets):
        manager = manager_factory(strong_secrets)
        manager.get_secret("JWT_SECRET")

        manager.clear_cache()

        assert len(manager.cache) == 0
        manager.provider.clear_cache.assert_called_once()

    @pytest.mark.unit()
    def test_context_manager_closes_provider(self, manager_factory, strong_secrets):
        with manager_factory(strong_secrets) as manager:
            manager.get_secret("JWT_SECRET")

        manager.provider.close.assert_called_once()
        assert len(manager.cache) == 0
