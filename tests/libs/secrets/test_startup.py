"""
Tests for load_secrets_or_exit() startup entry point.

This module validates:
1. Successful load returns the immutable secret set
2. Any violation exits the process with status 1 and a readable enumeration
3. Loaded values are registered with the redaction filter
4. The default manager is built from the process environment
"""

import logging

import pytest

from libs.common.logging import SecretRedactionFilter
from libs.secrets.definitions import Environment
from libs.secrets.env_backend import EnvironmentProvider
from libs.secrets.manager import SecretsManager
from libs.secrets.startup import load_secrets_or_exit


@pytest.fixture()
def manager():
    return SecretsManager(EnvironmentProvider(), environment=Environment.PRODUCTION)


class TestLoadSecretsOrExit:
    """Test startup behaviour."""

    @pytest.mark.integration()
    def test_returns_loaded_secrets(self, manager, strong_env):
        secrets = load_secrets_or_exit(manager)

        assert secrets["JWT_SECRET"] == strong_env["JWT_SECRET"]
        assert secrets["SMTP_PASSWORD"] is None

    @pytest.mark.integration()
    def test_exits_with_status_one_and_enumeration(self, manager, strong_env, monkeypatch, capsys):
        monkeypatch.delenv("JWT_SECRET")
        monkeypatch.setenv("DATABASE_PASSWORD", "short")

        with pytest.raises(SystemExit) as exc_info:
            load_secrets_or_exit(manager)

        assert exc_info.value.code == 1
        stderr = capsys.readouterr().err
        assert "Failed to load 2 secret(s):" in stderr
        assert "- JWT_SECRET: MissingSecretError" in stderr
        assert "- DATABASE_PASSWORD: WeakSecretError" in stderr

    @pytest.mark.integration()
    def test_environment_override(self, strong_env, monkeypatch, caplog):
        """The failure is reported under the overriding environment."""
        monkeypatch.setenv("DATABASE_PASSWORD", "short")
        manager = SecretsManager(EnvironmentProvider(), environment=Environment.DEVELOPMENT)

        with caplog.at_level(logging.CRITICAL), pytest.raises(SystemExit):
            load_secrets_or_exit(manager, environment="prod")

        (record,) = [r for r in caplog.records if r.levelno == logging.CRITICAL]
        assert record.environment == "production"
        assert record.failed_secrets == ["DATABASE_PASSWORD"]

    @pytest.mark.integration()
    def test_registers_values_for_redaction(self, manager, strong_env):
        redaction = SecretRedactionFilter()

        load_secrets_or_exit(manager, redaction_filter=redaction)

        assert len(redaction) == len(strong_env)
        assert redaction.redact(f"token={strong_env['JWT_SECRET']}") == "token=***REDACTED***"

    @pytest.mark.integration()
    def test_default_manager_built_from_settings(self, strong_env, monkeypatch):
        monkeypatch.setenv("DEPLOYMENT_ENV", "production")

        secrets = load_secrets_or_exit()

        assert secrets["DATABASE_PASSWORD"] == strong_env["DATABASE_PASSWORD"]
