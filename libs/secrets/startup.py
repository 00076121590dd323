"""
Fail-fast secret loading for process startup.

Call load_secrets_or_exit() before any other subsystem that needs a secret.
If any secret violates policy or cannot be fetched, the process exits with
status 1 after printing every failing secret and why to stderr.

Example:
    >>> from libs.common.logging import SecretRedactionFilter, configure_logging
    >>> redaction = SecretRedactionFilter()
    >>> configure_logging("payroll_api", redaction_filter=redaction)
    >>> secrets = load_secrets_or_exit(redaction_filter=redaction)
    >>> secrets["JWT_SECRET"]
"""

import logging
import sys
from collections.abc import Mapping

from libs.common.logging import SecretRedactionFilter
from libs.secrets.definitions import Environment
from libs.secrets.exceptions import SecretsLoadError
from libs.secrets.factory import create_secrets_manager
from libs.secrets.manager import SecretsManager

logger = logging.getLogger(__name__)


def load_secrets_or_exit(
    manager: SecretsManager | None = None,
    environment: Environment | str | None = None,
    redaction_filter: SecretRedactionFilter | None = None,
) -> Mapping[str, str | None]:
    """
    Load and validate every registered secret, or terminate the process.

    Args:
        manager: SecretsManager to load with; built from SecretsSettings if None
        environment: Overrides the manager's environment
        redaction_filter: Receives every loaded value so logs can mask it

    Returns:
        Read-only mapping of secret name → value

    Raises:
        SystemExit: With code 1 on SecretsLoadError
    """
    manager = manager or create_secrets_manager()
    effective_env = (
        Environment.parse(environment) if environment is not None else manager.environment
    )
    try:
        secrets = manager.load_all(effective_env)
    except SecretsLoadError as e:
        logger.critical(
            "Refusing to start: secrets failed validation",
            extra={
                "environment": effective_env.value,
                "violation_count": len(e.violations),
                "failed_secrets": [v.secret_name for v in e.violations],
            },
        )
        print(str(e), file=sys.stderr)
        sys.exit(1)

    if redaction_filter is not None:
        redaction_filter.register_all(secrets.values())
    return secrets
