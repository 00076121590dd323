"""
Identity session for the remote vault.

The vault accepts requests only with a short-lived token issued by a
separate identity service (Keystone-style ``POST /auth/tokens``). This module
acquires that token, caches it until shortly before its declared expiry, and
re-authenticates synchronously when it runs out. The token authenticates the
secrets subsystem itself, not the application, and is never an application
secret.

State machine:
    UNAUTHENTICATED --authenticate()--> AUTHENTICATED
    AUTHENTICATED --(now >= expires_at)--> EXPIRING --get_token()--> AUTHENTICATED
    any --invalidate()--> UNAUTHENTICATED

``expires_at`` already has the safety buffer subtracted, so a token past it is
never handed out even though the server would still accept it for a moment.

Thread Safety:
    get_token() is single-flight: concurrent callers that find the token
    stale wait on one lock, and only the first performs the exchange.

Usage Example:
    >>> session = AuthSessionManager(
    ...     auth_url="https://keystone.example.com/v3",
    ...     username="svc-secrets",
    ...     password="...",
    ...     project_id="0f1e2d3c",
    ... )
    >>> token = session.get_token()
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

import httpx

from libs.secrets.cache import Clock, utc_now
from libs.secrets.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Subject-Token"
DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


class SessionState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"


@dataclass(frozen=True)
class AuthSession:
    """
    A bearer token and its buffered expiry.

    Attributes:
        token: Opaque bearer value
        expires_at: Server-declared expiry minus the safety buffer
    """

    token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class AuthSessionManager:
    """
    Acquires and caches the identity token used for vault requests.

    Attributes:
        auth_url: Identity API base URL (``/auth/tokens`` is appended)
        project_id: Project scope requested for the token
        expiry_buffer: Subtracted from the server-declared expiry
    """

    def __init__(
        self,
        auth_url: str,
        username: str,
        password: str,
        project_id: str,
        user_domain_name: str = "Default",
        http_client: httpx.Client | None = None,
        timeout_seconds: float = 10.0,
        expiry_buffer: timedelta = timedelta(seconds=60),
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize the session manager (no network I/O until get_token()).

        Args:
            auth_url: Identity base URL (e.g., "https://keystone.example.com/v3")
            username: Identity user name
            password: Identity password (kept in memory only, never logged)
            project_id: Project to scope the token to
            user_domain_name: Domain of the user (default: "Default")
            http_client: Optional shared httpx client; one is created if omitted
            timeout_seconds: Per-request timeout for the token exchange
            expiry_buffer: Safety margin before declared token expiry
            clock: Current-time source (aware UTC datetime)

        Raises:
            ValueError: Missing auth_url, project_id, or credentials
        """
        if not auth_url:
            raise ValueError("Identity auth_url is required")
        if not project_id:
            raise ValueError("Identity project_id is required")
        if not username or not password:
            raise ValueError("Identity username and password are required")

        self.auth_url = auth_url.rstrip("/")
        self.project_id = project_id
        self.expiry_buffer = expiry_buffer
        self._username = username
        self._password = password
        self._user_domain_name = user_domain_name
        self._clock = clock
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout_seconds)
        self._timeout = timeout_seconds
        self._session: AuthSession | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        session = self._session
        if session is None:
            return SessionState.UNAUTHENTICATED
        if session.is_valid(self._clock()):
            return SessionState.AUTHENTICATED
        return SessionState.EXPIRING

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def get_token(self) -> str:
        """
        Return a token that is valid for at least the buffer window.

        Returns the cached token when fresh; otherwise performs the token
        exchange synchronously before returning.

        Raises:
            AuthenticationError: Network error, non-2xx response, or no token header
        """
        session = self._session
        if session is not None and session.is_valid(self._clock()):
            return session.token

        with self._lock:
            # Another caller may have refreshed while we waited
            session = self._session
            if session is not None and session.is_valid(self._clock()):
                return session.token

            self._session = self._authenticate()
            return self._session.token

    def invalidate(self) -> None:
        """Drop the cached token so the next get_token() re-authenticates."""
        with self._lock:
            self._session = None
        logger.info(
            "Identity session invalidated",
            extra={"auth_url": self.auth_url, "project_id": self.project_id},
        )

    def close(self) -> None:
        self._session = None
        if self._owns_client:
            self._client.close()

    def _authenticate(self) -> AuthSession:
        url = f"{self.auth_url}/auth/tokens"
        try:
            response = self._client.post(
                url,
                json=self._auth_body(),
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise AuthenticationError(
                secret_name="identity_token",
                backend="vault",
                reason=f"Identity endpoint timed out after {self._timeout}s",
            ) from e
        except httpx.HTTPError as e:
            raise AuthenticationError(
                secret_name="identity_token",
                backend="vault",
                reason=f"Identity endpoint unreachable at {self.auth_url}: {e}",
            ) from e

        if not response.is_success:
            logger.error(
                "Identity token exchange rejected",
                extra={
                    "auth_url": self.auth_url,
                    "project_id": self.project_id,
                    "status_code": response.status_code,
                },
            )
            raise AuthenticationError(
                secret_name="identity_token",
                backend="vault",
                reason=f"Identity endpoint returned HTTP {response.status_code}",
            )

        token = response.headers.get(TOKEN_HEADER)
        if not token:
            raise AuthenticationError(
                secret_name="identity_token",
                backend="vault",
                reason=f"Identity response missing {TOKEN_HEADER} header",
            )

        now = self._clock()
        declared_expiry = self._parse_expiry(response, now)
        lifetime = declared_expiry - now
        if lifetime <= timedelta(0):
            raise AuthenticationError(
                secret_name="identity_token",
                backend="vault",
                reason="Identity endpoint issued an already-expired token",
            )
        # Short-lived tokens keep half their lifetime usable
        buffer = min(self.expiry_buffer, lifetime / 2)
        session = AuthSession(token=token, expires_at=declared_expiry - buffer)

        logger.info(
            "Authenticated with identity endpoint",
            extra={
                "auth_url": self.auth_url,
                "project_id": self.project_id,
                "expires_at": session.expires_at.isoformat(),
            },
        )
        return session

    def _auth_body(self) -> dict[str, Any]:
        return {
            "auth": {
                "identity": {
                    "methods": ["password"],
                    "password": {
                        "user": {
                            "name": self._username,
                            "domain": {"name": self._user_domain_name},
                            "password": self._password,
                        }
                    },
                },
                "scope": {"project": {"id": self.project_id}},
            }
        }

    def _parse_expiry(self, response: httpx.Response, now: datetime) -> datetime:
        try:
            expires_raw = response.json()["token"]["expires_at"]
            expires_at = datetime.fromisoformat(expires_raw.replace("Z", "+00:00"))
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.warning(
                "Identity response has no usable expiry, assuming default lifetime",
                extra={
                    "auth_url": self.auth_url,
                    "lifetime_seconds": DEFAULT_TOKEN_LIFETIME.total_seconds(),
                },
            )
            return now + DEFAULT_TOKEN_LIFETIME

        if expires_at.tzinfo is None:
            raise AuthenticationError(
                secret_name="identity_token",
                backend="vault",
                reason="Identity token expiry has no timezone",
            )
        return expires_at
