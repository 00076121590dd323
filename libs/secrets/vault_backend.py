"""
Remote Vault Secret Provider.

This module implements VaultProvider, the production secrets backend. It talks
to a Barbican-style vault over HTTP using httpx, with a token obtained from
the identity service by AuthSessionManager.

Architecture:
    - Token from AuthSessionManager before every network call (cached, buffered expiry)
    - Name → SecretReference resolution: canonical UUIDs are used directly,
      anything else is looked up with ``GET /secrets?name=<name>`` (first match)
    - Payload fetch: ``GET <secret_ref>/payload`` (Accept: text/plain)
    - Store/generate: ``POST /secrets``; delete: ``DELETE <secret_ref>``
    - Provider-local SecretCache (constructor-injected) with configurable TTL
    - Every request carries a timeout; no automatic retries

Error mapping:
    - Timeouts / transport errors / HTTP 5xx → ProviderUnavailableError
    - HTTP 401 → session invalidated, AuthenticationError
    - HTTP 403 → SecretAccessError (reads) / SecretWriteError (writes)
    - No lookup match / HTTP 404 → SecretNotFoundError

Security Considerations:
    - Secret values NEVER logged (only names and references)
    - Generated secrets are created vault-side; no plaintext transits the client

Usage Example:
    >>> session = AuthSessionManager(auth_url=..., username=..., password=..., project_id=...)
    >>> provider = VaultProvider(endpoint="https://barbican.example.com/v1", session=session)
    >>> jwt_secret = provider.get_secret("JWT_SECRET")
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import httpx

from libs.secrets.auth_session import AuthSessionManager
from libs.secrets.cache import SecretCache
from libs.secrets.exceptions import (
    AuthenticationError,
    ProviderUnavailableError,
    SecretAccessError,
    SecretManagerError,
    SecretNotFoundError,
    SecretWriteError,
)
from libs.secrets.provider import (
    ProviderHealth,
    SecretListing,
    SecretOptions,
    SecretProvider,
    SecretReference,
    is_uuid,
)

logger = logging.getLogger(__name__)

AUTH_HEADER = "X-Auth-Token"


class VaultProvider(SecretProvider):
    """
    Remote vault secrets backend for staging and production.

    Thread Safety:
        Safe for concurrent use. The provider cache is lock-protected and
        last-writer-wins; concurrent misses may fetch the same secret twice,
        which is harmless because fetches are idempotent.

    Example:
        >>> provider.store_secret("DB_PASSWORD", "n3w-Rand0m-value-9f2c")
        SecretReference(url='https://barbican.example.com/v1/secrets/…', secret_id='…')
        >>> provider.rotate_secret("DB_PASSWORD", "an0ther-Rand0m-value-77aa")
    """

    backend = "vault"

    def __init__(
        self,
        endpoint: str,
        session: AuthSessionManager,
        http_client: httpx.Client | None = None,
        cache: SecretCache | None = None,
        cache_ttl: timedelta = timedelta(minutes=5),
        timeout_seconds: float = 10.0,
    ) -> None:
        """
        Initialize VaultProvider (no network I/O until the first call).

        Args:
            endpoint: Vault API base URL including version (e.g., "https://barbican.example.com/v1")
            session: Identity session supplying tokens
            http_client: Optional shared httpx client; one is created if omitted
            cache: Provider-local cache; one is created with cache_ttl if omitted
            cache_ttl: TTL for the created cache (ignored when cache is given)
            timeout_seconds: Per-request timeout

        Raises:
            ValueError: endpoint is empty
        """
        if not endpoint:
            raise ValueError("Vault endpoint is required")
        self.endpoint = endpoint.rstrip("/")
        self._session = session
        self._cache = cache if cache is not None else SecretCache(ttl=cache_ttl)
        self._timeout = timeout_seconds
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout_seconds)

    @property
    def cache(self) -> SecretCache:
        return self._cache

    @property
    def session(self) -> AuthSessionManager:
        return self._session

    def get_secret(self, name: str, refresh: bool = False) -> str:
        """
        Retrieve a secret from the vault.

        Checks the provider cache first unless refresh is set, then resolves
        the reference and fetches the payload.

        Args:
            name: Secret name or canonical UUID
            refresh: Bypass the cache and re-fetch

        Returns:
            Secret payload as text

        Raises:
            SecretNotFoundError: No secret with that name/identifier
            AuthenticationError: Identity exchange failed or token rejected
            ProviderUnavailableError: Vault unreachable, timed out, or 5xx
            SecretAccessError: Permission denied or malformed response
        """
        return self.require_secret(name, refresh=refresh)

    def find_secret(self, name: str, refresh: bool = False) -> str | None:
        if not refresh:
            cached_value = self._cache.get(name)
            if cached_value is not None:
                logger.debug(
                    "Secret cache hit",
                    extra={"secret_name": name, "backend": self.backend},
                )
                return cached_value

        token = self._session.get_token()
        reference = self._resolve_reference(name, token)
        if reference is None:
            logger.info(
                "Secret not found in vault",
                extra={"secret_name": name, "backend": self.backend},
            )
            return None

        response = self._request(
            "GET",
            f"{reference.url}/payload",
            token,
            name,
            headers={"Accept": "text/plain"},
        )
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise SecretAccessError(
                secret_name=name,
                backend=self.backend,
                reason=f"Payload fetch returned HTTP {response.status_code}",
            )

        value = response.text
        self._cache.set(name, value)
        logger.info(
            "Secret loaded from vault",
            extra={
                "secret_name": name,
                "secret_ref": reference.url,
                "backend": self.backend,
            },
        )
        return value

    def store_secret(
        self,
        name: str,
        value: str,
        options: SecretOptions | None = None,
    ) -> SecretReference:
        """
        Store a secret payload under name.

        Side Effects:
            - Invalidates the provider cache entry for name

        Raises:
            SecretWriteError: Vault rejected the write
            AuthenticationError / ProviderUnavailableError: As for get_secret
        """
        options = options or SecretOptions()
        body = self._secret_body(name, options, default_type="opaque")
        body["payload"] = value
        body["payload_content_type"] = options.payload_content_type

        reference = self._create(name, body)
        logger.info(
            "Secret stored in vault",
            extra={"secret_name": name, "secret_ref": reference.url, "backend": self.backend},
        )
        return reference

    def generate_secret(
        self,
        name: str,
        options: SecretOptions | None = None,
    ) -> SecretReference:
        """
        Ask the vault to generate a secret per the requested algorithm/bit length.

        The request carries no payload: the value is created vault-side and
        never transits the client.
        """
        options = options or SecretOptions()
        body = self._secret_body(name, options, default_type="symmetric")

        reference = self._create(name, body)
        logger.info(
            "Secret generated in vault",
            extra={
                "secret_name": name,
                "secret_ref": reference.url,
                "algorithm": options.algorithm,
                "bit_length": options.bit_length,
                "backend": self.backend,
            },
        )
        return reference

    def delete_secret(self, name: str) -> None:
        """
        Delete the secret stored under name.

        Raises:
            SecretNotFoundError: No secret with that name/identifier
            SecretWriteError: Vault rejected the delete
        """
        try:
            token = self._session.get_token()
            reference = self._resolve_reference(name, token)
            if reference is None:
                raise SecretNotFoundError(
                    secret_name=name,
                    backend=self.backend,
                    additional_context="Nothing to delete",
                )
            self._delete_reference(name, reference, token)
        finally:
            self._cache.invalidate(name)

        logger.info(
            "Secret deleted from vault",
            extra={"secret_name": name, "secret_ref": reference.url, "backend": self.backend},
        )

    def rotate_secret(
        self,
        name: str,
        new_value: str,
        store_first: bool = False,
    ) -> SecretReference:
        """
        Replace the secret stored under name with new_value.

        Known limitation: the default order is delete-then-store and is NOT
        atomic. If the store fails after a successful delete, no secret exists
        under name until an operator stores one. The underlying error is
        always re-raised; rotation never reports success after a failed step.

        Args:
            name: Secret name
            new_value: Replacement payload
            store_first: Store the replacement first, then delete the previously
                resolved reference. Avoids the absent window at the cost of a
                moment where two secrets share the name.

        Returns:
            Reference of the newly stored secret
        """
        if store_first:
            return self._rotate_store_first(name, new_value)

        self.delete_secret(name)
        try:
            reference = self.store_secret(name, new_value)
        except SecretManagerError:
            logger.error(
                "Secret rotation failed after delete; secret is now absent",
                extra={"secret_name": name, "backend": self.backend},
            )
            raise

        logger.info(
            "Secret rotated in vault",
            extra={"secret_name": name, "secret_ref": reference.url, "backend": self.backend},
        )
        return reference

    def list_secrets(
        self,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[SecretListing]:
        """
        List secrets stored in the vault (names and references only).

        Args:
            limit: Optional page size
            offset: Optional page offset
        """
        params: dict[str, int] = {}
        if limit is not None:
            params["limit"] = limit
        if offset is not None:
            params["offset"] = offset

        token = self._session.get_token()
        response = self._request("GET", f"{self.endpoint}/secrets", token, "list_secrets", params=params)
        if not response.is_success:
            raise SecretAccessError(
                secret_name="list_secrets",
                backend=self.backend,
                reason=f"Secret listing returned HTTP {response.status_code}",
            )

        listings = [
            SecretListing(
                name=entry.get("name") or "",
                reference=entry["secret_ref"],
                status=entry.get("status") or "UNKNOWN",
            )
            for entry in self._json_secrets(response, "list_secrets")
        ]
        logger.info(
            "Listed vault secrets",
            extra={"count": len(listings), "backend": self.backend},
        )
        return listings

    def health_check(self) -> ProviderHealth:
        """
        Authenticate and perform a minimal read (list with limit 1).

        Returns "unhealthy" with the error message instead of raising.
        """
        try:
            self.list_secrets(limit=1)
        except SecretManagerError as e:
            logger.warning(
                "Vault health check failed",
                extra={"backend": self.backend, "error_type": type(e).__name__},
            )
            return ProviderHealth(
                status="unhealthy",
                provider=self.backend,
                authenticated=self._session.is_authenticated,
                error=str(e),
            )
        return ProviderHealth(status="healthy", provider=self.backend, authenticated=True)

    def invalidate(self, name: str) -> None:
        self._cache.invalidate(name)

    def clear_cache(self) -> None:
        self._cache.clear()

    def close(self) -> None:
        """Clear the cache and close the HTTP client if this provider created it."""
        self._cache.clear()
        if self._owns_client:
            self._client.close()
        self._session.close()
        logger.info("VaultProvider closed, cache cleared", extra={"backend": self.backend})

    def _rotate_store_first(self, name: str, new_value: str) -> SecretReference:
        token = self._session.get_token()
        old_reference = self._resolve_reference(name, token)
        reference = self.store_secret(name, new_value)
        if old_reference is not None and old_reference.url != reference.url:
            try:
                self._delete_reference(name, old_reference, self._session.get_token())
            finally:
                self._cache.invalidate(name)
        logger.info(
            "Secret rotated in vault (store-first)",
            extra={
                "secret_name": name,
                "secret_ref": reference.url,
                "old_secret_ref": old_reference.url if old_reference else None,
                "backend": self.backend,
            },
        )
        return reference

    def _resolve_reference(self, name: str, token: str) -> SecretReference | None:
        if is_uuid(name):
            return SecretReference(url=f"{self.endpoint}/secrets/{name}", secret_id=name)

        response = self._request(
            "GET", f"{self.endpoint}/secrets", token, name, params={"name": name}
        )
        if not response.is_success:
            raise SecretAccessError(
                secret_name=name,
                backend=self.backend,
                reason=f"Secret lookup returned HTTP {response.status_code}",
            )

        matches = self._json_secrets(response, name)
        if not matches:
            return None
        return SecretReference.from_url(matches[0]["secret_ref"])

    def _delete_reference(self, name: str, reference: SecretReference, token: str) -> None:
        response = self._request("DELETE", reference.url, token, name, write=True)
        if response.status_code == 404:
            raise SecretNotFoundError(
                secret_name=name,
                backend=self.backend,
                additional_context=f"Reference {reference.secret_id} no longer exists",
            )
        if not response.is_success:
            raise SecretWriteError(
                secret_name=name,
                backend=self.backend,
                reason=f"Delete returned HTTP {response.status_code}",
            )

    def _create(self, name: str, body: dict[str, Any]) -> SecretReference:
        try:
            token = self._session.get_token()
            response = self._request(
                "POST",
                f"{self.endpoint}/secrets",
                token,
                name,
                write=True,
                json=body,
                headers={"Content-Type": "application/json"},
            )
            if not response.is_success:
                raise SecretWriteError(
                    secret_name=name,
                    backend=self.backend,
                    reason=f"Vault returned HTTP {response.status_code}: {response.text[:200]}",
                )
            try:
                return SecretReference.from_url(response.json()["secret_ref"])
            except (ValueError, KeyError, TypeError) as e:
                raise SecretWriteError(
                    secret_name=name,
                    backend=self.backend,
                    reason=f"Vault response has no secret_ref: {e}",
                ) from e
        finally:
            self._cache.invalidate(name)

    def _secret_body(
        self,
        name: str,
        options: SecretOptions,
        default_type: str,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": name,
            "algorithm": options.algorithm,
            "bit_length": options.bit_length,
            "mode": options.mode,
            "secret_type": options.secret_type or default_type,
        }
        if options.expiration is not None:
            body["expiration"] = options.expiration.isoformat()
        return body

    def _request(
        self,
        method: str,
        url: str,
        token: str,
        name: str,
        write: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {AUTH_HEADER: token, **kwargs.pop("headers", {})}
        try:
            response = self._client.request(
                method, url, headers=headers, timeout=self._timeout, **kwargs
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Vault request timed out",
                extra={"secret_name": name, "method": method, "backend": self.backend},
            )
            raise ProviderUnavailableError(
                secret_name=name,
                backend=self.backend,
                reason=f"{method} timed out after {self._timeout}s",
            ) from e
        except httpx.HTTPError as e:
            logger.error(
                "Vault request failed - transport error",
                extra={
                    "secret_name": name,
                    "method": method,
                    "backend": self.backend,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise ProviderUnavailableError(
                secret_name=name,
                backend=self.backend,
                reason=f"Vault unreachable at {self.endpoint}: {e}",
            ) from e

        if response.status_code == 401:
            # Token revoked or expired server-side; next call re-authenticates
            self._session.invalidate()
            raise AuthenticationError(
                secret_name=name,
                backend=self.backend,
                reason="Vault rejected the identity token (HTTP 401)",
            )
        if response.status_code == 403:
            error_cls = SecretWriteError if write else SecretAccessError
            raise error_cls(
                secret_name=name,
                backend=self.backend,
                reason=f"Permission denied for {method} on '{name}'",
            )
        if response.status_code >= 500:
            raise ProviderUnavailableError(
                secret_name=name,
                backend=self.backend,
                reason=f"Vault returned HTTP {response.status_code}",
            )
        return response

    def _json_secrets(self, response: httpx.Response, name: str) -> list[dict[str, Any]]:
        try:
            secrets = response.json().get("secrets") or []
            for entry in secrets:
                if not entry.get("secret_ref"):
                    raise KeyError("secret_ref")
            return list(secrets)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise SecretAccessError(
                secret_name=name,
                backend=self.backend,
                reason=f"Invalid response format from vault: {e}",
            ) from e
