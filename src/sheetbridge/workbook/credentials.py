"""Exchange of inbound caller credentials for remote API credentials.

The core only needs "a usable access token for this caller". Failures are
fatal for the batch and never retried here.

Implementations:
    - OnBehalfOfExchange: OAuth2 on-behalf-of grant against the identity
      provider's token endpoint, with an in-process token cache
    - StaticCredentialExchange: fixed token (tests, local development)
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

import httpx
import orjson

from sheetbridge.foundation.errors import AuthExchangeError
from sheetbridge.runtime.observability import get_logger

if TYPE_CHECKING:
    from pydantic import SecretStr

    from sheetbridge.foundation.config import AuthSettings

log = get_logger("sheetbridge.credentials")

OBO_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


@runtime_checkable
class CredentialExchange(Protocol):
    """Protocol for credential exchange backends."""

    async def exchange(self, user_credential: SecretStr) -> str:
        """Return a remote access token for the caller, or raise AuthExchangeError."""
        ...


@dataclass(slots=True)
class StaticCredentialExchange:
    """Returns the same remote token for every caller."""

    token: str

    async def exchange(self, user_credential: SecretStr) -> str:
        return self.token


@dataclass(slots=True)
class _CachedToken:
    access_token: str
    expires_at: float


@dataclass(slots=True)
class OnBehalfOfExchange:
    """OAuth2 on-behalf-of exchange over httpx.

    Tokens are cached per inbound assertion until shortly before they expire,
    so repeated batches from the same caller do not hit the token endpoint.

    Args:
        http: Async HTTP client used for token requests
        tenant_id: Directory tenant
        client_id: Confidential client application id
        client_secret: Confidential client secret
        scopes: Scopes requested for the remote API
        authority: Identity provider base URL
        expiry_skew: Seconds before expiry at which a cached token is refreshed
        max_cached: Cache size at which expired tokens are swept

    Example:
        >>> obo = OnBehalfOfExchange.from_settings(http, get_settings().auth)
        >>> token = await obo.exchange(caller.credential)
    """

    http: httpx.AsyncClient
    tenant_id: str
    client_id: str
    client_secret: SecretStr
    scopes: tuple[str, ...] = ("https://graph.microsoft.com/.default",)
    authority: str = "https://login.microsoftonline.com"
    expiry_skew: float = 60.0
    max_cached: int = 1024
    clock: Callable[[], float] = field(default=time.time, repr=False)
    _cache: dict[str, _CachedToken] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: AuthSettings) -> OnBehalfOfExchange:
        return cls(http, settings.tenant_id, settings.client_id, settings.client_secret,
                   scopes=settings.scopes, authority=settings.authority)

    @property
    def token_url(self) -> str:
        return f"{self.authority.rstrip('/')}/{self.tenant_id}/oauth2/v2.0/token"

    async def exchange(self, user_credential: SecretStr) -> str:
        assertion = user_credential.get_secret_value()
        if not assertion:
            raise AuthExchangeError("Missing caller credential")
        key = hashlib.sha256(assertion.encode()).hexdigest()
        now = self.clock()
        if (cached := self._cache.get(key)) is not None and cached.expires_at > now:
            return cached.access_token

        form = {
            "grant_type": OBO_GRANT_TYPE,
            "client_id": self.client_id,
            "client_secret": self.client_secret.get_secret_value(),
            "assertion": assertion,
            "scope": " ".join(self.scopes),
            "requested_token_use": "on_behalf_of",
        }
        try:
            response = await self.http.post(self.token_url, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            log.error("credential exchange failed", error=type(e).__name__)
            raise AuthExchangeError(f"Token endpoint unreachable: {type(e).__name__}") from e

        try:
            body = orjson.loads(response.content)
        except orjson.JSONDecodeError:
            body = {}
        if not response.is_success or not isinstance(body, dict) or not body.get("access_token"):
            reason = body.get("error_description") or body.get("error") if isinstance(body, dict) else None
            log.error("credential exchange failed", status=response.status_code, error=reason)
            raise AuthExchangeError(
                f"Failed to exchange token for remote access ({response.status_code})", status=response.status_code,
            )

        token = str(body["access_token"])
        expires_in = float(body.get("expires_in") or 0)
        if len(self._cache) >= self.max_cached:
            self._cache = {k: v for k, v in self._cache.items() if v.expires_at > now}
        if expires_in > self.expiry_skew:
            self._cache[key] = _CachedToken(token, now + expires_in - self.expiry_skew)
        return token
