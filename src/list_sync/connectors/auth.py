"""
Access token providers for the list source.

Providers are plain objects built once at startup and handed to the sync
engine; a provider caches its own token, so nothing is shared implicitly
between engines or tests.
"""

from __future__ import annotations

import base64
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Protocol

import httpx
import jwt

from list_sync.config import Settings
from list_sync.errors import AuthenticationError, TransportError

logger = logging.getLogger(__name__)

# Refresh this many seconds before the token actually expires
EXPIRY_MARGIN_SECONDS = 60

# Lifetime of a signed client assertion
ASSERTION_LIFETIME_SECONDS = 600

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"


class TokenProvider(Protocol):
    """Anything that can produce a bearer token for the list source."""

    async def get_token(self) -> str: ...


class StaticTokenProvider:
    """Returns a pre-issued token unchanged."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("token must not be empty")
        self._token = token

    async def get_token(self) -> str:
        return self._token

    async def close(self) -> None:
        pass


class ClientCredentialsTokenProvider:
    """
    OAuth2 client-credentials grant against the Microsoft identity platform.

    Example:
        provider = ClientCredentialsTokenProvider(
            tenant_id="...",
            client_id="...",
            client_secret="...",
            scope="https://contoso.sharepoint.com/.default",
        )
        token = await provider.get_token()
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        scope: str,
        authority_host: str = "https://login.microsoftonline.com",
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.scope = scope
        self.token_url = f"{authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"
        self._client_secret = client_secret
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock

        self._token: str | None = None
        self._expires_at: float = 0.0

    async def get_token(self) -> str:
        """Return a cached token, requesting a new one when it is about to expire."""
        if self._token and self._clock() < self._expires_at:
            return self._token

        data = await self._request_token()
        token = data.get("access_token")
        if not token:
            raise AuthenticationError(
                "Token endpoint response did not contain an access token",
                operation="acquire_token",
                body=data,
            )

        expires_in = int(data.get("expires_in", 3600))
        self._token = token
        self._expires_at = self._clock() + max(expires_in - EXPIRY_MARGIN_SECONDS, 0)
        logger.debug("Acquired access token (expires in %ss)", expires_in)
        return token

    async def _request_token(self) -> dict[str, Any]:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))

        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            **self._credential_fields(),
            "scope": self.scope,
        }
        try:
            response = await self._client.post(self.token_url, data=form)
        except httpx.TransportError as e:
            raise AuthenticationError(
                f"Token request failed: {e}",
                operation="acquire_token",
            ) from e

        if response.is_error:
            error = TransportError.from_response(response, "acquire_token")
            raise AuthenticationError(
                str(error),
                operation=error.operation,
                status=error.status,
                reason=error.reason,
                headers=error.headers,
                body=error.body,
            )
        return response.json()

    def _credential_fields(self) -> dict[str, str]:
        return {"client_secret": self._client_secret}

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def thumbprint_to_x5t(thumbprint: str) -> str:
    """Encode a hex SHA-1 certificate thumbprint as a JWT ``x5t`` header value."""
    cleaned = thumbprint.replace(":", "").replace(" ", "")
    digest = bytes.fromhex(cleaned)
    if len(digest) != 20:
        raise ValueError(f"Certificate thumbprint must be a SHA-1 hex digest: {thumbprint}")
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class CertificateTokenProvider(ClientCredentialsTokenProvider):
    """
    Client-credentials grant authenticated with a certificate.

    Each token request carries a short-lived ``client_assertion`` JWT signed
    with the application's private key (RS256). The certificate is
    identified to the authority by its thumbprint in the ``x5t`` header.

    Example:
        provider = CertificateTokenProvider(
            tenant_id="...",
            client_id="...",
            private_key=Path("app.key").read_text(),
            thumbprint="3F2A...",
            scope="https://contoso.sharepoint.com/.default",
        )
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        private_key: str,
        thumbprint: str,
        scope: str,
        authority_host: str = "https://login.microsoftonline.com",
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret="",
            scope=scope,
            authority_host=authority_host,
            http_client=http_client,
            clock=clock,
        )
        if not private_key:
            raise ValueError("private_key must not be empty")
        self._private_key = private_key
        self._x5t = thumbprint_to_x5t(thumbprint)
        self._wall_clock = wall_clock

    @classmethod
    def from_key_file(cls, path: Path | str, **kwargs: Any) -> "CertificateTokenProvider":
        """Build a provider from a PEM private key file."""
        return cls(private_key=Path(path).read_text(), **kwargs)

    def build_assertion(self) -> str:
        """Sign a fresh client assertion for the token endpoint."""
        now = int(self._wall_clock())
        claims = {
            "aud": self.token_url,
            "iss": self.client_id,
            "sub": self.client_id,
            "jti": str(uuid.uuid4()),
            "nbf": now,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
        }
        try:
            return jwt.encode(
                claims,
                self._private_key,
                algorithm="RS256",
                headers={"x5t": self._x5t},
            )
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise AuthenticationError(
                f"Could not sign client assertion: {e}",
                operation="acquire_token",
            ) from e

    def _credential_fields(self) -> dict[str, str]:
        return {
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": self.build_assertion(),
        }


def create_token_provider(
    settings: Settings,
) -> StaticTokenProvider | ClientCredentialsTokenProvider:
    """
    Build the token provider described by settings.

    A static token wins, then a certificate (when a private key path is
    configured), then the client secret.
    """
    auth = settings.auth
    static = auth.access_token.get_secret_value()
    if static:
        return StaticTokenProvider(static)

    scope = f"{settings.site_origin}/.default"
    if auth.private_key_path is not None:
        return CertificateTokenProvider.from_key_file(
            auth.private_key_path,
            tenant_id=auth.tenant_id,
            client_id=auth.client_id,
            thumbprint=auth.certificate_thumbprint,
            scope=scope,
            authority_host=auth.authority_host,
        )

    return ClientCredentialsTokenProvider(
        tenant_id=auth.tenant_id,
        client_id=auth.client_id,
        client_secret=auth.client_secret.get_secret_value(),
        scope=scope,
        authority_host=auth.authority_host,
    )
