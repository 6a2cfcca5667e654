"""
Bearer-token providers for Microsoft Graph.

The publisher only needs something with ``get_access_token() -> str``.  Two
implementations ship here: a fixed token (e.g. handed over by a front end
that did the interactive sign-in) and the OAuth 2.0 client-credentials grant
for unattended app registrations.
"""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Optional, Protocol

import requests

from ..errors import GraphRequestError
from ..settings import PublisherSettings, get_settings

logger = logging.getLogger(__name__)

LOGIN_BASE = "https://login.microsoftonline.com"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
EXPIRY_MARGIN_SECONDS = 5 * 60


class TokenProvider(Protocol):
    def get_access_token(self) -> str:
        ...

    def close(self) -> None:
        ...


class StaticTokenProvider:
    def __init__(self, token: str):
        if not token:
            raise ValueError("'token' must be a non-empty string")
        self._token = token

    def get_access_token(self) -> str:
        return self._token

    def close(self) -> None:
        pass


class ClientCredentialsTokenProvider:
    """Client-credentials grant against Entra ID, cached until near expiry."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        session: Optional[requests.Session] = None,
        timeout: float = 60,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.timeout = timeout
        self._cache = {"access_token": None, "expires_at": 0.0}

    def close(self) -> None:
        """Close the HTTP session, unless the caller supplied it."""
        if self._owns_session:
            self.session.close()

    @property
    def token_url(self) -> str:
        return f"{LOGIN_BASE}/{self.tenant_id}/oauth2/v2.0/token"

    def get_access_token(self) -> str:
        now = time.time()
        if self._cache["access_token"] and self._cache["expires_at"] > now:
            return self._cache["access_token"]

        logger.info("Requesting Graph access token for client %s", self.client_id)
        resp = self.session.post(
            self.token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": GRAPH_SCOPE,
            },
            timeout=self.timeout,
        )
        if not resp.ok:
            logger.error("Token request failed: %s - %s", resp.status_code, resp.text)
            raise GraphRequestError(
                f"Token request failed. Status: {resp.status_code}, Response: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        data = resp.json()
        token = data.get("access_token")
        if not token:
            raise GraphRequestError("Token response did not contain an access_token", resp.status_code, resp.text)

        expires_in = float(data.get("expires_in", 3600))
        self._cache = {
            "access_token": token,
            "expires_at": now + max(expires_in - EXPIRY_MARGIN_SECONDS, 0),
        }
        return token


def token_provider_from_settings(settings: PublisherSettings) -> TokenProvider:
    """A static token wins over client credentials when both are configured."""
    if settings.access_token:
        return StaticTokenProvider(settings.access_token)
    if settings.tenant_id and settings.client_id and settings.client_secret:
        return ClientCredentialsTokenProvider(settings.tenant_id, settings.client_id, settings.client_secret)
    raise EnvironmentError(
        "No Graph credentials configured. Set INTUNE_PUBLISHER_ACCESS_TOKEN, or "
        "INTUNE_PUBLISHER_TENANT_ID / _CLIENT_ID / _CLIENT_SECRET."
    )


@lru_cache(maxsize=1)
def get_token_provider() -> TokenProvider:
    """Process-wide provider, so the client-credentials token cache is shared across runs."""
    return token_provider_from_settings(get_settings())


def reset_token_provider() -> None:
    """Close and forget the cached provider (host shutdown, settings changes)."""
    if get_token_provider.cache_info().currsize:
        get_token_provider().close()
    get_token_provider.cache_clear()
