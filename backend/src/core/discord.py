"""Discord REST client: the identity authority for credentials and guild membership."""
import logging
from typing import Any, Protocol

import httpx

from schemas.community import Community
from schemas.discord import (
    TokenResponse,
    parse_communities,
    parse_identity,
    parse_token_response,
)
from schemas.user import Identity
from services.exceptions import InvalidCredentialError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

# Statuses that mean "try again later" rather than "this credential is bad"
RETRYABLE_STATUSES = {408, 429}


class IdentityAuthority(Protocol):
    """What the caches need from the identity authority."""

    async def verify_credential(self, credential: str) -> Identity: ...

    async def fetch_communities(self, credential: str) -> list[Community]: ...


class DiscordClient:
    """
    Thin async client over the Discord API.

    The httpx client is injected so it can carry a bounded timeout and be shared
    for the app lifetime; every transport failure, including timeouts, surfaces
    as UpstreamUnavailableError instead of hanging the caller.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        client_id: str = "",
        client_secret: str = "",
    ) -> None:
        self._http = http_client
        self._client_id = client_id
        self._client_secret = client_secret

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def verify_credential(self, credential: str) -> Identity:
        """
        Validate a bearer credential and fetch the identity behind it.

        Raises:
            InvalidCredentialError: Discord rejected the credential.
            UpstreamUnavailableError: Discord is unreachable or answered garbage.
        """
        response = await self._request("GET", "users/@me", credential=credential)
        if not response.is_success:
            self._raise_for_status(response, "users/@me")
        return parse_identity(self._json(response, "users/@me"))

    async def fetch_communities(self, credential: str) -> list[Community]:
        """
        Fetch the guilds the credential's owner belongs to.

        Raises:
            InvalidCredentialError: Discord rejected the credential.
            UpstreamUnavailableError: Discord is unreachable.
            InvalidResponseShapeError: The guild list failed validation.
        """
        response = await self._request("GET", "users/@me/guilds", credential=credential)
        if not response.is_success:
            self._raise_for_status(response, "users/@me/guilds")
        return parse_communities(self._json(response, "users/@me/guilds"))

    async def exchange_code(
        self, code: str, code_verifier: str, redirect_uri: str,
    ) -> TokenResponse:
        """Exchange an OAuth2 authorization code (PKCE) for an access token."""
        self._require_oauth_credentials()
        response = await self._request(
            "POST",
            "oauth2/token",
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            },
        )
        if not response.is_success:
            self._raise_for_status(response, "oauth2/token")
        return parse_token_response(self._json(response, "oauth2/token"))

    async def revoke_token(self, credential: str) -> None:
        """Revoke an access token at Discord."""
        self._require_oauth_credentials()
        response = await self._request(
            "POST",
            "oauth2/token/revoke",
            data={
                "token": credential,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )
        if not response.is_success:
            self._raise_for_status(response, "oauth2/token/revoke")

    async def _request(
        self,
        method: str,
        path: str,
        credential: str | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {credential}"} if credential else None
        try:
            return await self._http.request(method, path, headers=headers, data=data)
        except httpx.TimeoutException as e:
            logger.warning("discord_timeout path=%s", path)
            raise UpstreamUnavailableError("Discord request timed out") from e
        except httpx.RequestError as e:
            logger.warning("discord_request_failed path=%s error=%s", path, e)
            raise UpstreamUnavailableError("Could not reach Discord") from e

    def _raise_for_status(self, response: httpx.Response, path: str) -> None:
        status = response.status_code
        logger.warning(
            "discord_rejected path=%s status=%s body=%s",
            path,
            status,
            response.text[:500],
        )
        if status >= 500 or status in RETRYABLE_STATUSES:
            raise UpstreamUnavailableError(f"Discord returned HTTP {status}")
        raise InvalidCredentialError()

    def _json(self, response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error("discord_invalid_json path=%s body=%s", path, response.text[:500])
            raise UpstreamUnavailableError("Invalid response from Discord") from e

    def _require_oauth_credentials(self) -> None:
        if not (self._client_id and self._client_secret):
            raise UpstreamUnavailableError("Discord OAuth is not configured")


def create_http_client(base_url: str, timeout_seconds: float) -> httpx.AsyncClient:
    """Create the shared httpx client for Discord calls."""
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/") + "/",
        timeout=timeout_seconds,
        headers={"User-Agent": "community-map/0.1.0"},
    )
