"""
Parse-or-reject boundary for Discord payloads.

Every payload that arrives from Discord goes through one of these functions
before anything else touches it. Failures become typed service errors, never a
raw pydantic ValidationError.
"""
import logging
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from schemas.community import Community
from schemas.user import Identity
from services.exceptions import InvalidResponseShapeError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

_communities_adapter = TypeAdapter(list[Community])


class TokenResponse(BaseModel):
    """OAuth2 token response (snake_case field names, per RFC 6749)."""

    access_token: str
    token_type: str
    expires_in: int
    refresh_token: str
    scope: str


class TokenExchangeRequest(BaseModel):
    """Authorization code exchange request from the mobile client (PKCE)."""

    code: str
    code_verifier: str | None = None
    redirect_uri: str | None = None


def parse_identity(payload: Any) -> Identity:
    """
    Parse the `users/@me` payload.

    A malformed identity means the authority is misbehaving, not that the
    credential is bad, so this surfaces as UpstreamUnavailableError.
    """
    try:
        return Identity.model_validate(payload)
    except ValidationError as e:
        logger.error("discord_identity_invalid errors=%s", e.errors())
        raise UpstreamUnavailableError("Invalid response from Discord") from e


def parse_communities(payload: Any) -> list[Community]:
    """Parse the `users/@me/guilds` payload."""
    try:
        return _communities_adapter.validate_python(payload)
    except ValidationError as e:
        logger.error("discord_guilds_invalid errors=%s", e.errors())
        raise InvalidResponseShapeError("guild", str(e)) from e


def parse_token_response(payload: Any) -> TokenResponse:
    """Parse the `oauth2/token` payload."""
    try:
        return TokenResponse.model_validate(payload)
    except ValidationError as e:
        logger.error("discord_token_response_invalid errors=%s", e.errors())
        raise InvalidResponseShapeError("token response", str(e)) from e
