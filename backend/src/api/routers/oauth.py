"""OAuth glue: authorization code exchange and token revocation with Discord."""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_credential, get_service_context
from core.context import ServiceContext
from schemas.discord import TokenExchangeRequest, TokenResponse
from schemas.user import SuccessResponse
from services.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


@router.post("/token", response_model=TokenResponse)
async def exchange_token(
    data: TokenExchangeRequest,
    context: ServiceContext = Depends(get_service_context),
) -> TokenResponse:
    """
    Exchange an authorization code for a Discord access token.

    The demo code returns the demo token without contacting Discord.
    """
    if context.demo.is_demo(data.code):
        logger.info("token_exchange_demo")
        return context.demo.token_response()

    if not (data.code_verifier and data.redirect_uri):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required parameters",
        )
    if context.discord is None:
        raise UpstreamUnavailableError("Discord OAuth is not configured")

    token = await context.discord.exchange_code(data.code, data.code_verifier, data.redirect_uri)
    logger.info("token_exchange_succeeded")
    return token


@router.post("/revoke", response_model=SuccessResponse)
async def revoke_token(
    credential: str = Depends(get_credential),
    context: ServiceContext = Depends(get_service_context),
) -> SuccessResponse:
    """
    Revoke the caller's Discord token and forget it locally.

    Revoking the demo token is a no-op.
    """
    if context.demo.is_demo(credential):
        return SuccessResponse()

    context.credentials.invalidate_credential(credential)
    if context.discord is None:
        raise UpstreamUnavailableError("Discord OAuth is not configured")
    await context.discord.revoke_token(credential)
    logger.info("token_revoked")
    return SuccessResponse()
