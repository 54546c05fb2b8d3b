"""Guild endpoints."""
from fastapi import APIRouter, Depends

from api.dependencies import get_credential, get_current_user, get_service_context
from core.context import ServiceContext
from schemas.community import Community
from schemas.user import TrackedUser

router = APIRouter(prefix="/guilds", tags=["guilds"])


@router.get("", response_model=list[Community])
async def get_guilds(
    credential: str = Depends(get_credential),
    current_user: TrackedUser = Depends(get_current_user),
    context: ServiceContext = Depends(get_service_context),
) -> list[Community]:
    """
    Get the caller's guilds.

    Served from a 24 hour cache; Discord is only asked on miss or expiry.
    """
    return await context.directory.communities(current_user.identity, credential)
