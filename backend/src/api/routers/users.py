"""User endpoints: the visible population, the caller's own record, self-delete."""
from fastapi import APIRouter, Depends

from api.dependencies import get_credential, get_current_user, get_service_context
from core.context import ServiceContext
from schemas.user import SuccessResponse, TrackedUser, UserUpdate, VisibleUserResponse
from services import user_service

router = APIRouter(tags=["users"])


@router.get(
    "/users",
    response_model=list[VisibleUserResponse],
    response_model_exclude_none=True,
)
async def get_visible_users(
    credential: str = Depends(get_credential),
    context: ServiceContext = Depends(get_service_context),
) -> list[TrackedUser]:
    """
    Get every user the caller may see, in a stable order.

    Users sharing no guild with the caller are omitted. Users blocked in either
    direction appear without a `location`. All other locations are snapped to
    their owner's desired accuracy and jiggled so co-located users do not stack.
    """
    return await context.visibility.users_visible_to(credential)


@router.get("/users/me", response_model=TrackedUser, response_model_exclude_none=True)
async def get_me(current_user: TrackedUser = Depends(get_current_user)) -> TrackedUser:
    """Get the caller's own record, unobfuscated."""
    return current_user


@router.post("/users/me", response_model=SuccessResponse)
async def update_me(
    data: UserUpdate,
    current_user: TrackedUser = Depends(get_current_user),
    context: ServiceContext = Depends(get_service_context),
) -> SuccessResponse:
    """
    Replace the caller's privacy settings and, optionally, location and push settings.

    Returns 403 if the body names a different user id.
    """
    await user_service.update_self(context, current_user, data)
    return SuccessResponse()


@router.delete("/delete-data", response_model=SuccessResponse)
async def delete_my_data(
    current_user: TrackedUser = Depends(get_current_user),
    context: ServiceContext = Depends(get_service_context),
) -> SuccessResponse:
    """Delete the caller's record, cached credentials and cached guild list."""
    await user_service.delete_self(context, current_user.id)
    return SuccessResponse()
