"""Health check endpoints."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_service_context
from core.context import ServiceContext

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    users: int
    persistence: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    context: ServiceContext = Depends(get_service_context),
) -> HealthResponse:
    """Check application health."""
    return HealthResponse(
        status="healthy",
        users=len(context.store),
        persistence="enabled" if context.snapshot_store is not None else "disabled",
    )
