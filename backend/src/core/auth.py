"""Authentication dependencies: bearer credential extraction and user resolution."""
import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.auth_cache import check_credential_format
from core.context import ServiceContext, get_service_context
from schemas.user import TrackedUser
from services.exceptions import MalformedCredentialHeaderError

logger = logging.getLogger(__name__)


# HTTP Bearer token scheme; a missing or non-Bearer header yields None
security = HTTPBearer(auto_error=False)


def get_credential(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """
    Dependency that extracts the bearer credential from the Authorization header.

    Raises:
        MalformedCredentialHeaderError: Header missing, not Bearer, or credential malformed.
    """
    if credentials is None:
        logger.info("auth_header_invalid")
        raise MalformedCredentialHeaderError()
    return check_credential_format(credentials.credentials)


async def get_current_user(
    credential: str = Depends(get_credential),
    context: ServiceContext = Depends(get_service_context),
) -> TrackedUser:
    """Dependency that resolves the credential and returns the caller's record."""
    return await context.credentials.authenticate(credential)
