"""FastAPI dependencies for injection."""
from core.auth import get_credential, get_current_user
from core.config import get_settings
from core.context import get_service_context

__all__ = [
    "get_credential",
    "get_current_user",
    "get_service_context",
    "get_settings",
]
