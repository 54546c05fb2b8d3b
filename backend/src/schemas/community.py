"""Pydantic schemas for communities (Discord guilds)."""
from pydantic import Field

from schemas.user import CamelModel


class Community(CamelModel):
    """A guild the user belongs to. Membership gates mutual visibility."""

    id: str = Field(min_length=1)
    name: str
    icon: str | None = None
