"""Schema for the bundled demo-mode fixture."""
from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.community import Community
from schemas.user import Identity, TrackedUser


class DemoIdentityPayload(BaseModel):
    demo: Identity


class DemoGuildsPayload(BaseModel):
    demo: list[Community]


class DemoDatabase(BaseModel):
    users: dict[str, TrackedUser]


class DemoData(BaseModel):
    """
    Canned responses substituted for Discord when the demo credential is used.

    Keys mirror the Discord API paths they stand in for.
    """

    model_config = ConfigDict(populate_by_name=True)

    identity: DemoIdentityPayload = Field(alias="users/@me")
    guilds: DemoGuildsPayload = Field(alias="users/@me/guilds")
    db: DemoDatabase

    @model_validator(mode="after")
    def validate_user_keys(self) -> "DemoData":
        """Each fixture user must be keyed by its own id."""
        for key, user in self.db.users.items():
            if key != user.id:
                raise ValueError(f"Demo user keyed '{key}' has id '{user.id}'")
        return self
