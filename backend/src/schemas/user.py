"""Pydantic schemas for tracked users, their privacy settings and locations."""
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Immutable model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Identity(CamelModel):
    """Stable external user id plus display attributes, as returned by Discord."""

    id: str = Field(min_length=1)
    username: str
    avatar: str | None = None


class Location(CamelModel):
    """
    A single location sample.

    `accuracy` is the reported GPS radius in meters. `desired_accuracy` is the
    precision the user is willing to share; when positive it is the floor the
    exposed accuracy is raised to and the grid the coordinates are snapped to.
    """

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float = Field(ge=0)
    desired_accuracy: float | None = Field(default=None, ge=0)
    last_updated: float


class PrivacySettings(CamelModel):
    """Guilds this user shares with and users this user refuses to share with."""

    enabled_guilds: list[str] = Field(default_factory=list)
    blocked_users: list[str] = Field(default_factory=list)

    @field_validator("enabled_guilds", "blocked_users")
    @classmethod
    def dedupe(cls, v: list[str]) -> list[str]:
        """Drop duplicate ids, keeping first occurrence order."""
        return list(dict.fromkeys(v))


class TrackedUser(CamelModel):
    """A user record: identity, privacy settings and optional current location."""

    id: str = Field(min_length=1)
    identity: Identity = Field(alias="duser")
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)
    location: Location | None = None
    push_token: str | None = None
    receive_nearby_notifications: bool = True
    allow_nearby_notifications: bool = True

    @model_validator(mode="after")
    def validate_identity_id(self) -> "TrackedUser":
        """The record key and the identity it wraps must agree."""
        if self.id != self.identity.id:
            raise ValueError(
                f"User id '{self.id}' does not match identity id '{self.identity.id}'",
            )
        return self


class UserUpdate(CamelModel):
    """
    Body of a self-update.

    `id` is optional; when present it must name the authenticated user.
    Omitted location, push token and notification flags keep their current values.
    """

    id: str | None = None
    location: Location | None = None
    privacy: PrivacySettings
    push_token: str | None = None
    receive_nearby_notifications: bool | None = None
    allow_nearby_notifications: bool | None = None


class VisibleUserResponse(CamelModel):
    """A user as seen by someone else. Push tokens never leave the server."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    identity: Identity = Field(alias="duser")
    privacy: PrivacySettings
    location: Location | None = None


class SuccessResponse(BaseModel):
    """Acknowledgement for write endpoints."""

    success: bool = True
