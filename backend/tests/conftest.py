"""Pytest fixtures for testing."""
from collections.abc import AsyncGenerator, Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from core.config import Settings
from core.context import ServiceContext
from schemas.community import Community
from schemas.user import Identity, Location, PrivacySettings, TrackedUser
from services.exceptions import InvalidCredentialError


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAuthority:
    """
    In-memory stand-in for Discord.

    Credentials map to identities; each call is counted so tests can assert
    that cached paths never reach the authority.
    """

    def __init__(self) -> None:
        self.identities: dict[str, Identity] = {}
        self.guilds: dict[str, list[Community]] = {}
        self.verify_calls: list[str] = []
        self.guild_calls: list[str] = []
        self.verify_error: Exception | None = None
        self.guild_error: Exception | None = None

    def add(
        self,
        credential: str,
        user_id: str,
        username: str | None = None,
        guilds: Sequence[Community] = (),
    ) -> Identity:
        identity = Identity(id=user_id, username=username or f"user-{user_id}")
        self.identities[credential] = identity
        self.guilds[credential] = list(guilds)
        return identity

    async def verify_credential(self, credential: str) -> Identity:
        self.verify_calls.append(credential)
        if self.verify_error is not None:
            raise self.verify_error
        identity = self.identities.get(credential)
        if identity is None:
            raise InvalidCredentialError()
        return identity

    async def fetch_communities(self, credential: str) -> list[Community]:
        self.guild_calls.append(credential)
        if self.guild_error is not None:
            raise self.guild_error
        if credential not in self.guilds:
            raise InvalidCredentialError()
        return list(self.guilds[credential])


def make_location(
    latitude: float = 40.7128,
    longitude: float = -74.0060,
    accuracy: float = 10,
    desired_accuracy: float | None = None,
    last_updated: float = 1_700_000_000_000,
) -> Location:
    """Build a location sample with sensible defaults."""
    return Location(
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        desired_accuracy=desired_accuracy,
        last_updated=last_updated,
    )


def make_user(
    user_id: str,
    guilds: Sequence[str] = (),
    blocked: Sequence[str] = (),
    location: Location | None = None,
    push_token: str | None = None,
    **extra: bool,
) -> TrackedUser:
    """Build a tracked user with the given guilds, block list and location."""
    return TrackedUser(
        id=user_id,
        identity=Identity(id=user_id, username=f"user-{user_id}"),
        privacy=PrivacySettings(enabled_guilds=list(guilds), blocked_users=list(blocked)),
        location=location,
        push_token=push_token,
        **extra,
    )


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def authority() -> FakeAuthority:
    return FakeAuthority()


@pytest.fixture
def context(
    settings: Settings,
    authority: FakeAuthority,
    clock: FakeClock,
) -> ServiceContext:
    """A fully wired service context around the fake authority and clock."""
    return ServiceContext.build(settings, authority=authority, clock=clock)


@pytest.fixture
async def client(context: ServiceContext) -> AsyncGenerator[AsyncClient]:
    """Create a test client bound to the test service context."""
    from api.main import app

    app.state.context = context

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client
