"""Shared helpers for API tests."""
from core.context import ServiceContext
from schemas.community import Community
from schemas.user import TrackedUser
from tests.conftest import FakeAuthority

CLIMBING = Community(id="g1", name="Climbing")


def bearer(token: str) -> dict[str, str]:
    """Authorization header for a bearer token."""
    return {"Authorization": f"Bearer {token}"}


def seed(context: ServiceContext, authority: FakeAuthority, *users: TrackedUser) -> None:
    """
    Put users in the store and register `token-<id>` for each with the authority.

    Each user's authority-side guild list mirrors their enabled guilds.
    """
    context.store.merge({user.id: user for user in users})
    for user in users:
        authority.add(
            f"token-{user.id}",
            user.id,
            username=user.identity.username,
            guilds=[Community(id=g, name=f"Guild {g}") for g in user.privacy.enabled_guilds],
        )
