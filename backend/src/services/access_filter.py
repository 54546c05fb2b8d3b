"""
Who may see whom.

Pure functions over user records: no I/O, no locking, safe to call on any
snapshot of the population from any number of concurrent requests.
"""
from collections.abc import Iterable

from schemas.user import TrackedUser


def shares_community(a: TrackedUser, b: TrackedUser) -> bool:
    """Whether two users have at least one enabled guild in common."""
    return not set(a.privacy.enabled_guilds).isdisjoint(b.privacy.enabled_guilds)


def is_blocked_between(a: TrackedUser, b: TrackedUser) -> bool:
    """
    Whether either user blocks the other.

    Each block list is owned by its user, but the effect is symmetric: a block
    in either direction stops location sharing both ways.
    """
    return b.id in a.privacy.blocked_users or a.id in b.privacy.blocked_users


def is_visible(requester: TrackedUser, candidate: TrackedUser) -> bool:
    """A candidate is visible to themselves and to anyone sharing a guild."""
    return candidate.id == requester.id or shares_community(requester, candidate)


def visible_users(
    requester: TrackedUser,
    population: Iterable[TrackedUser],
) -> list[TrackedUser]:
    """
    Compute what the requester may see, in population order.

    Users sharing no guild with the requester are excluded entirely. Users that
    are visible but blocked (in either direction) are kept with their location
    stripped, so their presence is acknowledged without their position.
    Block lists are private: only the requester's own record carries one.
    """
    result: list[TrackedUser] = []
    for candidate in population:
        if not is_visible(requester, candidate):
            continue
        if candidate.id != requester.id:
            candidate = _redact(candidate, blocked=is_blocked_between(requester, candidate))
        result.append(candidate)
    return result


def _redact(candidate: TrackedUser, *, blocked: bool) -> TrackedUser:
    update: dict = {}
    if candidate.privacy.blocked_users:
        update["privacy"] = candidate.privacy.model_copy(update={"blocked_users": []})
    if blocked and candidate.location is not None:
        update["location"] = None
    return candidate.model_copy(update=update) if update else candidate
