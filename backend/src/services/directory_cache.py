"""Time-boxed cache of each user's guild list and per-guild metadata."""
import logging
import time

from core.cache import Clock, KeyedLocks, TTLCache
from core.demo import DemoFixture
from core.discord import IdentityAuthority
from schemas.community import Community
from schemas.user import Identity

logger = logging.getLogger(__name__)


class CommunityDirectoryCache:
    """
    Guild lists keyed by user id, valid while `now - fetched_at < ttl`.

    Entries are never evicted proactively; an expired entry stays in place until
    a refresh succeeds. A failed refresh (unreachable authority, invalid payload)
    leaves the stale entry untouched and surfaces the error.
    """

    def __init__(
        self,
        authority: IdentityAuthority,
        demo: DemoFixture,
        ttl_seconds: float,
        clock: Clock = time.monotonic,
    ) -> None:
        self._authority = authority
        self._demo = demo
        self._by_user: TTLCache[str, list[Community]] = TTLCache(ttl_seconds, clock=clock)
        self._by_community: TTLCache[str, Community] = TTLCache(ttl_seconds, clock=clock)
        self._locks = KeyedLocks()

    async def communities(self, identity: Identity, credential: str) -> list[Community]:
        """
        Get the user's guilds, fetching from the authority only on miss or expiry.

        Raises:
            InvalidCredentialError: Discord rejected the credential.
            UpstreamUnavailableError: Discord is unreachable.
            InvalidResponseShapeError: The fetched guild list failed validation.
        """
        cached = self._by_user.get(identity.id)
        if cached is not None:
            logger.debug("directory_cache_hit user_id=%s", identity.id)
            return list(cached)

        async with self._locks.lock(identity.id):
            cached = self._by_user.get(identity.id)
            if cached is not None:
                return list(cached)

            logger.debug("directory_cache_miss user_id=%s", identity.id)
            if self._demo.is_demo(credential):
                fetched = self._demo.communities
            else:
                fetched = await self._authority.fetch_communities(credential)

            self._by_user.set(identity.id, fetched)
            for community in fetched:
                self._by_community.set(community.id, community)
            logger.info(
                "directory_cache_set user_id=%s communities=%s", identity.id, len(fetched),
            )
            return list(fetched)

    def community(self, community_id: str) -> Community | None:
        """Cached metadata for a single guild, if seen within the TTL."""
        return self._by_community.get(community_id)

    def invalidate(self, user_id: str) -> bool:
        """Drop a user's cached guild list."""
        removed = self._by_user.delete(user_id)
        self._locks.discard(user_id)
        return removed

    def is_cached(self, user_id: str) -> bool:
        """Whether any entry (valid or stale) exists for the user."""
        return user_id in self._by_user
