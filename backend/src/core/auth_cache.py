"""Credential caching so Discord is not asked to verify the same token on every request."""
import logging
import time

from core.cache import Clock, KeyedLocks, TTLCache
from core.demo import DemoFixture
from core.discord import IdentityAuthority
from schemas.user import Identity, TrackedUser
from services.exceptions import MalformedCredentialHeaderError
from services.user_store import UserStore

logger = logging.getLogger(__name__)


def check_credential_format(credential: str | None) -> str:
    """
    Reject credentials that cannot be bearer tokens before anyone is asked about them.

    Raises:
        MalformedCredentialHeaderError: Empty, or contains whitespace/non-printable characters.
    """
    if not credential or not credential.isascii() or not credential.isprintable():
        raise MalformedCredentialHeaderError()
    if any(ch.isspace() for ch in credential):
        raise MalformedCredentialHeaderError()
    return credential


def _fingerprint(credential: str) -> str:
    """Loggable stand-in for a credential (never log the credential itself)."""
    return f"{credential[:4]}..." if len(credential) > 8 else "***"


class CredentialCache:
    """
    Maps an opaque bearer credential to the user id it was verified as.

    Lookup is two-stage: `cache.get` first, then `authority.verify_credential` on
    absence, followed by an explicit population step that caches the mapping and
    upserts the user record. The demo credential short-circuits both stages.
    """

    def __init__(
        self,
        authority: IdentityAuthority,
        store: UserStore,
        demo: DemoFixture,
        ttl_seconds: float | None,
        max_entries: int | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._authority = authority
        self._store = store
        self._demo = demo
        self._cache: TTLCache[str, str] = TTLCache(ttl_seconds, max_entries, clock)
        self._locks = KeyedLocks()

    def lookup(self, credential: str) -> TrackedUser | None:
        """
        Cache-only lookup.

        A mapping whose user record has since been deleted counts as a miss.
        """
        user_id = self._cache.get(credential)
        if user_id is None:
            logger.debug("credential_cache_miss credential=%s", _fingerprint(credential))
            return None
        user = self._store.get(user_id)
        if user is None:
            logger.debug("credential_cache_orphan user_id=%s", user_id)
            return None
        logger.debug("credential_cache_hit user_id=%s", user_id)
        return user

    async def resolve(self, credential: str) -> Identity:
        """
        Resolve a credential to an identity.

        Raises:
            InvalidCredentialError: Discord rejected the credential.
            UpstreamUnavailableError: Discord is unreachable or answered garbage.
        """
        user = await self.authenticate(credential)
        return user.identity

    async def authenticate(self, credential: str) -> TrackedUser:
        """Resolve a credential to the full user record, creating it on first sight."""
        check_credential_format(credential)
        if self._demo.is_demo(credential):
            return await self._resolve_demo()

        user = self.lookup(credential)
        if user is not None:
            return user

        # Concurrent misses for one credential share a single authority call
        try:
            async with self._locks.lock(credential):
                user = self.lookup(credential)
                if user is not None:
                    return user
                identity = await self._authority.verify_credential(credential)
                return await self._populate(credential, identity)
        finally:
            self._locks.discard(credential)

    async def _populate(self, credential: str, identity: Identity) -> TrackedUser:
        user = await self._store.upsert_identity(identity)
        self._cache.set(credential, identity.id)
        logger.info("credential_cache_set user_id=%s", identity.id)
        return user

    async def _resolve_demo(self) -> TrackedUser:
        identity = self._demo.identity
        user = self._store.get(identity.id)
        if user is not None:
            return user
        return await self._store.upsert_identity(
            identity, default=self._demo.record_for(identity.id),
        )

    def invalidate_credential(self, credential: str) -> bool:
        """Forget a single credential (e.g. after revocation)."""
        return self._cache.delete(credential)

    def invalidate_user(self, user_id: str) -> int:
        """Forget every credential that maps to a user. Returns count removed."""
        removed = self._cache.delete_where(lambda _credential, cached_id: cached_id == user_id)
        logger.debug("credential_cache_invalidate user_id=%s removed=%s", user_id, removed)
        return removed

    def __len__(self) -> int:
        return len(self._cache)
