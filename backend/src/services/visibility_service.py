"""Answers "what does this user see right now"."""
import logging
from collections.abc import Sequence

from core.auth_cache import CredentialCache
from schemas.user import TrackedUser
from services.access_filter import visible_users
from services.location_obfuscator import LocationObfuscator, snap_user
from services.user_store import UserStore

logger = logging.getLogger(__name__)


class VisibilityService:
    """
    Orchestrates credential resolution, access filtering and obfuscation.

    `users_visible_to` is the single entry point consumed by the API; the cache,
    filter and obfuscator behind it are private collaborators.
    """

    def __init__(
        self,
        credentials: CredentialCache,
        store: UserStore,
        obfuscator: LocationObfuscator,
    ) -> None:
        self._credentials = credentials
        self._store = store
        self._obfuscator = obfuscator

    async def users_visible_to(self, credential: str) -> list[TrackedUser]:
        """
        Resolve the credential and compute the requester's view of the population.

        Raises:
            MalformedCredentialHeaderError: The credential is not well-formed.
            InvalidCredentialError: Discord rejected the credential.
            UpstreamUnavailableError: Discord is unreachable.
        """
        requester = await self._credentials.authenticate(credential)
        return self.visible_to(requester, self._store.snapshot())

    def visible_to(
        self,
        requester: TrackedUser,
        population: Sequence[TrackedUser],
    ) -> list[TrackedUser]:
        """Pure part of the pipeline: filter, redact, snap, jiggle."""
        # Prefer the snapshot's copy of the requester: it may be newer
        for user in population:
            if user.id == requester.id:
                requester = user
                break

        visible = visible_users(requester, population)
        result = self._obfuscator.jiggle([snap_user(user) for user in visible])
        logger.debug(
            "visible_users user_id=%s population=%s visible=%s",
            requester.id,
            len(population),
            len(result),
        )
        return result
