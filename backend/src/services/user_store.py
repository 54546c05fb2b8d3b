"""In-memory population of tracked users, plus the durable JSON snapshot hooks."""
import json
import logging
import os
import tempfile
from collections.abc import Callable, Mapping
from pathlib import Path

from pydantic import ValidationError

from core.cache import KeyedLocks
from schemas.user import Identity, TrackedUser

logger = logging.getLogger(__name__)

USERS_FILENAME = "users.json"


class UserStore:
    """
    The population, keyed by user id, in first-seen order.

    Records are immutable and replaced wholesale, so a reader never sees a
    half-applied update. Read-modify-write operations hold the per-user lock.
    """

    def __init__(self, users: Mapping[str, TrackedUser] | None = None) -> None:
        self._users: dict[str, TrackedUser] = dict(users or {})
        self._locks = KeyedLocks()

    def get(self, user_id: str) -> TrackedUser | None:
        return self._users.get(user_id)

    def snapshot(self) -> list[TrackedUser]:
        """Consistent copy of the population for the pure pipeline stages."""
        return list(self._users.values())

    def as_mapping(self) -> dict[str, TrackedUser]:
        return dict(self._users)

    def merge(self, users: Mapping[str, TrackedUser]) -> None:
        """Bulk-load records (startup only: persisted snapshot, demo fixture)."""
        self._users.update(users)

    async def upsert_identity(
        self,
        identity: Identity,
        default: TrackedUser | None = None,
    ) -> TrackedUser:
        """
        Create or refresh a user from a freshly verified identity.

        Existing privacy settings, location and notification preferences are kept;
        only the identity is replaced. A new user starts from `default` when
        given, otherwise with empty privacy settings and no location.
        """
        async with self._locks.lock(identity.id):
            existing = self._users.get(identity.id)
            if existing is not None:
                user = existing.model_copy(update={"identity": identity})
            elif default is not None:
                user = default.model_copy(update={"identity": identity})
            else:
                user = TrackedUser(id=identity.id, identity=identity)
                logger.info("user_created user_id=%s", identity.id)
            self._users[identity.id] = user
            return user

    async def update(
        self,
        user_id: str,
        apply: Callable[[TrackedUser | None], TrackedUser],
    ) -> TrackedUser:
        """Replace a record with `apply(current)` while holding that user's lock."""
        async with self._locks.lock(user_id):
            user = apply(self._users.get(user_id))
            if user.id != user_id:
                raise ValueError(f"Update for '{user_id}' produced record '{user.id}'")
            self._users[user_id] = user
            return user

    async def delete(self, user_id: str) -> bool:
        """Remove a user. Returns whether the user existed."""
        async with self._locks.lock(user_id):
            removed = self._users.pop(user_id, None) is not None
        self._locks.discard(user_id)
        return removed

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users


class JsonFileStore:
    """
    Durable snapshot of the population as a single JSON file.

    Not required for correctness: the service runs fine with persistence off.
    """

    def __init__(self, directory: Path) -> None:
        self._path = directory / USERS_FILENAME

    @property
    def path(self) -> Path:
        return self._path

    def load_population(self) -> dict[str, TrackedUser]:
        """
        Read the snapshot, validating every record.

        Records that fail validation are skipped and logged so one bad entry
        cannot keep the service from starting. A file that is not a JSON object
        at all is logged and treated as an empty population.
        """
        if not self._path.exists():
            logger.info("population_snapshot_missing path=%s", self._path)
            return {}

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error("population_snapshot_unreadable path=%s error=%s", self._path, e)
            return {}
        if not isinstance(raw, dict):
            logger.error(
                "population_snapshot_unreadable path=%s error=expected an object, got %s",
                self._path,
                type(raw).__name__,
            )
            return {}

        users: dict[str, TrackedUser] = {}
        for key, record in raw.items():
            try:
                user = TrackedUser.model_validate(record)
            except ValidationError as e:
                logger.warning("population_record_invalid user_id=%s errors=%s", key, e.errors())
                continue
            users[user.id] = user
        logger.info("population_loaded path=%s users=%s", self._path, len(users))
        return users

    def persist(self, users: Mapping[str, TrackedUser]) -> None:
        """Write the snapshot atomically (temp file + rename)."""
        payload = {
            user_id: user.model_dump(mode="json", by_alias=True, exclude_none=True)
            for user_id, user in users.items()
        }
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("population_persisted path=%s users=%s", self._path, len(payload))
