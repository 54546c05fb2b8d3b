"""Detection of users who are physically close to someone they share a guild with."""
import logging
import math
import time
from collections.abc import Sequence
from dataclasses import dataclass

from core.cache import Clock, TTLCache
from schemas.user import TrackedUser
from services.access_filter import is_blocked_between, shares_community

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True)
class NearbyAlert:
    """Tell `recipient` that `subject` is about `distance_m` meters away."""

    recipient: TrackedUser
    subject: TrackedUser
    distance_m: float

    @property
    def title(self) -> str:
        return "Nearby User!"

    @property
    def body(self) -> str:
        return (
            f"{self.subject.identity.username} is ~{round(self.distance_m)}m away! "
            "Text them to meet up!"
        )


@dataclass(frozen=True)
class NearbyPair:
    """Two users within notification distance of each other."""

    first: TrackedUser
    second: TrackedUser
    distance_m: float

    @property
    def key(self) -> frozenset[str]:
        return frozenset((self.first.id, self.second.id))

    def alerts(self) -> list[NearbyAlert]:
        """
        Alerts allowed by both sides' preferences.

        A user is told about the other only if they opted in to receiving and
        the other opted in to being announced.
        """
        alerts = []
        if self.first.receive_nearby_notifications and self.second.allow_nearby_notifications:
            alerts.append(NearbyAlert(self.first, self.second, self.distance_m))
        if self.second.receive_nearby_notifications and self.first.allow_nearby_notifications:
            alerts.append(NearbyAlert(self.second, self.first, self.distance_m))
        return alerts


def find_nearby_pairs(
    users: Sequence[TrackedUser],
    max_distance_m: float,
    exclude: set[frozenset[str]] | None = None,
) -> list[NearbyPair]:
    """
    Find every pair of users with a location and push token that share a guild,
    do not block each other, and are within `max_distance_m`.

    Pairs whose key is in `exclude` (recently notified) are skipped.
    """
    exclude = exclude or set()
    candidates = [u for u in users if u.location is not None and u.push_token]
    pairs: list[NearbyPair] = []
    for i, first in enumerate(candidates):
        for second in candidates[i + 1:]:
            if is_blocked_between(first, second) or not shares_community(first, second):
                continue
            if frozenset((first.id, second.id)) in exclude:
                continue
            distance = haversine_meters(
                first.location.latitude,
                first.location.longitude,
                second.location.latitude,
                second.location.longitude,
            )
            if distance <= max_distance_m:
                pairs.append(NearbyPair(first, second, distance))
    return pairs


class NearbyTracker:
    """Remembers which pairs were notified so each pair is told at most once per cooldown."""

    def __init__(
        self,
        max_distance_m: float,
        cooldown_seconds: float,
        clock: Clock = time.monotonic,
    ) -> None:
        self._max_distance_m = max_distance_m
        self._recent: TTLCache[frozenset[str], bool] = TTLCache(cooldown_seconds, clock=clock)

    def recently_notified(self) -> set[frozenset[str]]:
        """Pairs still within their cooldown. Expired pairs are dropped."""
        self._recent.delete_where(lambda key, _value: self._recent.get(key) is None)
        return set(self._recent)

    def due_pairs(self, users: Sequence[TrackedUser]) -> list[NearbyPair]:
        """Nearby pairs that have not been notified within the cooldown."""
        return find_nearby_pairs(users, self._max_distance_m, self.recently_notified())

    def record(self, pair: NearbyPair) -> None:
        self._recent.set(pair.key, True)

    def forget_user(self, user_id: str) -> int:
        """Drop every remembered pair involving a user. Returns count removed."""
        return self._recent.delete_where(lambda key, _value: user_id in key)
