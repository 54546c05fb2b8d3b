"""
Periodic nearby-user check.

Scans the population for pairs of users close to each other and sends each
side a push notification, subject to both sides' preferences. Runs inside the
API process on an interval (see `api.main`), or once from the command line:

Usage:
    python -m tasks.nearby_notifications
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from core.config import get_settings
from services.nearby_service import NearbyAlert, NearbyTracker
from services.user_store import JsonFileStore, UserStore

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Push-notification transport."""

    async def send(self, push_token: str, title: str, body: str) -> None: ...


class LoggingNotifier:
    """Notifier that only logs. The real push transport lives outside this service."""

    async def send(self, push_token: str, title: str, body: str) -> None:
        logger.info("push_notification token=%s... title=%s body=%s", push_token[:6], title, body)


@dataclass
class NearbyCheckStats:
    """Statistics from a nearby check run."""

    pairs_found: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {
            "pairs_found": self.pairs_found,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
        }


async def _deliver(notifier: Notifier, alert: NearbyAlert) -> bool:
    try:
        await notifier.send(alert.recipient.push_token or "", alert.title, alert.body)
    except Exception:
        # One failed push must not stop the rest of the run
        logger.exception(
            "push_notification_failed recipient_id=%s subject_id=%s",
            alert.recipient.id,
            alert.subject.id,
        )
        return False
    return True


async def run_nearby_check(
    store: UserStore,
    tracker: NearbyTracker,
    notifier: Notifier,
) -> NearbyCheckStats:
    """
    Notify every due nearby pair once.

    A pair is recorded (and so silenced for the cooldown) when at least one side
    was eligible for a notification, whether or not delivery succeeded.
    """
    stats = NearbyCheckStats()
    for pair in tracker.due_pairs(store.snapshot()):
        stats.pairs_found += 1
        alerts = pair.alerts()
        for alert in alerts:
            if await _deliver(notifier, alert):
                stats.notifications_sent += 1
            else:
                stats.notifications_failed += 1
        if alerts:
            tracker.record(pair)

    if stats.pairs_found:
        logger.info("Nearby check complete: %s", stats.to_dict())
    return stats


def main() -> None:
    """Entry point for running a single nearby check against the persisted population."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    settings = get_settings()
    if not settings.persistence_enabled:
        logger.error("DATA_DIR is not set or does not exist; nothing to check")
        return

    store = UserStore(JsonFileStore(settings.data_dir).load_population())
    tracker = NearbyTracker(settings.nearby_distance_meters, settings.nearby_cooldown_seconds)
    asyncio.run(run_nearby_check(store, tracker, LoggingNotifier()))


if __name__ == "__main__":
    main()
