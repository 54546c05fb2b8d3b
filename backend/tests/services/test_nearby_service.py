"""Tests for nearby-user detection."""
import pytest

from services.nearby_service import (
    NearbyPair,
    NearbyTracker,
    find_nearby_pairs,
    haversine_meters,
)
from tests.conftest import FakeClock, make_location, make_user

# ~111 m apart (0.001 degrees of latitude)
HERE = (40.0, -74.0)
CLOSE = (40.001, -74.0)
FAR = (40.1, -74.0)


def _user(user_id: str, at: tuple[float, float], guilds=("g1",), **kwargs):
    kwargs.setdefault("push_token", f"push-{user_id}")
    return make_user(user_id, guilds=guilds, location=make_location(*at), **kwargs)


class TestHaversine:
    """Tests for haversine_meters."""

    def test__same_point(self) -> None:
        assert haversine_meters(10, 20, 10, 20) == 0

    def test__one_milli_degree_latitude(self) -> None:
        assert haversine_meters(*HERE, *CLOSE) == pytest.approx(111.19, abs=0.1)

    def test__is_symmetric(self) -> None:
        assert haversine_meters(*HERE, *FAR) == pytest.approx(haversine_meters(*FAR, *HERE))


class TestFindNearbyPairs:
    """Tests for find_nearby_pairs."""

    def test__close_users_sharing_guild(self) -> None:
        pairs = find_nearby_pairs([_user("a", HERE), _user("b", CLOSE)], 500)

        assert len(pairs) == 1
        assert pairs[0].key == frozenset({"a", "b"})
        assert pairs[0].distance_m == pytest.approx(111.19, abs=0.1)

    def test__too_far(self) -> None:
        assert find_nearby_pairs([_user("a", HERE), _user("b", FAR)], 500) == []

    def test__no_shared_guild(self) -> None:
        users = [_user("a", HERE, guilds=["g1"]), _user("b", CLOSE, guilds=["g2"])]

        assert find_nearby_pairs(users, 500) == []

    def test__blocked_either_direction(self) -> None:
        users = [_user("a", HERE), _user("b", CLOSE, blocked=["a"])]

        assert find_nearby_pairs(users, 500) == []

    def test__requires_push_token_and_location(self) -> None:
        users = [
            _user("a", HERE),
            _user("b", CLOSE, push_token=None),
            make_user("c", guilds=["g1"], push_token="push-c"),
        ]

        assert find_nearby_pairs(users, 500) == []

    def test__excluded_pairs_skipped(self) -> None:
        users = [_user("a", HERE), _user("b", CLOSE)]

        assert find_nearby_pairs(users, 500, exclude={frozenset({"a", "b"})}) == []


class TestNearbyPairAlerts:
    """Tests for NearbyPair.alerts preference handling."""

    def test__both_opted_in(self) -> None:
        pair = NearbyPair(_user("a", HERE), _user("b", CLOSE), 111.2)

        alerts = pair.alerts()

        assert [(a.recipient.id, a.subject.id) for a in alerts] == [("a", "b"), ("b", "a")]
        assert alerts[0].title == "Nearby User!"
        assert alerts[0].body == "user-b is ~111m away! Text them to meet up!"

    def test__receiver_opted_out(self) -> None:
        pair = NearbyPair(
            _user("a", HERE, receive_nearby_notifications=False),
            _user("b", CLOSE),
            100,
        )

        assert [a.recipient.id for a in pair.alerts()] == ["b"]

    def test__subject_disallows_announcement(self) -> None:
        pair = NearbyPair(
            _user("a", HERE, allow_nearby_notifications=False),
            _user("b", CLOSE),
            100,
        )

        assert [a.recipient.id for a in pair.alerts()] == ["a"]


class TestNearbyTracker:
    """Tests for NearbyTracker cooldown bookkeeping."""

    def test__recorded_pair_not_due_until_cooldown_passes(self) -> None:
        clock = FakeClock()
        tracker = NearbyTracker(500, cooldown_seconds=60, clock=clock)
        users = [_user("a", HERE), _user("b", CLOSE)]

        [pair] = tracker.due_pairs(users)
        tracker.record(pair)

        assert tracker.due_pairs(users) == []
        clock.advance(60)
        assert len(tracker.due_pairs(users)) == 1
        assert tracker.recently_notified() == set()

    def test__forget_user(self) -> None:
        tracker = NearbyTracker(500, cooldown_seconds=60, clock=FakeClock())
        tracker.record(NearbyPair(_user("a", HERE), _user("b", CLOSE), 1))
        tracker.record(NearbyPair(_user("c", HERE), _user("d", CLOSE), 1))

        assert tracker.forget_user("a") == 1
        assert tracker.recently_notified() == {frozenset({"c", "d"})}
