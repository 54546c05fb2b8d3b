"""Tests for user endpoints."""
import pytest
from httpx import AsyncClient

from core.context import ServiceContext
from services.exceptions import UpstreamUnavailableError
from services.location_obfuscator import METERS_PER_DEGREE
from tests.api.conftest import bearer, seed
from tests.conftest import FakeAuthority, make_location, make_user


class TestAuthentication:
    """Tests for credential handling on /users."""

    async def test__missing_header__401(self, client: AsyncClient) -> None:
        response = await client.get("/users")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid authorization header format"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.parametrize(
        "header",
        ["token-1", "Basic token-1", "Bearer", "Bearer   "],
    )
    async def test__malformed_header__401_without_authority_call(
        self,
        client: AsyncClient,
        authority: FakeAuthority,
        header: str,
    ) -> None:
        response = await client.get("/users", headers={"Authorization": header})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid authorization header format"
        assert authority.verify_calls == []

    async def test__rejected_credential__401(
        self, client: AsyncClient, authority: FakeAuthority,
    ) -> None:
        response = await client.get("/users", headers=bearer("unknown"))

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"
        assert authority.verify_calls == ["unknown"]

    async def test__authority_unreachable__503(
        self, client: AsyncClient, authority: FakeAuthority,
    ) -> None:
        authority.verify_error = UpstreamUnavailableError()

        response = await client.get("/users", headers=bearer("token-1"))

        assert response.status_code == 503

    async def test__cached_credential__single_authority_call(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(context, authority, make_user("1", guilds=["g1"]))

        for _ in range(3):
            response = await client.get("/users", headers=bearer("token-1"))
            assert response.status_code == 200

        assert authority.verify_calls == ["token-1"]

    async def test__demo_credential__no_authority_call(
        self, client: AsyncClient, authority: FakeAuthority,
    ) -> None:
        first = await client.get("/users", headers=bearer("demo"))
        second = await client.get("/users", headers=bearer("demo"))

        assert first.status_code == 200
        assert first.json() == second.json()
        # demo0 shares the climbing club with demo1 and demo2, not demo3
        assert [user["id"] for user in first.json()] == ["demo0", "demo1", "demo2"]
        assert authority.verify_calls == []


class TestGetUsers:
    """Tests for GET /users."""

    async def test__same_cell_users_spread(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(
            context,
            authority,
            make_user("1", guilds=["g1"], location=make_location(0.0, 0.0, accuracy=100)),
            make_user("2", guilds=["g1"], location=make_location(0.001, 0.001, accuracy=100)),
        )

        response = await client.get("/users", headers=bearer("token-1"))

        assert response.status_code == 200
        by_id = {user["id"]: user for user in response.json()}
        assert set(by_id) == {"1", "2"}
        assert by_id["1"]["location"]["latitude"] == pytest.approx(50 / METERS_PER_DEGREE)
        assert by_id["2"]["location"]["latitude"] == pytest.approx(
            0.001 - 50 / METERS_PER_DEGREE,
        )

    async def test__blocked_user__location_absent_both_ways(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(
            context,
            authority,
            make_user("a", guilds=["g1"], blocked=["b"], location=make_location(1, 1)),
            make_user("b", guilds=["g1"], location=make_location(2, 2)),
        )

        seen_by_a = {
            u["id"]: u for u in (await client.get("/users", headers=bearer("token-a"))).json()
        }
        seen_by_b = {
            u["id"]: u for u in (await client.get("/users", headers=bearer("token-b"))).json()
        }

        assert "location" not in seen_by_a["b"]
        assert "location" in seen_by_a["a"]
        assert "location" not in seen_by_b["a"]
        assert "location" in seen_by_b["b"]
        # b never learns who a has blocked
        assert seen_by_b["a"]["privacy"]["blockedUsers"] == []
        assert seen_by_a["a"]["privacy"]["blockedUsers"] == ["b"]

    async def test__no_shared_guild__absent(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(
            context,
            authority,
            make_user("a", guilds=["g1"]),
            make_user("b", guilds=["g2"], location=make_location()),
        )

        response = await client.get("/users", headers=bearer("token-a"))

        assert [user["id"] for user in response.json()] == ["a"]

    async def test__wire_format_is_camel_case_without_push_token(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(
            context,
            authority,
            make_user("a", guilds=["g1"]),
            make_user("b", guilds=["g1"], location=make_location(), push_token="secret"),
        )

        response = await client.get("/users", headers=bearer("token-a"))

        b = next(user for user in response.json() if user["id"] == "b")
        assert b["duser"] == {"id": "b", "username": "user-b"}
        assert b["privacy"] == {"enabledGuilds": ["g1"], "blockedUsers": []}
        assert "lastUpdated" in b["location"]
        assert "pushToken" not in b


class TestMe:
    """Tests for GET and POST /users/me."""

    async def test__new_user__empty_record(
        self, client: AsyncClient, authority: FakeAuthority,
    ) -> None:
        authority.add("token-new", "new", username="newbie")

        response = await client.get("/users/me", headers=bearer("token-new"))

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "new"
        assert data["duser"]["username"] == "newbie"
        assert data["privacy"] == {"enabledGuilds": [], "blockedUsers": []}
        assert "location" not in data

    async def test__update__stores_privacy_and_location(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(context, authority, make_user("1"))

        response = await client.post(
            "/users/me",
            headers=bearer("token-1"),
            json={
                "privacy": {"enabledGuilds": ["g1", "g1"], "blockedUsers": ["9"]},
                "location": {
                    "latitude": 51.5,
                    "longitude": -0.12,
                    "accuracy": 12,
                    "lastUpdated": 1_700_000_000_000,
                },
                "pushToken": "push-1",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        stored = context.store.get("1")
        assert stored.privacy.enabled_guilds == ["g1"]
        assert stored.privacy.blocked_users == ["9"]
        assert stored.location.latitude == 51.5
        assert stored.location.desired_accuracy == 0
        assert stored.push_token == "push-1"

        me = (await client.get("/users/me", headers=bearer("token-1"))).json()
        assert me["pushToken"] == "push-1"
        assert me["location"]["desiredAccuracy"] == 0

    async def test__update__snaps_to_desired_accuracy(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(context, authority, make_user("1"))

        await client.post(
            "/users/me",
            headers=bearer("token-1"),
            json={
                "privacy": {"enabledGuilds": [], "blockedUsers": []},
                "location": {
                    "latitude": 51.5123456,
                    "longitude": -0.1234567,
                    "accuracy": 12,
                    "desiredAccuracy": 5000,
                    "lastUpdated": 1_700_000_000_000,
                },
            },
        )

        stored = context.store.get("1").location
        assert stored.accuracy == 5000
        assert stored.latitude != 51.5123456

    async def test__update__other_user_id__403(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(context, authority, make_user("1"), make_user("2", guilds=["g9"]))

        response = await client.post(
            "/users/me",
            headers=bearer("token-1"),
            json={"id": "2", "privacy": {"enabledGuilds": ["g1"], "blockedUsers": []}},
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Cannot update other users' data"
        assert context.store.get("2").privacy.enabled_guilds == ["g9"]

    async def test__update__invalid_body__422(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(context, authority, make_user("1"))

        response = await client.post(
            "/users/me",
            headers=bearer("token-1"),
            json={
                "privacy": {"enabledGuilds": [], "blockedUsers": []},
                "location": {"latitude": 123, "longitude": 0, "accuracy": 1, "lastUpdated": 0},
            },
        )

        assert response.status_code == 422

    async def test__update__requires_credential(self, client: AsyncClient) -> None:
        response = await client.post(
            "/users/me", json={"privacy": {"enabledGuilds": [], "blockedUsers": []}},
        )

        assert response.status_code == 401


class TestDeleteData:
    """Tests for DELETE /delete-data."""

    async def test__purges_user(
        self,
        client: AsyncClient,
        context: ServiceContext,
        authority: FakeAuthority,
    ) -> None:
        seed(
            context,
            authority,
            make_user("1", guilds=["g1"], location=make_location()),
            make_user("2", guilds=["g1"]),
        )
        await client.get("/guilds", headers=bearer("token-1"))

        response = await client.delete("/delete-data", headers=bearer("token-1"))

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert "1" not in context.store
        assert context.credentials.lookup("token-1") is None
        assert not context.directory.is_cached("1")

        seen_by_2 = (await client.get("/users", headers=bearer("token-2"))).json()
        assert [user["id"] for user in seen_by_2] == ["2"]
