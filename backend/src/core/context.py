"""Service context: owns every cache and collaborator for one app instance."""
import asyncio
import logging
import time
from dataclasses import dataclass

import httpx
from fastapi import Request

from core.auth_cache import CredentialCache
from core.cache import Clock
from core.config import Settings
from core.demo import DemoFixture
from core.discord import DiscordClient, IdentityAuthority, create_http_client
from services.directory_cache import CommunityDirectoryCache
from services.location_obfuscator import LocationObfuscator
from services.nearby_service import NearbyTracker
from services.user_store import JsonFileStore, UserStore
from services.visibility_service import VisibilityService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """
    Everything a request needs, wired once at startup.

    Caches live here rather than in module globals so each app (and each test)
    gets isolated instances and can inject its own clock and authority.
    """

    settings: Settings
    demo: DemoFixture
    discord: DiscordClient | None
    store: UserStore
    credentials: CredentialCache
    directory: CommunityDirectoryCache
    visibility: VisibilityService
    nearby: NearbyTracker
    snapshot_store: JsonFileStore | None = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        authority: IdentityAuthority | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = time.monotonic,
    ) -> "ServiceContext":
        """
        Wire the service graph.

        `authority` replaces Discord entirely (tests); otherwise a DiscordClient is
        built over `http_client`, or over a new client with the configured timeout.
        """
        demo = DemoFixture.load(settings.demo_token, settings.demo_data_path)

        discord: DiscordClient | None = None
        if authority is None:
            discord = DiscordClient(
                http_client or create_http_client(
                    settings.discord_api_url, settings.discord_timeout_seconds,
                ),
                client_id=settings.discord_client_id,
                client_secret=settings.discord_client_secret,
            )
            authority = discord

        snapshot_store = JsonFileStore(settings.data_dir) if settings.persistence_enabled else None
        # Persisted records win over the fixture, including for demo users
        store = UserStore(demo.users)
        if snapshot_store is not None:
            store.merge(snapshot_store.load_population())

        credentials = CredentialCache(
            authority,
            store,
            demo,
            ttl_seconds=settings.credential_cache_ttl_seconds,
            max_entries=settings.credential_cache_max_entries,
            clock=clock,
        )
        directory = CommunityDirectoryCache(
            authority, demo, ttl_seconds=settings.directory_cache_ttl_seconds, clock=clock,
        )
        obfuscator = LocationObfuscator(
            grid_step_degrees=settings.jiggle_grid_step_degrees,
            offset_fraction=settings.jiggle_offset_fraction,
        )
        return cls(
            settings=settings,
            demo=demo,
            discord=discord,
            store=store,
            credentials=credentials,
            directory=directory,
            visibility=VisibilityService(credentials, store, obfuscator),
            nearby=NearbyTracker(
                settings.nearby_distance_meters, settings.nearby_cooldown_seconds, clock=clock,
            ),
            snapshot_store=snapshot_store,
        )

    async def aclose(self) -> None:
        """Release the Discord HTTP client."""
        if self.discord is not None:
            await self.discord.aclose()

    async def persist(self) -> None:
        """Flush the population snapshot, if persistence is enabled."""
        if self.snapshot_store is None:
            return
        await asyncio.to_thread(self.snapshot_store.persist, self.store.as_mapping())


def get_service_context(request: Request) -> ServiceContext:
    """FastAPI dependency returning the app's service context."""
    return request.app.state.context
