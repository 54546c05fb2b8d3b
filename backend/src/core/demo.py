"""Demo mode: a fixed identity, guild list and population that never touch Discord."""
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from schemas.community import Community
from schemas.demo import DemoData
from schemas.discord import TokenResponse
from schemas.user import Identity, TrackedUser

logger = logging.getLogger(__name__)

DEMO_TOKEN_EXPIRES_IN = 7 * 24 * 60 * 60  # 7 days


class DemoFixture:
    """
    Canned Discord answers for the reserved demo credential.

    The sentinel credential resolves to the same identity every time, without
    any network call, so app review and local development work offline.
    """

    def __init__(self, token: str, data: DemoData) -> None:
        self._token = token
        self._data = data

    @classmethod
    def load(cls, token: str, path: Path) -> "DemoFixture":
        """
        Load and validate the fixture file.

        Raises:
            ValueError: If the file is not valid JSON or fails schema validation.
        """
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            data = DemoData.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Invalid demo fixture at {path}: {e}") from e
        logger.info("demo_fixture_loaded path=%s users=%s", path, len(data.db.users))
        return cls(token, data)

    @property
    def token(self) -> str:
        return self._token

    def is_demo(self, credential: str) -> bool:
        """Check whether a credential is the demo sentinel."""
        return credential == self._token

    @property
    def identity(self) -> Identity:
        """The identity the demo credential resolves to."""
        return self._data.identity.demo

    @property
    def communities(self) -> list[Community]:
        """Guilds the demo identity belongs to."""
        return list(self._data.guilds.demo)

    @property
    def users(self) -> dict[str, TrackedUser]:
        """Fixture population, merged into the store at startup."""
        return dict(self._data.db.users)

    def record_for(self, user_id: str) -> TrackedUser | None:
        """Fixture record for a user, used to re-seed a deleted demo user."""
        return self._data.db.users.get(user_id)

    def token_response(self) -> TokenResponse:
        """What the OAuth code exchange returns for the demo code."""
        return TokenResponse(
            access_token=self._token,
            token_type="Bearer",
            expires_in=DEMO_TOKEN_EXPIRES_IN,
            refresh_token=f"{self._token}_refresh",
            scope="identify guilds",
        )
