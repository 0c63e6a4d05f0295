import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Ensure the repository root (parent directory of this file) is on the import path.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dashboard import db  # noqa: E402
from dashboard.cache import CacheService  # noqa: E402
from dashboard.config import Settings  # noqa: E402
from dashboard.services.bot import BotService  # noqa: E402
from dashboard.services.sessions import session_create, user_upsert  # noqa: E402
from dashboard.web import create_app  # noqa: E402

GUILD_ID = 123
ADMIN_ID = 42
MEMBER_ID = 43


# ---------------------------------------------------------------------------
# Fake discord objects
# ---------------------------------------------------------------------------

def asset(url: str) -> SimpleNamespace:
    return SimpleNamespace(url=url)


class FakeGuild:
    def __init__(self, gid: int, name: str = "Test guild", members=None, webhooks=None):
        self.id = gid
        self.name = name
        self.icon = asset(f"https://cdn.test/icons/{gid}.png")
        self.member_count = len(members or [])
        self.members = list(members or [])
        self._webhooks = list(webhooks or [])
        self.member_queries: List[Dict[str, Any]] = []
        self.webhook_fetches = 0

    async def webhooks(self):
        self.webhook_fetches += 1
        return list(self._webhooks)

    async def query_members(self, query: str, *, limit: int = 5):
        self.member_queries.append({"query": query, "limit": limit})
        q = query.lower()
        return [m for m in self.members if m.display_name.lower().startswith(q)][:limit]


class FakeClient:
    def __init__(self):
        self.users: Dict[int, Any] = {}
        self.guild_map: Dict[int, FakeGuild] = {}
        self.user = SimpleNamespace(name="dashboard-bot", id=1)
        self.latency = 0.042
        self.fetched: List[int] = []

    @property
    def guilds(self):
        return list(self.guild_map.values())

    def is_ready(self) -> bool:
        return True

    def get_user(self, uid: int):
        return self.users.get(uid)

    async def fetch_user(self, uid: int):
        self.fetched.append(uid)
        return None

    def get_guild(self, gid: int) -> Optional[FakeGuild]:
        return self.guild_map.get(gid)


def fake_user(uid: int, name: str) -> SimpleNamespace:
    return SimpleNamespace(id=uid, name=name, display_avatar=asset(f"https://cdn.test/avatars/{uid}.png"))


def fake_member(uid: int, display_name: str, nick: Optional[str] = None) -> SimpleNamespace:
    return SimpleNamespace(id=uid, display_name=display_name, nick=nick)


def fake_webhook(wid: int, name: str, channel_id: int = 500) -> SimpleNamespace:
    return SimpleNamespace(id=wid, name=name, channel_id=channel_id, display_avatar=asset(f"https://cdn.test/wh/{wid}.png"))


class FakeOAuth:
    def __init__(self):
        self.guilds_by_token: Dict[str, List[Dict[str, Any]]] = {}
        self.profiles_by_token: Dict[str, Dict[str, Any]] = {}
        self.guild_fetches: List[str] = []
        self.closed = False

    def authorize_url(self, state: str) -> str:
        return f"https://discord.test/oauth2/authorize?state={state}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        return {"access_token": f"tok-{code}", "token_type": "Bearer"}

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        return self.profiles_by_token[access_token]

    async def fetch_guilds(self, access_token: str) -> List[Dict[str, Any]]:
        self.guild_fetches.append(access_token)
        return list(self.guilds_by_token.get(access_token, []))

    async def close(self) -> None:
        self.closed = True


def membership(gid, *, owner: bool = False, permissions: int = 0, name: str = "Guild") -> Dict[str, Any]:
    return {"id": str(gid), "name": name, "icon": None, "owner": owner, "permissions": str(permissions)}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db.bind_engine(eng)
    yield eng
    db.Base.metadata.drop_all(eng)
    eng.dispose()
    db.engine = None
    db.SessionLocal = None
    db.resolved_url = None


@pytest.fixture
def settings() -> Settings:
    return Settings(sse_keepalive=0.05, dashboard_url="/app", cookie_name="dashboard_session")


@pytest.fixture
def discord_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def bot_service(discord_client) -> BotService:
    return BotService(discord_client)


@pytest.fixture
def oauth() -> FakeOAuth:
    return FakeOAuth()


@pytest.fixture
def cache() -> CacheService:
    return CacheService(ttl=300)


@pytest.fixture
async def client(aiohttp_client, bot_service, settings, oauth, cache):
    app = await create_app(bot_service, settings, oauth=oauth, cache=cache)
    return await aiohttp_client(app)


@pytest.fixture
def login(oauth, settings):
    """Create a stored session for ``uid`` and return the request headers carrying it."""

    def _login(uid: int, guilds: List[Dict[str, Any]], name: str = "someone") -> Dict[str, str]:
        token = f"access-{uid}"
        oauth.guilds_by_token[token] = guilds
        user_upsert(uid, name, None)
        sid = session_create(uid, token)
        return {"Cookie": f"{settings.cookie_name}={sid}"}

    return _login


@pytest.fixture
def admin_headers(login):
    return login(ADMIN_ID, [membership(GUILD_ID, permissions=0x20)], name="admin")


@pytest.fixture
def member_headers(login):
    return login(MEMBER_ID, [membership(GUILD_ID, permissions=0)], name="member")
