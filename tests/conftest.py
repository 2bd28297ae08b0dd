import os
import uuid
from collections.abc import Sequence

import pytest
from httpx import ASGITransport, AsyncClient

# IMPORTANT:
# Set env vars BEFORE importing wtw.main (settings load at import time)
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./wtw_test.db")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:5173")

from wtw.main import app as fastapi_app  # noqa: E402
from wtw.api.deps import get_db, get_event_bus, get_media_catalog  # noqa: E402
from wtw.db.base_class import Base  # noqa: E402
import wtw.db.base  # noqa: F401,E402  (register models)
from wtw.db.session import build_engine, build_sessionmaker  # noqa: E402
from wtw.schemas.media import MediaItem  # noqa: E402
from wtw.services.events import EventBus  # noqa: E402


def make_item(item_key: str, **kwargs) -> MediaItem:
    data = {"title": f"Title {item_key}", "year": 2015, "genres": ["Drama"], "languages": ["English"]}
    data.update(kwargs)
    return MediaItem(item_key=item_key, **data)


DEFAULT_ITEMS = [
    make_item("tt1", title="Arrival", year=2016, genres=["Science Fiction", "Drama"]),
    make_item("tt2", title="Heat", year=1995, genres=["Action", "Crime"]),
    make_item("tt3", title="Amelie", year=2001, genres=["Comedy", "Romance"], languages=["French"]),
    make_item("tt4", title="The Thing", year=1982, genres=["Horror", "Science Fiction"]),
    make_item("tt5", title="Parasite", year=2019, genres=["Thriller"], languages=["Korean"], labels=["Kids-Hidden"]),
    make_item("tt6", title="Paddington 2", year=2017, genres=["Comedy", "Family"], labels=["Kids"]),
]


class FakeCatalog:
    """In-memory stand-in for the Plex catalog."""

    def __init__(
        self,
        items: Sequence[MediaItem],
        *,
        watched: dict[str, set[str]] | None = None,
        collections: dict[str, set[str]] | None = None,
    ) -> None:
        self.items = list(items)
        self.watched = watched or {}
        self.collections = collections or {}
        self.get_items_calls = 0

    async def get_items(self, library_keys, media_type):
        self.get_items_calls += 1
        if media_type == "movies":
            return [it for it in self.items if it.type == "movie"]
        if media_type == "shows":
            return [it for it in self.items if it.type == "show"]
        return list(self.items)

    async def get_watched_keys(self, auth_token, library_keys):
        return set(self.watched.get(auth_token, set()))

    async def get_collection_item_keys(self, collection_keys):
        keys: set[str] = set()
        for ck in collection_keys:
            keys |= self.collections.get(ck, set())
        return keys


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend, tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'wtw.db'}", env="test")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(anyio_backend, session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def bus():
    return EventBus(queue_size=64)


@pytest.fixture
def catalog():
    return FakeCatalog(DEFAULT_ITEMS)


@pytest.fixture
async def client(anyio_backend, session_maker, bus, catalog):
    async def _override_get_db():
        async with session_maker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[get_event_bus] = lambda: bus
    fastapi_app.dependency_overrides[get_media_catalog] = lambda: catalog

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    fastapi_app.dependency_overrides.pop(get_db, None)
    fastapi_app.dependency_overrides.pop(get_event_bus, None)
    fastapi_app.dependency_overrides.pop(get_media_catalog, None)


# --- Small helpers for session flows ---

def _unique(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:6]}"


@pytest.fixture
def unique_str():
    return _unique


@pytest.fixture
def session_factory():
    async def _create(
        client: AsyncClient,
        *,
        display_name: str = "Host",
        media_type: str = "both",
        timed_duration_minutes: int | None = None,
        auth_token: str | None = None,
    ):
        r = await client.post(
            "/sessions",
            json={
                "media_type": media_type,
                "display_name": display_name,
                "is_guest": auth_token is None,
                "auth_token": auth_token,
                "timed_duration_minutes": timed_duration_minutes,
            },
        )
        assert r.status_code == 201, r.text
        data = r.json()
        return data["session"], data["participant"]

    return _create


@pytest.fixture
def join_helper():
    async def _join(client: AsyncClient, session_id: str, display_name: str, auth_token: str | None = None):
        r = await client.post(
            f"/sessions/{session_id}/join",
            json={"display_name": display_name, "is_guest": auth_token is None, "auth_token": auth_token},
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _join


@pytest.fixture
def start_swiping():
    async def _start(client: AsyncClient, session_id: str):
        r = await client.patch(f"/sessions/{session_id}", json={"status": "swiping"})
        assert r.status_code == 200, r.text
        return r.json()

    return _start
