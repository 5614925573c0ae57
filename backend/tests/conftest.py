import os

# keep app.db off Postgres; each test builds its own SQLite file below
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from app.db import Base, get_session
import app.models.user  # register tables
import app.models.challenge
import app.models.post
import app.models.media
from app.models.user import User
from app.models.challenge import Challenge, ChallengeType


T0 = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Injected into AssignmentEngine; advance() moves time forward."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now = self.now + timedelta(**kw)


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True)

    @event.listens_for(eng.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def sessions(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(sessions):
    async with sessions() as s:
        yield s


@pytest.fixture
def clock():
    return FixedClock()


async def make_user(session: AsyncSession, username: str | None = None, role: str = "user") -> User:
    user = User(
        username=username or f"user_{uuid.uuid4().hex[:8]}",
        password_hash="not-a-real-hash",
        first_name="Test",
        last_name="User",
        role=role,
    )
    session.add(user)
    await session.commit()
    # detached, so a later rollback in the engine does not expire it
    session.expunge(user)
    return user


async def make_challenge(
    session: AsyncSession,
    *,
    points: int = 10,
    challenge_type: ChallengeType = ChallengeType.EXCLUSIVE,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    title: str = "Ride Space Mountain",
) -> Challenge:
    ch = Challenge(
        title=title,
        description="Proof or it didn't happen",
        points=points,
        challenge_type=challenge_type.value,
        start_date=start_date,
        end_date=end_date,
    )
    session.add(ch)
    await session.commit()
    session.expunge(ch)
    return ch


@pytest_asyncio.fixture
async def api(sessions, monkeypatch):
    """
    httpx client against the app, wired to the per-test database. Object
    storage and the RQ queue are replaced with in-memory fakes.
    """
    from app.main import app
    from app.routes import media as media_routes
    from app.services import storage

    objects: dict[str, tuple[bytes, str]] = {}

    def put_bytes(key, data, content_type):
        objects[key] = (data, content_type)

    def get_bytes(key):
        if key not in objects:
            raise FileNotFoundError(key)
        return objects[key]

    def move_object(src, dst):
        if src not in objects:
            raise FileNotFoundError(src)
        objects[dst] = objects.pop(src)

    def remove_object(key):
        objects.pop(key, None)

    monkeypatch.setattr(storage, "put_bytes", put_bytes)
    monkeypatch.setattr(storage, "get_bytes", get_bytes)
    monkeypatch.setattr(storage, "move_object", move_object)
    monkeypatch.setattr(storage, "remove_object", remove_object)
    monkeypatch.setattr(media_routes, "enqueue_purge", lambda: None)

    async def override_get_session():
        async with sessions() as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        ac.objects = objects
        yield ac
    app.dependency_overrides.clear()
