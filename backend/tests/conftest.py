"""
Pytest fixtures for test database, client, and seeded entities.

Each test gets its own SQLite file (aiosqlite) with a freshly created schema,
an in-memory hit counter in place of the stats service, and a fresh
in-process admission guard.
"""

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from eventhub.main import app
from eventhub.api.deps import get_admission_guard, get_hit_counter
from eventhub.db.base import Base
from eventhub.db.session import get_db
from eventhub.models.category import Category
from eventhub.models.event import Event, EventState
from eventhub.models.participation import ParticipationRequest, RequestStatus
from eventhub.models.user import User
from eventhub.schemas.stats import ViewStats
from eventhub.services.interfaces.hit_counter import HitCounter
from eventhub.services.interfaces.local_admission import LocalAdmission


class FakeHitCounter(HitCounter):
    """Keeps hits in memory; `views` maps URI -> hits returned by queries."""

    def __init__(self):
        self.hits: list[tuple[str, str, str]] = []
        self.views: dict[str, int] = {}
        self.queries: list[dict] = []
        self.fail = False

    async def record_hit(self, app: str, uri: str, ip: str) -> None:
        if self.fail:
            raise RuntimeError("stats service down")
        self.hits.append((app, uri, ip))

    async def query_hits(self, start, end, uris, unique=False) -> list[ViewStats]:
        self.queries.append({"start": start, "end": end, "uris": list(uris), "unique": unique})
        if self.fail:
            raise RuntimeError("stats service down")
        return [
            ViewStats(app="ewm-main-service", uri=uri, hits=hits)
            for uri, hits in self.views.items()
            if not uris or uri in uris
        ]

    def uris(self) -> list[str]:
        return [uri for _, uri, _ in self.hits]


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a per-test SQLite file, then dispose the engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'eventhub_test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def hit_counter() -> FakeHitCounter:
    return FakeHitCounter()


@pytest.fixture
def guard() -> LocalAdmission:
    return LocalAdmission()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, hit_counter, guard) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a session per request, like the production dependency."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_hit_counter] = lambda: hit_counter
    app.dependency_overrides[get_admission_guard] = lambda: guard

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def future(hours: float = 24 * 30) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make_user(name: Optional[str] = None) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(name=name or f"User {n}", email=f"user{n}@example.com")
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest_asyncio.fixture
async def category(db_session: AsyncSession) -> Category:
    category = Category(name="Concerts")
    db_session.add(category)
    await db_session.commit()
    return category


@pytest_asyncio.fixture
async def initiator(make_user) -> User:
    return await make_user("Initiator")


@pytest_asyncio.fixture
async def make_event(db_session: AsyncSession, initiator: User, category: Category):
    """Factory for events owned by `initiator`; published by default."""

    async def _make_event(
        participant_limit: int = 0,
        request_moderation: bool = True,
        state: EventState = EventState.PUBLISHED,
        paid: bool = False,
        event_date: Optional[datetime] = None,
        annotation: str = "An evening of live music in the park",
        description: str = "Bring a blanket, the show starts at sunset.",
        category_id: Optional[int] = None,
    ) -> Event:
        event = Event(
            title="Open air concert",
            annotation=annotation,
            description=description,
            event_date=event_date or future(),
            location_lat=55.75,
            location_lon=37.61,
            paid=paid,
            participant_limit=participant_limit,
            request_moderation=request_moderation,
            state=state,
            published_on=datetime.now(timezone.utc) if state == EventState.PUBLISHED else None,
            category_id=category_id or category.id,
            initiator_id=initiator.id,
        )
        db_session.add(event)
        await db_session.commit()
        return event

    return _make_event


@pytest_asyncio.fixture
async def make_request(db_session: AsyncSession):
    """Insert a participation request directly, bypassing admission."""

    async def _make_request(
        event: Event,
        requester: User,
        status: RequestStatus = RequestStatus.PENDING,
    ) -> ParticipationRequest:
        request = ParticipationRequest(event_id=event.id, requester_id=requester.id, status=status)
        db_session.add(request)
        await db_session.commit()
        return request

    return _make_request


def event_payload(category_id: int, **overrides) -> dict:
    payload = {
        "title": "Open air concert",
        "annotation": "An evening of live music in the park",
        "description": "Bring a blanket, the show starts at sunset.",
        "category": category_id,
        "event_date": future().isoformat(),
        "location": {"lat": 55.75, "lon": 37.61},
        "paid": False,
        "participant_limit": 10,
        "request_moderation": True,
    }
    payload.update(overrides)
    return payload
