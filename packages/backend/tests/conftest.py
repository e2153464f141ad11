"""Test fixtures: a fresh in-memory database per test, fake transports.

Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own aiosqlite in-memory engine with the schema created
   from the ORM metadata. SQLite's driver-level transaction handling is
   switched off and BEGIN is emitted explicitly so SAVEPOINTs behave.
   Foreign keys are enforced, as on Postgres.
2. The app's get_db, get_current_user and get_publisher are overridden, so
   routes run against that database, as a chosen user, publishing into a
   RecordingPublisher instead of Redis.
3. `login(user)` switches who the client is acting as mid-test.
"""

import uuid
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.pool import StaticPool

from teamchat.auth.dependencies import CurrentIdentity, get_current_user
from teamchat.db.engine import build_engine, build_session_factory, get_db
from teamchat.db.models import Base, Channel, Note, Project, Thread, User
from teamchat.main import app
from teamchat.notifications.push import PushSender
from teamchat.realtime.pubsub import EventPublisher, PublishError, get_publisher


class RecordingPublisher(EventPublisher):
    """Captures published events; set `fail = True` to simulate Redis being down."""

    def __init__(self):
        super().__init__(redis=None, prefix="test:")
        self.events: list[tuple[str, str, Any]] = []
        self.fail = False

    async def publish(self, topic: str, event_name: str, payload: Any) -> None:
        if self.fail:
            raise PublishError("transport unreachable")
        self.events.append((topic, event_name, payload))

    def on(self, topic: str) -> list[tuple[str, Any]]:
        return [(name, payload) for t, name, payload in self.events if t == topic]

    def named(self, event_name: str) -> list[tuple[str, Any]]:
        return [(t, payload) for t, name, payload in self.events if name == event_name]


class RecordingPushSender(PushSender):
    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, user_id, title, body, data=None, notification_id=None):
        if self.fail:
            raise RuntimeError("push provider down")
        self.sent.append(
            {
                "user_id": user_id,
                "title": title,
                "body": body,
                "data": data,
                "notification_id": notification_id,
            }
        )
        return []


@pytest_asyncio.fixture()
async def db_engine():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine):
    async with build_session_factory(db_engine)() as session:
        yield session


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def push_sender():
    return RecordingPushSender()


@pytest_asyncio.fixture()
async def users(db_session):
    """Four users; names double as @mention handles."""
    people = {
        name: User(id=uuid.uuid4(), name=name, email=f"{name}@example.com")
        for name in ("alice", "bob", "carol", "dave")
    }
    db_session.add_all(people.values())
    await db_session.commit()
    return people


@pytest_asyncio.fixture()
async def thread(db_session):
    channel = Channel(name="general")
    db_session.add(channel)
    await db_session.flush()
    t = Thread(channel_id=channel.id, title="Launch plan")
    db_session.add(t)
    await db_session.commit()
    return t


@pytest_asyncio.fixture()
async def project(db_session):
    p = Project(name="Apollo")
    db_session.add(p)
    await db_session.commit()
    return p


@pytest_asyncio.fixture()
async def note(db_session, users):
    n = Note(owner_id=users["alice"].id, title="Retro notes")
    db_session.add(n)
    await db_session.commit()
    return n


@pytest_asyncio.fixture()
async def client(db_session, publisher, users):
    """HTTP client acting as alice until `login` says otherwise."""
    current = {"identity": CurrentIdentity(user_id=users["alice"].id)}

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: current["identity"]
    app.dependency_overrides[get_publisher] = lambda: publisher

    def login(user: User) -> None:
        current["identity"] = CurrentIdentity(user_id=user.id)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.login = login
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauthenticated_client(db_session, publisher):
    """HTTP client WITHOUT the auth override, so real JWT checks run."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_publisher] = lambda: publisher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
