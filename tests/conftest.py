import os
import tempfile

os.environ.setdefault("DATABASE_URI", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="civic-media-"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-length-0123456789")

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from civic_reporter.core.security import create_access_token, get_password_hash
from civic_reporter.db.base_class import Base
from civic_reporter.db.session import get_db
from civic_reporter.models import User, UserRole
from civic_reporter.schemas.report import Location
from civic_reporter.services import lifecycle
from civic_reporter.services.actor import Actor
from civic_reporter.services.media import MediaStore, get_media_store
from civic_reporter.services.redis import get_redis, set_redis_client
from main import app


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
    original = get_redis()
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(original)
        await client.flushall()


@pytest.fixture
def media_store(tmp_path):
    return MediaStore(root=str(tmp_path / "media"), url_prefix="/media", max_size=1024 * 1024, max_files=3)


@pytest_asyncio.fixture
async def api_client(session_factory, media_store):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_media_store] = lambda: media_store
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    counter = {"n": 0}

    async def _make_user(role: UserRole = UserRole.USER, is_active: bool = True, name: str = None) -> User:
        counter["n"] += 1
        n = counter["n"]
        async with session_factory() as session:
            user = User(
                name=name or f"Citizen {n}",
                email=f"{role.value}{n}@example.com",
                hashed_password=get_password_hash("Password1"),
                role=role,
                is_active=is_active,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def make_report(session_factory):
    async def _make_report(owner: User, lat: float = 40.0, lng: float = -75.0, **fields):
        fields.setdefault("title", "Overflowing bin")
        fields.setdefault("description", "Bin on the corner has not been emptied")
        fields.setdefault("category", "sanitation")
        fields.setdefault("severity", "high")
        async with session_factory() as session:
            return await lifecycle.create_report(
                session,
                Actor.from_user(owner),
                location=Location(lat=lat, lng=lng, address="Main St"),
                **fields,
            )

    return _make_report


def auth_headers(user: User) -> dict:
    token = create_access_token(subject=user.id, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}
