"""Shared fixtures: a temporary SQLite order store and in-process fakes for the broker and catalog."""

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.order.app.catalog_client import NOT_FOUND, BookLookup
from services.order.app.store import OrderStore, create_schema


class RecordingPublisher:
    """Collects published messages instead of writing them to Redis."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[str, object]] = []

    async def publish(self, stream, message):
        if self.fail:
            raise RedisConnectionError("broker unavailable")
        self.published.append((stream, message))
        return f"{len(self.published)}-0"

    def messages(self, stream=None):
        return [m for s, m in self.published if stream is None or s == stream]


class StubCatalog:
    def __init__(self, books: dict[str, BookLookup] | None = None) -> None:
        self.books = books or {}
        self.lookups: list[str] = []

    async def lookup(self, isbn):
        self.lookups.append(isbn)
        return self.books.get(isbn, NOT_FOUND)


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def store(engine):
    return OrderStore(sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def catalog():
    return StubCatalog(
        {"1234567890": BookLookup(found=True, title="Title", author="Author", price=9.90)}
    )


@pytest.fixture()
def failing_publisher():
    return RecordingPublisher(fail=True)
