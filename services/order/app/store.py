"""
Order Service — 注文ストア

注文を PostgreSQL に保存する。操作ごとにセッションを取得し、
読み書き → commit → 解放 までを1つの単位として扱う。

更新はバージョン番号による楽観的ロックで行う:
    UPDATE ... WHERE id = :id AND version = :expected
更新件数 0 のときは存在確認をして「競合」と「存在しない」を区別する。
I/O をまたいでロックを保持することはない。
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    insert,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from .aggregate import BookSnapshot, Order, OrderStatus

metadata = MetaData()

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("isbn", String(32), nullable=False),
    Column("book_title", String(255)),
    Column("book_author", String(255)),
    Column("book_price", Float),
    Column("quantity", Integer, nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_date", DateTime(timezone=True), nullable=False),
    Column("last_modified_date", DateTime(timezone=True), nullable=False),
    Column("version", Integer, nullable=False),
)


class UpdateResult(str, Enum):
    OK = "OK"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    NOT_FOUND = "NOT_FOUND"


async def create_schema(engine: AsyncEngine) -> None:
    """テーブルが無ければ作成する（起動時・テスト用）。"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


def _to_order(row) -> Order:
    book = None
    if row.book_title is not None:
        book = BookSnapshot(
            title=row.book_title,
            author=row.book_author,
            price=float(row.book_price),
        )
    return Order(
        id=row.id,
        isbn=row.isbn,
        quantity=row.quantity,
        status=OrderStatus(row.status),
        book=book,
        created_at=row.created_date,
        last_modified_at=row.last_modified_date,
        version=row.version,
    )


class OrderStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def create(self, order: Order) -> int:
        """注文を INSERT して採番された id を返す。"""
        async with self._session_factory() as session:
            result = await session.execute(
                insert(orders).values(
                    isbn=order.isbn,
                    book_title=order.book.title if order.book else None,
                    book_author=order.book.author if order.book else None,
                    book_price=order.book.price if order.book else None,
                    quantity=order.quantity,
                    status=order.status.value,
                    created_date=order.created_at,
                    last_modified_date=order.last_modified_at,
                    version=order.version,
                )
            )
            await session.commit()
            return result.inserted_primary_key[0]

    async def get(self, order_id: int) -> Order | None:
        async with self._session_factory() as session:
            result = await session.execute(select(orders).where(orders.c.id == order_id))
            row = result.fetchone()
            return _to_order(row) if row else None

    async def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        """注文一覧（新しい順）。status を指定すると絞り込む。"""
        query = select(orders).order_by(orders.c.created_date.desc(), orders.c.id.desc())
        if status is not None:
            query = query.where(orders.c.status == status.value)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_order(row) for row in result.fetchall()]

    async def update_status(
        self,
        order_id: int,
        expected_version: int,
        new_status: OrderStatus,
    ) -> UpdateResult:
        """
        expected_version が一致する場合だけステータスを更新し、version を +1 する。
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(orders)
                .where(orders.c.id == order_id, orders.c.version == expected_version)
                .values(
                    status=new_status.value,
                    version=orders.c.version + 1,
                    last_modified_date=datetime.now(timezone.utc),
                )
            )
            if result.rowcount == 1:
                await session.commit()
                return UpdateResult.OK

            existing = await session.scalar(
                select(orders.c.id).where(orders.c.id == order_id)
            )
            if existing is None:
                return UpdateResult.NOT_FOUND
            return UpdateResult.VERSION_CONFLICT
