"""
Order Service — 注文受付

新しい注文を受理(ACCEPTED)するか却下(REJECTED)するかを決める。

  ┌────────┐ lookup ┌─────────┐
  │ submit │ ─────▶ │ Catalog │
  └───┬────┘        └─────────┘
      │ 書籍あり → ACCEPTED を保存 → order-accepted を発行
      │ 書籍なし → REJECTED を保存（イベントは発行しない）
      ▼
  ┌────────────┐
  │ OrderStore │
  └────────────┘

保存が先、発行が後。発行に失敗しても保存は取り消さない:
注文は ACCEPTED のまま未発送となる（結果整合性のギャップ）。
"""

import logging

from redis.exceptions import RedisError

from services.common.broker import Publisher
from services.common.messages import OrderAcceptedMessage

from .aggregate import BookSnapshot, Order
from .catalog_client import CatalogClient
from .store import OrderStore

logger = logging.getLogger(__name__)


class OrderAcceptance:
    def __init__(
        self,
        store: OrderStore,
        catalog: CatalogClient,
        publisher: Publisher,
        stream: str = "order-events",
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.publisher = publisher
        self.stream = stream

    async def submit_order(self, isbn: str, quantity: int) -> Order:
        """
        注文受付コマンド

        1. カタログに書籍を問い合わせる（不正な入力は問い合わせずに却下）
        2. ACCEPTED / REJECTED の注文を保存する
        3. ACCEPTED の場合だけ order-accepted を発行する
        """
        if not isbn or quantity <= 0:
            logger.info("Rejecting invalid order request isbn=%r quantity=%s", isbn, quantity)
            return await self._persist(Order.rejected(isbn, quantity))

        book = await self.catalog.lookup(isbn)
        if not book.found:
            order = await self._persist(Order.rejected(isbn, quantity))
            logger.info("Order %s rejected: book %s unavailable", order.id, isbn)
            return order

        order = await self._persist(
            Order.accepted(
                isbn, quantity,
                BookSnapshot(title=book.title, author=book.author, price=book.price),
            )
        )
        logger.info("Order %s accepted for %s x%d", order.id, isbn, quantity)

        message = OrderAcceptedMessage(order_id=order.id, isbn=isbn, quantity=quantity)
        try:
            await self.publisher.publish(self.stream, message)
        except (RedisError, OSError):
            logger.exception(
                "Failed to publish order-accepted for order %s; "
                "it stays ACCEPTED until reconciled", order.id,
            )
        return order

    async def _persist(self, order: Order) -> Order:
        order_id = await self.store.create(order)
        return order.with_id(order_id)
