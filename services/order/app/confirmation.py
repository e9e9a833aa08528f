"""
Order Service — 発送確認リスナー

order-dispatched を受け取り、ACCEPTED の注文を DISPATCHED にする。

at-least-once 配送なので同じイベントが何度も届きうる。
重複排除ストアは持たず、注文自身の終端状態で冪等性を保証する:
    DISPATCHED → 何もしない（重複配送）
    REJECTED   → 何もしない（ログだけ残す）
    存在しない → 何もしない（ログだけ残す）
いずれも ACK してよい結果で、例外にはしない。
"""

import logging
from enum import Enum

from services.common.errors import OrderVersionConflict
from services.common.messages import OrderDispatchedMessage

from .aggregate import OrderStatus, next_status
from .store import OrderStore, UpdateResult

logger = logging.getLogger(__name__)


class ConfirmationOutcome(str, Enum):
    DISPATCHED = "DISPATCHED"
    ALREADY_DISPATCHED = "ALREADY_DISPATCHED"
    IGNORED = "IGNORED"
    NOT_FOUND = "NOT_FOUND"


class DispatchConfirmation:
    def __init__(self, store: OrderStore, max_attempts: int = 2) -> None:
        self.store = store
        self.max_attempts = max_attempts

    async def handle(self, message: OrderDispatchedMessage) -> ConfirmationOutcome:
        """
        発送確認を適用する。

        バージョン競合時は読み直して1回だけリトライし、
        それでも競合すれば OrderVersionConflict を送出する（ACK されず再配送される）。
        """
        order_id = message.order_id
        expected_version = -1
        for _attempt in range(self.max_attempts):
            order = await self.store.get(order_id)
            if order is None:
                logger.warning("Dispatch confirmation for unknown order %s", order_id)
                return ConfirmationOutcome.NOT_FOUND
            if order.status == OrderStatus.DISPATCHED:
                logger.info("Order %s already dispatched; ignoring duplicate", order_id)
                return ConfirmationOutcome.ALREADY_DISPATCHED
            if next_status(order.status, OrderStatus.DISPATCHED) is None:
                logger.warning(
                    "Dispatch confirmation for order %s in state %s; ignoring",
                    order_id, order.status.value,
                )
                return ConfirmationOutcome.IGNORED

            expected_version = order.version
            result = await self.store.update_status(
                order_id, expected_version, OrderStatus.DISPATCHED
            )
            if result == UpdateResult.OK:
                logger.info("Order %s dispatched", order_id)
                return ConfirmationOutcome.DISPATCHED
            if result == UpdateResult.NOT_FOUND:
                logger.warning("Order %s disappeared during dispatch confirmation", order_id)
                return ConfirmationOutcome.NOT_FOUND
            logger.info("Version conflict on order %s; re-reading", order_id)

        raise OrderVersionConflict(order_id, expected_version)
