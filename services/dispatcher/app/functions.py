"""
Dispatcher Service — 発送処理のステージ

発送は2つのステージで構成される:
    pack  : order-accepted → 注文 id     (箱詰め)
    label : 注文 id → order-dispatched   (ラベル貼り)

どちらも I/O を持たない純粋関数。永続化やリトライは
ブローカーアダプタ側の責務で、ここでは扱わない。

compose でつなげば1つのハンドラとして動かせるし、
中間ストリームを挟んで別々のプロセスとして動かすこともできる。
どちらの構成でも label(pack(e)).order_id == e.order_id が成り立つ。
"""

import logging
from functools import reduce
from typing import Any, Callable, Protocol

from services.common.messages import OrderAcceptedMessage, OrderDispatchedMessage

logger = logging.getLogger(__name__)


class PackStage(Protocol):
    def __call__(self, message: OrderAcceptedMessage) -> int: ...


class LabelStage(Protocol):
    def __call__(self, order_id: int) -> OrderDispatchedMessage: ...


def pack(message: OrderAcceptedMessage) -> int:
    logger.info("The order with id %s is packed.", message.order_id)
    return message.order_id


def label(order_id: int) -> OrderDispatchedMessage:
    logger.info("The order with id %s is labeled.", order_id)
    return OrderDispatchedMessage(order_id=order_id)


def compose(*stages: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """ステージを左から順に適用する関数を返す。"""
    if not stages:
        raise ValueError("compose() needs at least one stage")
    return lambda value: reduce(lambda acc, stage: stage(acc), stages, value)


pack_and_label: Callable[[OrderAcceptedMessage], OrderDispatchedMessage] = compose(pack, label)
