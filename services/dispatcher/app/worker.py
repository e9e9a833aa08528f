"""
Dispatcher Service — ステージワーカー

純粋関数のステージ (pack / label) をブローカーにつなぐ。
構成 (topology) によって購読するストリームが変わる:

  fused : order-events ──[pack|label]──▶ order-events
  split : order-events ──[pack]──▶ dispatch-packed ──[label]──▶ order-events
  pack  : split の前半だけ（label は別プロセス）
  label : split の後半だけ（pack は別プロセス）

ステージの意味はどの構成でも変わらない。
"""

from services.common.broker import Handler, Publisher
from services.common.messages import (
    ORDER_ACCEPTED,
    ORDER_PACKED,
    OrderAcceptedMessage,
    OrderDispatchedMessage,
    OrderPackedMessage,
)

from . import functions
from .functions import LabelStage, PackStage

TOPOLOGIES = ("fused", "split", "pack", "label")


class DispatchWorker:
    def __init__(
        self,
        publisher: Publisher,
        events_stream: str = "order-events",
        packed_stream: str = "dispatch-packed",
        pack: PackStage = functions.pack,
        label: LabelStage = functions.label,
    ) -> None:
        self.publisher = publisher
        self.events_stream = events_stream
        self.packed_stream = packed_stream
        self.pack = pack
        self.label = label

    async def pack_and_label(self, message: OrderAcceptedMessage) -> OrderDispatchedMessage:
        """1つのハンドラで pack → label を行い、order-dispatched を発行する。"""
        dispatched = functions.compose(self.pack, self.label)(message)
        await self.publisher.publish(self.events_stream, dispatched)
        return dispatched

    async def pack_only(self, message: OrderAcceptedMessage) -> OrderPackedMessage:
        """pack だけ行い、中間ストリームに order-packed を発行する。"""
        packed = OrderPackedMessage(order_id=self.pack(message))
        await self.publisher.publish(self.packed_stream, packed)
        return packed

    async def label_only(self, message: OrderPackedMessage) -> OrderDispatchedMessage:
        """中間ストリームから受け取った注文に label を貼り、order-dispatched を発行する。"""
        dispatched = self.label(message.order_id)
        await self.publisher.publish(self.events_stream, dispatched)
        return dispatched

    def subscriptions(self, topology: str) -> list[tuple[str, dict[str, Handler]]]:
        """構成ごとに (ストリーム, {メッセージタイプ: ハンドラ}) の一覧を返す。"""
        pack_stage = (self.events_stream, {ORDER_ACCEPTED: self.pack_only})
        label_stage = (self.packed_stream, {ORDER_PACKED: self.label_only})
        if topology == "fused":
            return [(self.events_stream, {ORDER_ACCEPTED: self.pack_and_label})]
        if topology == "split":
            return [pack_stage, label_stage]
        if topology == "pack":
            return [pack_stage]
        if topology == "label":
            return [label_stage]
        raise ValueError(f"Unknown dispatch topology {topology!r}; expected one of {TOPOLOGIES}")
