"""
共通 — メッセージ定義 (ワイヤーフォーマット)

サービス間を流れるイベントは過去形で命名し、不変(frozen)として扱う。
Order エンティティへの参照は持たず、値だけをコピーして運ぶ。

ストリームの1エントリは2つのフィールドで構成される:
    type    : ルーティングタグ (order-accepted / order-dispatched / order-packed)
    payload : JSON オブジェクト (フィールド名は orderId, isbn, quantity で固定)

未知のフィールドは無視する（前方互換）。
"""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .errors import MalformedMessage

ORDER_ACCEPTED = "order-accepted"
ORDER_DISPATCHED = "order-dispatched"
ORDER_PACKED = "order-packed"


class Message(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    message_type: ClassVar[str]

    def encode(self) -> dict[str, str]:
        """ストリームエントリのフィールドに変換する。"""
        return {
            "type": self.message_type,
            "payload": self.model_dump_json(by_alias=True),
        }


class OrderAcceptedMessage(Message):
    """注文が受理された（カタログに在庫あり）"""
    message_type: ClassVar[str] = ORDER_ACCEPTED

    order_id: int
    isbn: str
    quantity: int


class OrderPackedMessage(Message):
    """注文が梱包された（pack ステージと label ステージを分離した構成でのみ使う）"""
    message_type: ClassVar[str] = ORDER_PACKED

    order_id: int


class OrderDispatchedMessage(Message):
    """注文が発送された（梱包・ラベル貼りが完了）"""
    message_type: ClassVar[str] = ORDER_DISPATCHED

    order_id: int


MESSAGE_TYPES: dict[str, type[Message]] = {
    cls.message_type: cls
    for cls in (OrderAcceptedMessage, OrderPackedMessage, OrderDispatchedMessage)
}


def decode(fields: dict[str, str]) -> Message:
    """
    ストリームエントリのフィールドからメッセージを復元する。

    type が未知、payload が JSON でない、必須フィールドが欠けている
    といった場合は MalformedMessage を送出する。
    """
    message_type = fields.get("type")
    cls = MESSAGE_TYPES.get(message_type)
    if cls is None:
        raise MalformedMessage(f"Unknown message type: {message_type!r}")
    try:
        return cls.model_validate_json(fields.get("payload") or "")
    except ValidationError as e:
        raise MalformedMessage(f"Invalid {message_type} payload: {e}") from e
