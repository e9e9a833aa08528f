"""
Order Service — 注文エンティティと状態遷移

状態遷移:
    PENDING  → ACCEPTED    (カタログに書籍あり)
    PENDING  → REJECTED    (書籍なし / カタログ参照失敗)
    ACCEPTED → DISPATCHED  (発送確認を受信)

REJECTED と DISPATCHED は終端状態。終端状態からの遷移は
エラーにせず、何もしない(no-op)ことで重複配送を吸収する。
PENDING は生成直後の一瞬だけの値で、外部からは観測されない。
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    DISPATCHED = "DISPATCHED"


TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.REJECTED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.DISPATCHED}),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.DISPATCHED: frozenset(),
}


def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[status]


def next_status(current: OrderStatus, target: OrderStatus) -> OrderStatus | None:
    """
    current から target へ遷移できれば target を、できなければ None を返す。
    None は「無視してよい」の意味で、例外は送出しない。
    """
    if target in TRANSITIONS[current]:
        return target
    return None


@dataclass(frozen=True)
class BookSnapshot:
    """受理時点の書籍情報。以後変更しない。"""
    title: str
    author: str
    price: float


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Order:
    isbn: str
    quantity: int
    status: OrderStatus = OrderStatus.PENDING
    book: BookSnapshot | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=_now)
    last_modified_at: datetime = field(default_factory=_now)
    version: int = 0

    @classmethod
    def accepted(cls, isbn: str, quantity: int, book: BookSnapshot) -> "Order":
        order = cls(isbn=isbn, quantity=quantity, book=book)
        order.status = next_status(order.status, OrderStatus.ACCEPTED)
        return order

    @classmethod
    def rejected(cls, isbn: str, quantity: int) -> "Order":
        order = cls(isbn=isbn, quantity=quantity)
        order.status = next_status(order.status, OrderStatus.REJECTED)
        return order

    def with_id(self, order_id: int) -> "Order":
        return replace(self, id=order_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "isbn": self.isbn,
            "quantity": self.quantity,
            "book_title": self.book.title if self.book else None,
            "book_author": self.book.author if self.book else None,
            "book_price": self.book.price if self.book else None,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_modified_at": self.last_modified_at.isoformat() if self.last_modified_at else None,
            "version": self.version,
        }
