import pytest

from services.order.app.aggregate import (
    BookSnapshot,
    Order,
    OrderStatus,
    is_terminal,
    next_status,
)


def test_accepted_order_carries_book_snapshot():
    book = BookSnapshot(title="Title", author="Author", price=9.90)
    order = Order.accepted("1234567890", 3, book)

    assert order.status == OrderStatus.ACCEPTED
    assert order.book == book
    assert order.quantity == 3
    assert order.id is None
    assert order.version == 0


def test_rejected_order_has_no_book_snapshot():
    order = Order.rejected("9999999999", 1)

    assert order.status == OrderStatus.REJECTED
    assert order.book is None
    assert order.to_dict()["book_price"] is None


def test_book_snapshot_is_immutable():
    book = BookSnapshot(title="Title", author="Author", price=9.90)
    with pytest.raises(AttributeError):
        book.price = 1.0


@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.PENDING, OrderStatus.ACCEPTED),
        (OrderStatus.PENDING, OrderStatus.REJECTED),
        (OrderStatus.ACCEPTED, OrderStatus.DISPATCHED),
    ],
)
def test_allowed_transitions(current, target):
    assert next_status(current, target) == target


@pytest.mark.parametrize("terminal", [OrderStatus.REJECTED, OrderStatus.DISPATCHED])
@pytest.mark.parametrize("target", list(OrderStatus))
def test_terminal_states_never_transition(terminal, target):
    assert is_terminal(terminal)
    assert next_status(terminal, target) is None


def test_accepted_cannot_go_back_to_rejected():
    assert next_status(OrderStatus.ACCEPTED, OrderStatus.REJECTED) is None
    assert not is_terminal(OrderStatus.ACCEPTED)


def test_with_id_returns_copy():
    order = Order.rejected("9999999999", 1)
    stored = order.with_id(7)

    assert stored.id == 7
    assert order.id is None
    assert stored.to_dict()["id"] == 7
    assert stored.to_dict()["status"] == "REJECTED"
