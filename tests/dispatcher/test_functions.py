import pytest

from services.common.messages import OrderAcceptedMessage, OrderDispatchedMessage
from services.dispatcher.app.functions import compose, label, pack, pack_and_label


def test_pack_extracts_order_id():
    assert pack(OrderAcceptedMessage(order_id=123, isbn="1234567890", quantity=1)) == 123


def test_label_marks_order_dispatched():
    assert label(122) == OrderDispatchedMessage(order_id=122)


@pytest.mark.parametrize("order_id", [1, 42, 121, 10_000])
def test_pack_and_label_preserves_order_id(order_id):
    event = OrderAcceptedMessage(order_id=order_id, isbn="1234567890", quantity=3)

    assert pack_and_label(event) == OrderDispatchedMessage(order_id=order_id)
    assert label(pack(event)) == pack_and_label(event)


def test_compose_applies_stages_left_to_right():
    trace = []

    def first(value):
        trace.append("first")
        return value + 1

    def second(value):
        trace.append("second")
        return value * 10

    assert compose(first, second)(1) == 20
    assert trace == ["first", "second"]


def test_compose_is_associative():
    event = OrderAcceptedMessage(order_id=5, isbn="1234567890", quantity=1)
    as_dispatched = lambda m: m.order_id  # noqa: E731

    left = compose(compose(pack, label), as_dispatched)
    right = compose(pack, compose(label, as_dispatched))

    assert left(event) == right(event) == 5


def test_compose_requires_a_stage():
    with pytest.raises(ValueError):
        compose()
