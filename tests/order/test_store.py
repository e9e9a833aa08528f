import pytest

from services.order.app.aggregate import BookSnapshot, Order, OrderStatus
from services.order.app.store import UpdateResult


def _accepted():
    return Order.accepted("1234567890", 3, BookSnapshot(title="Title", author="Author", price=9.90))


@pytest.mark.asyncio
async def test_create_and_get(store):
    order_id = await store.create(_accepted())

    order = await store.get(order_id)
    assert order.id == order_id
    assert order.status == OrderStatus.ACCEPTED
    assert order.book == BookSnapshot(title="Title", author="Author", price=9.90)
    assert order.version == 0


@pytest.mark.asyncio
async def test_get_missing_returns_none(store):
    assert await store.get(12345) is None


@pytest.mark.asyncio
async def test_rejected_order_is_stored_without_book(store):
    order_id = await store.create(Order.rejected("9999999999", 1))

    order = await store.get(order_id)
    assert order.status == OrderStatus.REJECTED
    assert order.book is None


@pytest.mark.asyncio
async def test_update_status_bumps_version(store):
    order_id = await store.create(_accepted())

    result = await store.update_status(order_id, 0, OrderStatus.DISPATCHED)

    assert result == UpdateResult.OK
    order = await store.get(order_id)
    assert order.status == OrderStatus.DISPATCHED
    assert order.version == 1


@pytest.mark.asyncio
async def test_update_status_with_stale_version_conflicts(store):
    order_id = await store.create(_accepted())
    await store.update_status(order_id, 0, OrderStatus.DISPATCHED)

    result = await store.update_status(order_id, 0, OrderStatus.DISPATCHED)

    assert result == UpdateResult.VERSION_CONFLICT
    assert (await store.get(order_id)).version == 1


@pytest.mark.asyncio
async def test_update_status_of_missing_order(store):
    assert await store.update_status(404, 0, OrderStatus.DISPATCHED) == UpdateResult.NOT_FOUND


@pytest.mark.asyncio
async def test_list_orders_filters_by_status(store):
    accepted_id = await store.create(_accepted())
    rejected_id = await store.create(Order.rejected("9999999999", 1))

    all_ids = {order.id for order in await store.list_orders()}
    accepted = await store.list_orders(OrderStatus.ACCEPTED)

    assert all_ids == {accepted_id, rejected_id}
    assert [order.id for order in accepted] == [accepted_id]
