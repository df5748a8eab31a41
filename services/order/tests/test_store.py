from datetime import datetime, timedelta, timezone

import pytest

from order_service.domain import Order, OrderStatus
from order_service.errors import GatewayError, NotFound, PersistenceError

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _order(user_id: int = 7, expires_in: timedelta = timedelta(minutes=15)) -> Order:
    return Order(
        product_id=42,
        quantity=3,
        user_id=user_id,
        created_at=NOW,
        updated_at=NOW,
        expires_at=NOW + expires_in,
    )


async def _insert(store, order: Order) -> Order:
    async with store.transaction() as conn:
        return await store.create(conn, order)


class TestCreateAndRead:
    async def test_create_assigns_an_id(self, store):
        created = await _insert(store, _order())
        assert created.id is not None

    async def test_read_reproduces_every_attribute(self, store):
        created = await _insert(store, _order())
        assert await store.get_by_id(created.id) == created

    async def test_missing_order(self, store):
        with pytest.raises(NotFound):
            await store.get_by_id(999)


class TestTransaction:
    async def test_error_inside_scope_rolls_back(self, store):
        with pytest.raises(GatewayError):
            async with store.transaction() as conn:
                created = await store.create(conn, _order())
                raise GatewayError("remote failed")

        with pytest.raises(NotFound):
            await store.get_by_id(created.id)
        assert await store.list_by_user(7) == []

    async def test_database_failure_becomes_persistence_error(self, store, engine):
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE orders")
        with pytest.raises(PersistenceError):
            await _insert(store, _order())


class TestConditionalUpdate:
    async def test_updates_when_expected_status_matches(self, store):
        created = await _insert(store, _order())
        later = NOW + timedelta(minutes=1)
        async with store.transaction() as conn:
            updated = await store.update_status(
                conn, created.id, OrderStatus.PAID, expected=OrderStatus.WAITING_PAYMENT, now=later
            )
        assert updated is True
        order = await store.get_by_id(created.id)
        assert order.status is OrderStatus.PAID
        assert order.updated_at == later
        assert order.created_at == NOW

    async def test_no_rows_when_status_already_changed(self, store):
        created = await _insert(store, _order())
        async with store.transaction() as conn:
            await store.update_status(
                conn, created.id, OrderStatus.PAID, expected=OrderStatus.WAITING_PAYMENT, now=NOW
            )
        async with store.transaction() as conn:
            updated = await store.update_status(
                conn, created.id, OrderStatus.CANCELLED, expected=OrderStatus.WAITING_PAYMENT, now=NOW
            )
        assert updated is False
        assert (await store.get_by_id(created.id)).status is OrderStatus.PAID

    async def test_no_rows_for_missing_order(self, store):
        async with store.transaction() as conn:
            updated = await store.update_status(
                conn, 123, OrderStatus.PAID, expected=OrderStatus.WAITING_PAYMENT, now=NOW
            )
        assert updated is False


class TestQueries:
    async def test_list_by_user_returns_only_that_users_orders(self, store):
        first = await _insert(store, _order(user_id=7))
        await _insert(store, _order(user_id=8))
        second = await _insert(store, _order(user_id=7))

        assert [o.id for o in await store.list_by_user(7)] == [first.id, second.id]
        assert await store.list_by_user(99) == []

    async def test_list_expired(self, store):
        expired = await _insert(store, _order(expires_in=timedelta(minutes=-1)))
        await _insert(store, _order(expires_in=timedelta(minutes=30)))
        paid = await _insert(store, _order(expires_in=timedelta(minutes=-5)))
        async with store.transaction() as conn:
            await store.update_status(
                conn, paid.id, OrderStatus.PAID, expected=OrderStatus.WAITING_PAYMENT, now=NOW
            )

        result = await store.list_expired(NOW)
        assert [o.id for o in result] == [expired.id]
