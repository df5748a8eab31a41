from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from order_service.errors import GatewayError
from order_service.orchestrator import OrderOrchestrator
from order_service.store import OrderStore

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingGateway:
    """在庫サービスの代わりに呼び出しを記録する。fail_* で失敗させられる。"""

    def __init__(self) -> None:
        self.reserve_calls: list[tuple[int, int, int]] = []
        self.set_status_calls: list[tuple[int, str]] = []
        self.fail_reserve = False
        self.fail_set_status = False

    async def reserve(self, product_id: int, quantity: int, order_id: int) -> dict:
        self.reserve_calls.append((product_id, quantity, order_id))
        if self.fail_reserve:
            raise GatewayError("reserve failed")
        return {"message": "ok"}

    async def set_status(self, order_id: int, status) -> dict:
        self.set_status_calls.append((order_id, getattr(status, "value", status)))
        if self.fail_set_status:
            raise GatewayError("set_status failed")
        return {"message": "ok"}


class RecordingPublisher:
    def __init__(self) -> None:
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)


@pytest.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture()
async def store(engine):
    store = OrderStore(engine)
    await store.create_schema()
    return store


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def orchestrator(store, gateway, publisher, clock):
    return OrderOrchestrator(
        store,
        gateway,
        publisher=publisher,
        reservation_ttl=timedelta(minutes=15),
        clock=clock,
    )
