"""
Order Service / 注文ライフサイクル・オーケストレーター

ローカルの注文レコードと、在庫サービスが所有する引き当てを
分散トランザクションなしで整合させる。

方針: ローカルトランザクションでリモート呼び出しを包む。

  ┌──────────────────────── transaction ────────────────────────┐
  │  1. orders に INSERT / 条件付き UPDATE                       │
  │  2. 在庫サービスに reserve / set_status を依頼               │
  │     ├─ 成功 → コミット                                       │
  │     └─ 失敗 → ロールバック (GatewayError をそのまま返す)     │
  └──────────────────────────────────────────────────────────────┘
  3. コミット後に order_events へイベントを発行

ローカル側は「注文を試みたか」の記録の正とする。リモート側は
失敗を返す前に変更を適用している可能性があり、その整合はここでは扱わない。
自動リトライも補償トランザクションも行わない。
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from .domain import (
    Order,
    OrderStatus,
    parse_status,
    reservation_status_for,
    transition,
    utcnow,
)
from .errors import Forbidden, InvalidRequest, OrderServiceError, TransitionConflict
from .events import OrderCreated, OrderStatusChanged
from .gateway import ReservationGateway
from .publisher import EventPublisher
from .store import OrderStore

logger = logging.getLogger(__name__)

DEFAULT_RESERVATION_TTL = timedelta(minutes=15)


class OrderOrchestrator:
    def __init__(
        self,
        store: OrderStore,
        gateway: ReservationGateway,
        publisher: EventPublisher | None = None,
        reservation_ttl: timedelta = DEFAULT_RESERVATION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.publisher = publisher
        self.reservation_ttl = reservation_ttl
        self.clock = clock

    async def create_order(self, user_id: int, product_id: int, quantity: int) -> Order:
        """
        注文と在庫引き当てを 1 つの論理単位として作成する。

        INSERT が失敗すれば引き当ては依頼しない。
        引き当てが失敗すれば INSERT はロールバックされ、注文は残らない。
        """
        if quantity <= 0:
            raise InvalidRequest("quantity must be greater than zero")

        now = self.clock()
        order = Order(
            product_id=product_id,
            quantity=quantity,
            user_id=user_id,
            status=OrderStatus.WAITING_PAYMENT,
            created_at=now,
            updated_at=now,
            expires_at=now + self.reservation_ttl,
        )

        async with self.store.transaction() as conn:
            try:
                order = await self.store.create(conn, order)
            except OrderServiceError:
                logger.error("CreateOrder: failed to create order for user %s", user_id)
                raise
            try:
                await self.gateway.reserve(order.product_id, order.quantity, order.id)
            except OrderServiceError:
                logger.error("CreateOrder: failed to reserve stock for order %s", order.id)
                raise

        logger.info("Created order %s for user %s", order.id, user_id)
        await self._publish(
            OrderCreated(
                order_id=order.id,
                user_id=order.user_id,
                product_id=order.product_id,
                quantity=order.quantity,
                expires_at=order.expires_at,
                timestamp=now,
            )
        )
        return order

    async def update_status(self, order_id: int, requested: str | OrderStatus) -> None:
        """
        注文ステータスを遷移させ、引き当てのステータスを同期する。

        paid → completed, cancelled → cancelled。それ以外は I/O の前に拒否する。
        UPDATE は現在のステータスを条件にするので、決済コールバックと
        期限切れキャンセルが競合しても片方だけが成功する。
        既に要求どおりのステータスなら何もしない（コールバックの再送）。
        """
        reservation_status = reservation_status_for(requested)
        target = parse_status(requested)

        async with self.store.transaction() as conn:
            current = await self.store.get_by_id(order_id, conn=conn)
            if current.status == target:
                logger.info("Order %s is already %s; nothing to do", order_id, target.value)
                return
            target = transition(current.status, target)

            # 時計が巻き戻っても updated_at >= created_at を保つ
            now = max(self.clock(), current.updated_at)
            updated = await self.store.update_status(
                conn, order_id, target, expected=current.status, now=now
            )
            if not updated:
                logger.error(
                    "UpdateStatus: order %s changed concurrently; %s lost",
                    order_id,
                    target.value,
                )
                raise TransitionConflict(f"order {order_id} was modified concurrently")

            try:
                await self.gateway.set_status(order_id, reservation_status)
            except OrderServiceError:
                logger.error(
                    "UpdateStatus: failed to set reservation of order %s to %s",
                    order_id,
                    reservation_status.value,
                )
                raise

        logger.info("Order %s: %s -> %s", order_id, current.status.value, target.value)
        await self._publish(
            OrderStatusChanged(
                order_id=order_id,
                previous_status=current.status.value,
                status=target.value,
                timestamp=now,
            )
        )

    async def get_order_by_id(self, requesting_user_id: int, order_id: int) -> Order:
        """注文を取得する。存在確認が先なので、存在しなければ Forbidden より NotFound。"""
        order = await self.store.get_by_id(order_id)
        if order.user_id != requesting_user_id:
            logger.warning("User %s may not read order %s", requesting_user_id, order_id)
            raise Forbidden(f"order {order_id} does not belong to user {requesting_user_id}")
        return order

    async def list_by_user(self, user_id: int) -> list[Order]:
        return await self.store.list_by_user(user_id)

    async def list_expired(self, now: datetime | None = None) -> list[Order]:
        return await self.store.list_expired(now or self.clock())

    async def cancel_expired(self, now: datetime | None = None) -> list[int]:
        """
        期限切れの注文をキャンセルする（定期スイープ用）。

        1 件の失敗で残りを止めない。キャンセルできた注文 ID を返す。
        """
        cancelled: list[int] = []
        for order in await self.list_expired(now):
            try:
                await self.update_status(order.id, OrderStatus.CANCELLED)
            except OrderServiceError as e:
                logger.error("Expiry: could not cancel order %s: %s", order.id, e)
                continue
            cancelled.append(order.id)
        if cancelled:
            logger.info("Expiry: cancelled %d order(s)", len(cancelled))
        return cancelled

    async def _publish(self, event) -> None:
        if self.publisher is not None:
            await self.publisher.publish(event)
