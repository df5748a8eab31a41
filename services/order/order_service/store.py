"""
Order Service / 注文ストア

orders テーブルへの永続化を担当する。

書き込み系 (create / update_status) は呼び出し側が transaction() で
開いたコネクションを受け取る。オーケストレーターはその中で在庫サービスを
呼び出し、失敗すればブロックから例外が抜けてロールバックされる。

SQLAlchemy の例外はすべて PersistenceError に包んで送出する。
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from .domain import Order, OrderStatus, as_utc
from .errors import NotFound, OrderServiceError, PersistenceError

logger = logging.getLogger(__name__)

metadata = MetaData()

orders = Table(
    "orders",
    metadata,
    Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
    Column("product_id", BigInteger, nullable=False),
    Column("quantity", BigInteger, nullable=False),
    Column("user_id", BigInteger, nullable=False),
    Column("status", String(32), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Index("ix_orders_user_id", "user_id"),
    Index("ix_orders_status_expires_at", "status", "expires_at"),
)


def _row_to_order(row: Row) -> Order:
    return Order(
        id=row.id,
        product_id=row.product_id,
        quantity=row.quantity,
        user_id=row.user_id,
        status=OrderStatus(row.status),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        expires_at=as_utc(row.expires_at),
    )


class OrderStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def create_schema(self) -> None:
        """orders テーブルを作成する（テスト・ローカル起動用）。"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to create schema: {e}") from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """
        1 コネクションを占有するトランザクションスコープ。

        正常終了でコミット、ブロック内で送出されたあらゆる例外
        (GatewayError を含む) でロールバックしてから例外を再送出する。
        """
        try:
            async with self.engine.begin() as conn:
                yield conn
        except OrderServiceError:
            logger.warning("Transaction rolled back")
            raise
        except SQLAlchemyError as e:
            logger.error("Transaction failed: %s", e)
            raise PersistenceError(f"transaction failed: {e}") from e

    async def create(self, conn: AsyncConnection, order: Order) -> Order:
        """注文を INSERT し、採番された ID を持つ Order を返す。"""
        try:
            result = await conn.execute(
                insert(orders)
                .values(
                    product_id=order.product_id,
                    quantity=order.quantity,
                    user_id=order.user_id,
                    status=order.status.value,
                    created_at=order.created_at,
                    updated_at=order.updated_at,
                    expires_at=order.expires_at,
                )
                .returning(orders.c.id)
            )
            order_id = result.scalar_one()
        except SQLAlchemyError as e:
            logger.error("Failed to create order for user %s: %s", order.user_id, e)
            raise PersistenceError(f"failed to create order: {e}") from e
        return order.model_copy(update={"id": order_id})

    async def get_by_id(
        self, order_id: int, conn: AsyncConnection | None = None
    ) -> Order:
        stmt = select(orders).where(orders.c.id == order_id)
        try:
            if conn is not None:
                row = (await conn.execute(stmt)).first()
            else:
                async with self.engine.connect() as own:
                    row = (await own.execute(stmt)).first()
        except SQLAlchemyError as e:
            logger.error("Failed to get order %s: %s", order_id, e)
            raise PersistenceError(f"failed to get order {order_id}: {e}") from e
        if row is None:
            raise NotFound(f"order {order_id} not found")
        return _row_to_order(row)

    async def update_status(
        self,
        conn: AsyncConnection,
        order_id: int,
        status: OrderStatus,
        expected: OrderStatus,
        now: datetime,
    ) -> bool:
        """
        現在のステータスが expected の場合だけ更新する (compare-and-swap)。

        1 行更新できたら True。行が無い / 別の遷移に先を越された場合は False。
        """
        try:
            result = await conn.execute(
                update(orders)
                .where(orders.c.id == order_id, orders.c.status == expected.value)
                .values(status=status.value, updated_at=now)
            )
        except SQLAlchemyError as e:
            logger.error("Failed to update status of order %s: %s", order_id, e)
            raise PersistenceError(f"failed to update order {order_id}: {e}") from e
        return result.rowcount == 1

    async def list_by_user(self, user_id: int) -> list[Order]:
        """ユーザーの注文を作成順に返す。無ければ空リスト。"""
        return await self._fetch_all(
            select(orders).where(orders.c.user_id == user_id).order_by(orders.c.id)
        )

    async def list_expired(self, now: datetime) -> list[Order]:
        """支払い待ちのまま期限 (expires_at) を過ぎた注文を返す。"""
        return await self._fetch_all(
            select(orders)
            .where(
                orders.c.status == OrderStatus.WAITING_PAYMENT.value,
                orders.c.expires_at < now,
            )
            .order_by(orders.c.id)
        )

    async def _fetch_all(self, stmt) -> list[Order]:
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).fetchall()
        except SQLAlchemyError as e:
            logger.error("Query failed: %s", e)
            raise PersistenceError(f"query failed: {e}") from e
        return [_row_to_order(row) for row in rows]
